from typing import Any, Dict, List, Optional, Union

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from se_migrator.backends.base_backend import MigratorError
from se_migrator.models.organization import Organization
from se_migrator.models.preview import MigrationPreview
from se_migrator.models.results import ConnectionStatus, CredentialCheck, TaskCompletion
from se_migrator.models.roster import Roster
from se_migrator.models.team import ExtractedData, Team

from .local_store import LocalSessionStore

API_PREFIX = "/api/sportsengine"


class ProxyBackendError(MigratorError):
    """The migrator server answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteProxyClient:
    """Talks to a migrator server on behalf of a local user, keeping the session on disk."""

    def __init__(
        self,
        base_url: str,
        local_store: LocalSessionStore,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.local_store = local_store
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(120.0),  # Browser-backed calls take a while
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _send(
        self, method: str, path: str, headers: Dict[str, str], json_data: Any
    ) -> httpx.Response:
        return await self.client.request(
            method, f"{API_PREFIX}{path}", headers=headers, json=json_data
        )

    async def _request(
        self, method: str, path: str, json_data: Any = None, auth: bool = True
    ) -> Dict[str, Any]:
        headers = {}
        if auth:
            token = self.local_store.token
            if not token:
                raise ProxyBackendError("Not authenticated; log in first", status_code=401)
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._send(method, path, headers, json_data)
        except httpx.TransportError as e:
            logger.error(f"Migrator server unreachable at {self.base_url}: {e}")
            raise ProxyBackendError(f"Cannot reach {self.base_url}: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success:
            return body

        message = (
            body.get("message") or body.get("error") or body.get("detail")
            if isinstance(body, dict)
            else None
        ) or f"Request failed with status {response.status_code}"
        if response.status_code == 401 and auth:
            logger.info("Server rejected the saved session; clearing it.")
            self.local_store.clear()
        raise ProxyBackendError(str(message), status_code=response.status_code)

    # --- Session ---

    async def authenticate_with_credentials(self, email: str, password: str) -> Dict[str, Any]:
        body = await self._request(
            "POST", "/authenticate", {"email": email, "password": password}, auth=False
        )
        self.local_store.save(
            {
                "email": email,
                "token": body.get("token"),
                "taskId": body.get("taskId"),
                "taskUrl": body.get("taskUrl"),
            }
        )
        logger.info(f"Authenticated {email} against {self.base_url}")
        return body

    async def validate_credentials(self, email: str, password: str) -> CredentialCheck:
        body = await self._request(
            "POST", "/validate", {"email": email, "password": password}, auth=False
        )
        return CredentialCheck.model_validate(body)

    async def test_connection(self) -> ConnectionStatus:
        return ConnectionStatus.model_validate(await self._request("GET", "/test"))

    def is_authenticated(self) -> bool:
        return self.local_store.token is not None

    async def clear_session(self) -> None:
        if self.is_authenticated():
            try:
                await self._request("DELETE", "/session")
            except ProxyBackendError as e:
                logger.warning(f"Server did not close the session: {e}")
        self.local_store.clear()

    # --- Extraction ---

    async def get_organizations(self) -> List[Organization]:
        body = await self._request("GET", "/organizations")
        organizations = [Organization.model_validate(o) for o in body.get("organizations", [])]
        task = next((o for o in organizations if o.task_id), None)
        if task is not None:
            # Delegated extraction started; keep its id so it can be checked later
            self.local_store.update(taskId=task.task_id, taskUrl=task.url)
        return organizations

    async def get_teams_for_organization(self, organization_id: str) -> List[Team]:
        body = await self._request("GET", f"/organizations/{organization_id}/teams")
        return [Team.model_validate(t) for t in body.get("teams", [])]

    async def get_team_roster(self, team_id: str) -> Roster:
        body = await self._request("GET", f"/teams/{team_id}/roster")
        return Roster.model_validate(body.get("roster") or {})

    async def get_migration_preview(self) -> MigrationPreview:
        body = await self._request("GET", "/migration-preview")
        return MigrationPreview.model_validate(body.get("preview") or {})

    # --- Delegated tasks ---

    async def check_task_completion(self) -> TaskCompletion:
        body = await self._request("POST", "/check-task-completion")
        completion = TaskCompletion.model_validate(body)
        if completion.completed:
            self.local_store.update(taskId=None, taskUrl=None)
        return completion

    async def submit_extracted_data(
        self, extracted: Union[ExtractedData, Dict[str, Any]]
    ) -> Dict[str, Any]:
        if isinstance(extracted, ExtractedData):
            extracted = extracted.to_wire()
        return await self._request(
            "POST", "/submit-extracted-data", {"extractedData": extracted}
        )

    async def close(self):
        await self.client.aclose()
