"""Delegated-task extraction backend.

Instead of driving a browser itself, this backend asks the Manus agent API to
log in to SportsEngine and return every team as JSON. Task creation returns
immediately; until the result arrives (webhook, completion check or manual
submission) callers get placeholder entities pointing at the running task.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import SecretStr, ValidationError

from se_migrator.models.organization import Organization
from se_migrator.models.results import AuthResult, CredentialCheck, TaskCompletion
from se_migrator.models.roster import Roster
from se_migrator.models.session import DelegatedTask, SessionCredentials, SessionState
from se_migrator.models.team import ExtractedData, Team
from se_migrator.sessions.store import SessionStore

from .base_backend import (
    BackendUnavailableError,
    ExtractionBackend,
    ExtractionError,
    MigratorError,
)
from .manus_api import ManusApiClient, task_detail_from_status

PLACEHOLDER_ORGANIZATION_ID = "data_extraction_task"

EXTRACTION_PROMPT = """I need you to help me extract team data from SportsEngine. Here's what I need you to do:

STEP 1 - LOGIN:
1. Go to {login_url}
2. Fill in the email field with: {email}
3. Click the submit button to go to the password page
4. Fill in the password field with: {password}
5. Click the submit button to log in
6. If there's an MFA or setup page, try to skip it or navigate directly to the dashboard

STEP 2 - NAVIGATE TO TEAMS:
7. Go to {dashboard_url}
8. Click on "Teams" in the left navigation menu
9. You should see a "My Teams" page with team listings

STEP 3 - EXTRACT TEAM DATA:
10. For each team found on the My Teams page:
    - Get the team name
    - Get the team URL/link
    - Click on the team to go to its detail page
    - Click on "Roster" in the left navigation
    - Extract all player information including:
      * Player names
      * Jersey numbers
      * Positions
    - Check if there's a "Staff" tab and extract every staff member with their role
    - Go back to the teams list to process the next team

STEP 4 - RETURN DATA:
Please return ALL the data in this exact JSON format:
{{
  "teams": [
    {{
      "id": "team_id_or_name",
      "name": "Team Name",
      "url": "team_detail_url",
      "sport": "Football",
      "players": [
        {{
          "name": "Player Name",
          "jerseyNumber": "#12",
          "position": "QB"
        }}
      ],
      "staff": [
        {{
          "name": "Coach Name",
          "role": "Head Coach"
        }}
      ]
    }}
  ]
}}

I need the actual data from the SportsEngine account, not placeholder data. Please extract everything you can find."""


def build_extraction_prompt(
    email: str, password: str, login_url: str, dashboard_url: str
) -> str:
    return EXTRACTION_PROMPT.format(
        email=email, password=password, login_url=login_url, dashboard_url=dashboard_url
    )


def find_json_object(text: str) -> Optional[Dict[str, Any]]:
    """First decodable JSON object embedded in free text, if any."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


class TaskStatusProvider(ABC):
    """Looks up a delegated task and reports its result once it has stopped."""

    @abstractmethod
    async def fetch(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Return the task detail (`task_id, message, attachments, stop_reason`), or None while running."""


class ManusTaskStatusProvider(TaskStatusProvider):
    def __init__(self, api: ManusApiClient):
        self.api = api

    async def fetch(self, task_id: str) -> Optional[Dict[str, Any]]:
        return task_detail_from_status(await self.api.get_task(task_id))


class ManusTaskBackend(ExtractionBackend):
    name = "manus"

    def __init__(
        self,
        store: SessionStore,
        api: ManusApiClient,
        login_url: str,
        dashboard_url: str,
        webhook_url: Optional[str] = None,
        task_mode: str = "quality",
        status_provider: Optional[TaskStatusProvider] = None,
    ):
        super().__init__(store)
        self.api = api
        self.login_url = login_url
        self.dashboard_url = dashboard_url
        self.webhook_url = webhook_url
        self.task_mode = task_mode
        self.status_provider = status_provider or ManusTaskStatusProvider(api)
        self.webhook_id: Optional[str] = None

    async def start(self) -> None:
        if not self.webhook_url or not self.api.api_key:
            logger.info("No webhook URL configured; skipping webhook setup.")
            return
        try:
            self.webhook_id = await self.api.register_webhook(self.webhook_url)
            logger.info(f"Registered task webhook {self.webhook_id} -> {self.webhook_url}")
        except MigratorError as e:
            # Completion can still be checked manually
            logger.warning(f"Could not register task webhook: {e}")

    async def close(self) -> None:
        await self.api.close()

    # --- Authentication ---

    async def authenticate(self, email: str, password: str) -> AuthResult:
        credentials = SessionCredentials(password=SecretStr(password))
        token = self.store.create(email, credentials)
        return AuthResult(
            success=True,
            token=token,
            message="Authentication successful; extraction runs as a delegated task",
            session_data={"token": token},
        )

    async def validate_credentials(self, email: str, password: str) -> CredentialCheck:
        if not email or not password:
            return CredentialCheck(valid=False, message="Email and password are required")
        return CredentialCheck(
            valid=True,
            message="Credentials accepted; the extraction task verifies them when it logs in",
        )

    # --- Task lifecycle ---

    def _placeholder_organization(self, task: DelegatedTask, state: str) -> Organization:
        return Organization(
            id=PLACEHOLDER_ORGANIZATION_ID,
            name="SportsEngine Data Extraction",
            description=f"Data extraction {state}. Check task: {task.task_url}",
            type="task",
            url=task.task_url,
            task_id=task.task_id,
        )

    async def _start_task(self, session: SessionState) -> DelegatedTask:
        password = session.credentials.password
        prompt = build_extraction_prompt(
            session.email,
            password.get_secret_value() if password else "",
            self.login_url,
            self.dashboard_url,
        )
        data = await self.api.create_task(prompt, mode=self.task_mode)
        session.task = DelegatedTask(task_id=data["task_id"], task_url=data.get("task_url"))
        return session.task

    async def _extract_result(
        self, message: str, attachments: Sequence[Dict[str, Any]]
    ) -> Optional[ExtractedData]:
        raw = find_json_object(message or "")
        if raw is None:
            attachment = next(
                (
                    a
                    for a in attachments or []
                    if a.get("url") and "json" in (a.get("file_name") or "").lower()
                ),
                None,
            )
            if attachment is not None:
                logger.info(f"Fetching JSON attachment {attachment['file_name']}")
                try:
                    raw = await self.api.fetch_json(attachment["url"])
                except (BackendUnavailableError, ValueError) as e:
                    logger.error(f"Could not fetch task attachment: {e}")
                    return None
        if not isinstance(raw, dict):
            return None
        try:
            return ExtractedData.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Task output did not match the team schema: {e}")
            return None

    async def handle_notification(self, payload: Dict[str, Any]) -> bool:
        """Apply a task-stopped webhook. Returns True when a session's cache was updated."""
        detail = payload.get("task_detail")
        if payload.get("event_type") != "task_stopped" or not detail:
            logger.debug(f"Ignoring task notification {payload.get('event_type')}")
            return False

        task_id = detail.get("task_id")
        stop_reason = detail.get("stop_reason")
        if stop_reason == "ask":
            logger.info(f"Task {task_id} is waiting for user input: {detail.get('message')}")
            return False
        if stop_reason != "finish":
            logger.warning(f"Task {task_id} stopped with reason {stop_reason}")
            return False

        extracted = await self._extract_result(
            detail.get("message", ""), detail.get("attachments") or []
        )
        if extracted is None:
            logger.warning(f"Could not extract JSON data from completed task {task_id}")
            return False

        session = self.store.find_by_task_id(task_id)
        if session is None:
            logger.warning(f"No session found for completed task {task_id}")
            return False
        session.cached_extraction = extracted
        logger.success(
            f"Stored {len(extracted.teams)} extracted teams for {session.email} (task {task_id})."
        )
        return True

    async def check_task_completion(self, token: str) -> TaskCompletion:
        session = self.require_session(token)
        if session.task is None:
            return TaskCompletion(completed=False, message="No task found")
        if session.cached_extraction is not None:
            return TaskCompletion(
                completed=True, message="Task completed", data=session.cached_extraction
            )

        detail = await self.status_provider.fetch(session.task.task_id)
        if detail is None:
            return TaskCompletion(completed=False, message="Task is still running")
        if detail.get("stop_reason") != "finish":
            return TaskCompletion(
                completed=False,
                message=f"Task stopped without finishing ({detail.get('stop_reason')})",
            )

        extracted = await self._extract_result(
            detail.get("message", ""), detail.get("attachments") or []
        )
        if extracted is None:
            return TaskCompletion(
                completed=False, message="Task finished but returned no usable data"
            )
        session.cached_extraction = extracted
        self.store.touch(token)
        return TaskCompletion(
            completed=True, message="Task completed successfully", data=extracted
        )

    # --- Data access ---

    async def get_organizations(self, token: str) -> List[Organization]:
        session = self.require_session(token)
        if session.cached_extraction is not None:
            logger.debug("Using cached extracted data.")
            return session.cached_extraction.list_organizations()

        if session.task is not None:
            return [self._placeholder_organization(session.task, "in progress")]

        logger.info(f"Creating data extraction task for {session.email}")
        task = await self._start_task(session)
        self.store.touch(token)
        return [self._placeholder_organization(task, "started")]

    async def get_teams_for_organization(
        self, token: str, organization_id: str
    ) -> List[Team]:
        session = self.require_session(token)
        if session.cached_extraction is not None:
            teams = session.cached_extraction.teams_for(organization_id)
            if teams is None:
                raise ExtractionError(f"No extracted team matches {organization_id}")
            return [t.to_team(organization_id) for t in teams]

        if session.task is None:
            raise ExtractionError(
                "No data extraction task found. Load organizations first."
            )
        return [
            Team(
                id=organization_id,
                name="Data Extraction in Progress",
                organization_id=organization_id,
                url=session.task.task_url,
                task_in_progress=True,
            )
        ]

    async def get_team_roster(self, token: str, team_id: str) -> Roster:
        session = self.require_session(token)
        team = (
            session.cached_extraction.find_team(team_id)
            if session.cached_extraction is not None
            else None
        )
        if team is None:
            raise ExtractionError(
                f"Roster for {team_id} is not available until the extraction task completes"
            )
        return team.roster()
