from abc import ABC, abstractmethod
from typing import Any, Dict, List

from loguru import logger

from se_migrator.models.organization import Organization
from se_migrator.models.preview import MigrationPreview
from se_migrator.models.results import (
    AuthResult,
    ConnectionStatus,
    CredentialCheck,
    TaskCompletion,
)
from se_migrator.models.roster import Roster
from se_migrator.models.session import SessionState
from se_migrator.models.team import ExtractedData, Team
from se_migrator.sessions.store import SessionStore


class MigratorError(Exception):
    """Base exception for extraction and migration errors."""

    pass


class AuthenticationError(MigratorError):
    """Bad credentials, or a required login element never resolved."""

    pass


class ExtractionError(MigratorError):
    """A required page or element never resolved. The session stays valid."""

    pass


class SessionExpiredError(MigratorError):
    """Token is invalid, or its session record is missing or stale."""

    def __init__(self, message: str = "Session expired, please reauthenticate"):
        super().__init__(message)


class PartialEntityError(MigratorError):
    """One organization, team or member failed inside a batch operation."""

    pass


class BackendUnavailableError(MigratorError):
    """The browser could not be launched or the task API is unreachable."""

    pass


class UnsupportedOperationError(MigratorError):
    """The active backend does not offer this capability."""

    pass


class ExtractionBackend(ABC):
    """Capability interface shared by every extraction backend.

    A backend is chosen once at composition time (see backends.factory) and
    injected into the HTTP surface, the preview aggregator and the migration
    engine, none of which know which variant they are talking to.
    """

    name: str = "unknown"

    def __init__(self, store: SessionStore):
        self.store = store

    # --- Session helpers ---

    def require_session(self, token: str) -> SessionState:
        session = self.store.get(token)
        if session is None:
            raise SessionExpiredError()
        return session

    def disconnect(self, token: str) -> None:
        self.store.delete(token)
        logger.info(f"Session closed by caller ({self.name} backend).")

    # --- Capabilities ---

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> AuthResult:
        """Log in and create a session.

        Returns a failed AuthResult for bad credentials; infrastructure
        failures raise BackendUnavailableError.
        """

    @abstractmethod
    async def validate_credentials(self, email: str, password: str) -> CredentialCheck:
        """Check credentials without keeping a session."""

    async def test_connection(self, token: str) -> ConnectionStatus:
        session = self.store.get(token)
        if session is None:
            return ConnectionStatus(success=False, message="Invalid or expired session")
        self.store.touch(token)
        return ConnectionStatus(success=True, message="Connection is active")

    @abstractmethod
    async def get_organizations(self, token: str) -> List[Organization]:
        pass

    @abstractmethod
    async def get_teams_for_organization(
        self, token: str, organization_id: str
    ) -> List[Team]:
        pass

    @abstractmethod
    async def get_team_roster(self, token: str, team_id: str) -> Roster:
        pass

    async def get_migration_preview(self, token: str) -> MigrationPreview:
        from se_migrator.preview.aggregator import PreviewAggregator

        return await PreviewAggregator(self).preview(token)

    # --- Cache injection / delegated task completion ---

    async def submit_extracted_data(
        self, token: str, extracted: ExtractedData
    ) -> ExtractedData:
        """Replace the session's cached extraction with caller-provided data."""
        session = self.require_session(token)
        session.cached_extraction = extracted
        self.store.touch(token)
        logger.info(
            f"Stored submitted extraction with {len(extracted.teams)} teams for {session.email}."
        )
        return extracted

    async def handle_notification(self, payload: Dict[str, Any]) -> bool:
        raise UnsupportedOperationError(
            f"The {self.name} backend does not accept task notifications"
        )

    async def check_task_completion(self, token: str) -> TaskCompletion:
        raise UnsupportedOperationError(
            f"The {self.name} backend has no delegated tasks to check"
        )

    async def start(self) -> None:
        """Hook run once when the hosting process starts."""

    async def close(self) -> None:
        """Release resources held by the backend."""
