# se_migrator/models/migration.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .enums import EntityType, MigrationStatus


class MigrationErrorEntry(BaseModel):
    type: EntityType
    name: str
    error: str


class MigrationProgress(BaseModel):
    """Live state of one migration run. Handed to the progress callback on every change."""

    status: MigrationStatus = MigrationStatus.IDLE
    total: int = 0
    current: int = 0
    organizations: int = 0
    teams: int = 0
    message: Optional[str] = None
    errors: List[MigrationErrorEntry] = []

    def advance(self, steps: int = 1) -> None:
        # current never passes total
        self.current = min(self.current + steps, self.total)

    def record_error(self, entity_type: EntityType, name: str, error: Union[Exception, str]) -> None:
        self.errors.append(
            MigrationErrorEntry(type=entity_type, name=name, error=str(error))
        )


class MigrationResult(BaseModel):
    success: bool
    groups: List[Dict[str, Any]] = []
    members: List[Dict[str, Any]] = []
    events: List[Dict[str, Any]] = []
    progress: MigrationProgress
    error: Optional[str] = None

    @property
    def partial_success(self) -> bool:
        """Run finished but one or more entities failed along the way."""
        return (
            self.progress.status == MigrationStatus.COMPLETED
            and bool(self.progress.errors)
        )


class MigrationRecord(BaseModel):
    """Append-only audit row written once per migration run."""

    user_id: str
    source: str = "sportsengine"
    status: MigrationStatus
    organizations_count: int
    teams_count: int
    members_count: int
    errors_count: int
    migration_data: Dict[str, Any]
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
