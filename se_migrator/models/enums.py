from enum import Enum


class BackendKind(str, Enum):
    BROWSER = "browser"
    MANUS = "manus"


class MigrationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class EntityType(str, Enum):
    """Which kind of entity a recorded migration error refers to."""

    ORGANIZATION = "organization"
    TEAM = "team"
    PLAYER = "player"
    STAFF = "staff"


class GroupType(str, Enum):
    ORGANIZATION = "organization"
    TEAM = "team"


class MemberRole(str, Enum):
    ADMIN = "admin"
    PLAYER = "player"
    COACH = "coach"
    ASSISTANT_COACH = "assistant_coach"
    MANAGER = "manager"
    STAFF = "staff"
    MEMBER = "member"


class RosterStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
