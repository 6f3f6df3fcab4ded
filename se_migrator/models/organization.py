# se_migrator/models/organization.py
from typing import Optional

from .base import CamelModel


class Organization(CamelModel):
    """An organization (or stand-alone team) listed on the user's SportsEngine dashboard."""

    id: str  # Derived from the source URL, else a slug of the name
    name: str
    description: str = ""
    type: str = "team"
    url: Optional[str] = None
    sport: Optional[str] = None

    # Populated when the source already knows roster sizes (delegated tasks)
    player_count: Optional[int] = None
    staff_count: Optional[int] = None

    # Set on the "extraction in progress" placeholder only
    task_id: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.type == "task"
