# se_migrator/models/roster.py
from typing import List, Optional

from pydantic import AliasChoices, Field, model_validator

from se_migrator.utils.misc_utils import split_full_name

from .base import CamelModel
from .enums import RosterStatus


class RosterMember(CamelModel):
    """Fields shared by players and staff. Either `name` or first/last is enough."""

    name: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    roster_status: str = RosterStatus.ACTIVE.value
    profile_id: Optional[str] = None  # External SportsEngine profile id, when known

    @model_validator(mode="after")
    def _fill_name_parts(self):
        if self.name and not (self.first_name or self.last_name):
            self.first_name, self.last_name = split_full_name(self.name)
        elif not self.name and (self.first_name or self.last_name):
            self.name = f"{self.first_name} {self.last_name}".strip()
        return self

    @property
    def display_name(self) -> str:
        return self.name or f"{self.first_name} {self.last_name}".strip()


class Player(RosterMember):
    jersey_number: str = ""
    position: str = ""


class Staff(RosterMember):
    title: Optional[str] = Field(
        None, validation_alias=AliasChoices("title", "role")
    )


class Roster(CamelModel):
    players: List[Player] = []
    staff: List[Staff] = []
