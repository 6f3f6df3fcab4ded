# se_migrator/models/team.py
from typing import List, Optional

from pydantic import model_validator

from se_migrator.utils.misc_utils import generate_canonical_id

from .base import CamelModel
from .organization import Organization
from .roster import Player, Roster, Staff


class Team(CamelModel):
    """A team scoped to one organization (weak reference by id)."""

    id: str
    name: str
    sport: str = "Unknown"
    gender: str = "Unknown"
    organization_id: str
    url: Optional[str] = None
    player_count: int = 0
    staff_count: int = 0

    # Set on the "extraction in progress" placeholder only
    task_in_progress: bool = False


class ExtractedTeam(CamelModel):
    """A team together with its roster, as scraped or as returned by a delegated task."""

    id: Optional[str] = None
    name: str
    url: Optional[str] = None
    sport: Optional[str] = None
    gender: Optional[str] = None
    organization_id: Optional[str] = None
    players: List[Player] = []
    staff: List[Staff] = []
    roster_loaded: bool = True

    @model_validator(mode="after")
    def _default_id(self):
        if not self.id:
            self.id = generate_canonical_id(self.name)
        return self

    def matches(self, identifier: str) -> bool:
        return identifier in (self.id, generate_canonical_id(self.name))

    def to_team(self, organization_id: Optional[str] = None) -> Team:
        return Team(
            id=self.id,
            name=self.name,
            sport=self.sport or "Unknown",
            gender=self.gender or "Unknown",
            organization_id=organization_id or self.organization_id or self.id,
            url=self.url,
            player_count=len(self.players),
            staff_count=len(self.staff),
        )

    def roster(self) -> Roster:
        return Roster(players=self.players, staff=self.staff)


class ExtractedData(CamelModel):
    """Cached extraction for one session.

    When `organizations` is empty every team stands for its own organization,
    which is the shape a delegated extraction task returns.
    """

    organizations: List[Organization] = []
    teams: List[ExtractedTeam] = []
    loaded_team_orgs: List[str] = []

    @property
    def team_scoped(self) -> bool:
        return not self.organizations

    def list_organizations(self) -> List[Organization]:
        if not self.team_scoped:
            return list(self.organizations)
        return [
            Organization(
                id=team.id,
                name=team.name,
                description=(
                    f"Team: {team.name} ({len(team.players)} players, "
                    f"{len(team.staff)} staff)"
                ),
                type="team",
                url=team.url,
                sport=team.sport,
                player_count=len(team.players),
                staff_count=len(team.staff),
            )
            for team in self.teams
        ]

    def teams_for(self, organization_id: str) -> Optional[List[ExtractedTeam]]:
        """Teams cached for an organization, or None when they were never extracted."""
        if self.team_scoped:
            found = [t for t in self.teams if t.matches(organization_id)]
            return found or None
        if organization_id not in self.loaded_team_orgs:
            return None
        return [t for t in self.teams if t.organization_id == organization_id]

    def find_team(self, team_id: str) -> Optional[ExtractedTeam]:
        for team in self.teams:
            if team.matches(team_id):
                return team
        return None

    def store_teams(self, organization_id: str, teams: List[ExtractedTeam]) -> None:
        self.teams = [t for t in self.teams if t.organization_id != organization_id]
        for team in teams:
            team.organization_id = organization_id
        self.teams.extend(teams)
        if organization_id not in self.loaded_team_orgs:
            self.loaded_team_orgs.append(organization_id)

    def store_roster(self, team_id: str, roster: Roster) -> None:
        team = self.find_team(team_id)
        if team is None:
            self.teams.append(
                ExtractedTeam(
                    id=team_id,
                    name=team_id,
                    players=roster.players,
                    staff=roster.staff,
                )
            )
            return
        team.players = list(roster.players)
        team.staff = list(roster.staff)
        team.roster_loaded = True
