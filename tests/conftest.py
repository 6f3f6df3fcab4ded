from collections import Counter, defaultdict
from itertools import count
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from se_migrator.backends.base_backend import (
    AuthenticationError,
    ExtractionBackend,
    ExtractionError,
)
from se_migrator.models.organization import Organization
from se_migrator.models.results import AuthResult, CredentialCheck
from se_migrator.models.roster import Player, Roster, Staff
from se_migrator.models.session import SessionCredentials
from se_migrator.models.team import ExtractedTeam, Team
from se_migrator.sessions.store import InMemorySessionStore
from se_migrator.storage.sink import RelationalSink, Row, SinkError

PASSWORD = "correct-horse"


class FixedClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemorySink(RelationalSink):
    """Dict-of-lists relational sink. `fail_when(table, row)` injects insert failures."""

    def __init__(self, fail_when: Optional[Callable[[str, Row], bool]] = None):
        self.tables: Dict[str, List[Row]] = defaultdict(list)
        self.fail_when = fail_when
        self._ids = count(1)

    async def insert(self, table: str, row: Row) -> Row:
        if self.fail_when and self.fail_when(table, row):
            raise SinkError(f"insert on {table} rejected")
        stored = {**row, "id": next(self._ids)}
        self.tables[table].append(stored)
        return dict(stored)

    def _matching(self, table: str, filters: Row) -> List[Row]:
        return [
            dict(r) for r in self.tables[table] if all(r.get(k) == v for k, v in filters.items())
        ]

    async def select_one(self, table: str, filters: Row) -> Optional[Row]:
        rows = self._matching(table, filters)
        return rows[0] if rows else None

    async def select(self, table, filters, order_by=None, descending=False):
        rows = self._matching(table, filters)
        if order_by:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        return rows


class FakeBackend(ExtractionBackend):
    """Backend serving canned organizations, teams and rosters."""

    name = "fake"

    def __init__(
        self,
        store,
        organizations: Sequence[Organization],
        teams: Dict[str, List[Team]],
        rosters: Dict[str, Roster],
        failing_organizations: Sequence[str] = (),
    ):
        super().__init__(store)
        self.organizations = list(organizations)
        self.teams = teams
        self.rosters = rosters
        self.failing_organizations = set(failing_organizations)
        self.calls = Counter()

    async def authenticate(self, email: str, password: str) -> AuthResult:
        if password != PASSWORD:
            return AuthResult(success=False, message="Invalid credentials")
        token = self.store.create(email, SessionCredentials())
        return AuthResult(success=True, token=token)

    async def validate_credentials(self, email: str, password: str) -> CredentialCheck:
        return CredentialCheck(valid=password == PASSWORD, message="checked")

    async def get_organizations(self, token: str) -> List[Organization]:
        self.require_session(token)
        self.calls["organizations"] += 1
        return list(self.organizations)

    async def get_teams_for_organization(self, token: str, organization_id: str) -> List[Team]:
        self.require_session(token)
        self.calls["teams"] += 1
        if organization_id in self.failing_organizations:
            raise ExtractionError(f"Timed out loading {organization_id}")
        return list(self.teams.get(organization_id, []))

    async def get_team_roster(self, token: str, team_id: str) -> Roster:
        self.require_session(token)
        self.calls["roster"] += 1
        return self.rosters.get(team_id, Roster())


class FakeScraper:
    """Stands in for SportsEngineScraper; counts calls instead of opening browsers."""

    def __init__(self, organizations: Sequence[Organization], teams: Dict[str, List[ExtractedTeam]]):
        self.organizations = list(organizations)
        self.teams = teams
        self.calls = Counter()

    async def authenticate(self, email, password):
        self.calls["authenticate"] += 1
        if password != PASSWORD:
            raise AuthenticationError("Invalid email or password")
        return SessionCredentials()

    async def list_organizations(self, credentials, exclude_labels=()):
        self.calls["organizations"] += 1
        return list(self.organizations)

    async def list_teams(self, credentials, organization):
        self.calls["teams"] += 1
        return [t.model_copy(deep=True) for t in self.teams.get(organization.id, [])]

    async def get_roster(self, credentials, team_id, team_url=None):
        self.calls["roster"] += 1
        return Roster()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(clock):
    return InMemorySessionStore("test-secret", ttl_seconds=86_400, clock=clock)


@pytest.fixture
def sink():
    return InMemorySink()


def eagles_data():
    organizations = [Organization(id="o1", name="Eagles", description="Eagles club")]
    teams = {
        "o1": [
            Team(
                id="t1",
                name="Eagles U12",
                sport="Soccer",
                organization_id="o1",
                player_count=1,
                staff_count=1,
            )
        ]
    }
    rosters = {
        "t1": Roster(
            players=[Player(name="Sam Lee", jersey_number="7", position="Forward")],
            staff=[Staff(name="Pat Kim", title="Head Coach")],
        )
    }
    return organizations, teams, rosters


@pytest.fixture
def eagles_backend(store):
    organizations, teams, rosters = eagles_data()
    return FakeBackend(store, organizations, teams, rosters)


@pytest.fixture
def token(store):
    return store.create("parent@example.com", SessionCredentials())
