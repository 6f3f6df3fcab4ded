import pytest

from se_migrator.migration.engine import (
    MigrationEngine,
    external_profile_id,
    get_migration_history,
    placeholder_email,
)
from se_migrator.models.enums import MigrationStatus
from se_migrator.models.organization import Organization
from se_migrator.models.roster import Player, Roster, Staff
from se_migrator.models.team import Team
from se_migrator.storage.sink import SinkError

from .conftest import FakeBackend, InMemorySink
from .test_manus_backend import RecordingHandler, make_backend


class ListingFailsBackend(FakeBackend):
    async def get_organizations(self, token):
        raise SinkError("organization listing unavailable")


def three_club_backend(store, failing=()):
    organizations = [Organization(id=f"o{i}", name=f"Club {i}") for i in (1, 2, 3)]
    teams = {
        org.id: [Team(id=f"{org.id}-t", name=f"{org.name} U10", organization_id=org.id)]
        for org in organizations
    }
    rosters = {
        f"{org.id}-t": Roster(players=[Player(name=f"Kid {org.id}", jersey_number="1")])
        for org in organizations
    }
    return FakeBackend(store, organizations, teams, rosters, failing_organizations=failing)


@pytest.mark.asyncio
async def test_single_team_migration(eagles_backend, sink, token):
    result = await MigrationEngine(eagles_backend, sink, token).migrate("user-1")

    assert result.success
    assert not result.partial_success
    assert [g["group_type"] for g in result.groups] == ["organization", "team"]
    org_group, team_group = result.groups
    assert team_group["parent_group_id"] == org_group["id"]
    assert org_group["sport"] == "Multi-Sport"
    assert team_group["sport"] == "Soccer"
    assert team_group["gender"] == "Mixed"

    player, coach = result.members
    assert player["role"] == "player"
    assert player["jersey_number"] == "7"
    assert player["position"] == "Forward"
    assert coach["role"] == "coach"
    assert coach["position"] == "Head Coach"
    assert coach["jersey_number"] is None

    admins = [m for m in sink.tables["group_members"] if m["role"] == "admin"]
    assert {a["group_id"] for a in admins} == {org_group["id"], team_group["id"]}
    assert all(a["user_id"] == "user-1" for a in admins)

    emails = sorted(p["email"] for p in sink.tables["profiles"])
    assert emails == ["pat.kim@migrated.scout.app", "sam.lee@migrated.scout.app"]

    assert result.progress.status == MigrationStatus.COMPLETED
    assert result.progress.current == result.progress.total == 2
    (record,) = sink.tables["migrations"]
    assert record["status"] == "completed"
    assert record["members_count"] == 2
    assert record["errors_count"] == 0


@pytest.mark.asyncio
async def test_one_failing_organization_does_not_stop_the_others(store, sink, token):
    backend = three_club_backend(store, failing=["o2"])

    result = await MigrationEngine(backend, sink, token).migrate("user-1")

    assert result.success
    assert result.partial_success
    errors = result.progress.errors
    assert len(errors) == 1
    assert errors[0].type == "organization"
    assert errors[0].name == "Club 2"
    org_ids = [g["sportsengine_id"] for g in result.groups if g["group_type"] == "organization"]
    assert org_ids == ["o1", "o3"]
    assert result.progress.total == 4
    assert result.progress.current == 4


@pytest.mark.asyncio
async def test_member_failure_is_recorded_and_run_completes(eagles_backend, token):
    sink = InMemorySink(
        fail_when=lambda table, row: table == "profiles" and row.get("first_name") == "Pat"
    )

    result = await MigrationEngine(eagles_backend, sink, token).migrate("user-1")

    assert result.success
    assert result.partial_success
    assert [e.type for e in result.progress.errors] == ["staff"]
    assert len(result.members) == 1
    assert sink.tables["migrations"][0]["errors_count"] == 1


@pytest.mark.asyncio
async def test_profiles_are_reused_across_runs(eagles_backend, sink, token):
    await MigrationEngine(eagles_backend, sink, token).migrate("user-1")
    second = await MigrationEngine(eagles_backend, sink, token).migrate("user-1")

    assert len(sink.tables["profiles"]) == 2
    assert second.members[0]["user_id"] == sink.tables["profiles"][0]["id"]
    assert len(sink.tables["migrations"]) == 2


@pytest.mark.asyncio
async def test_organization_listing_failure_ends_in_error(store, sink, token):
    backend = ListingFailsBackend(store, [], {}, {})

    result = await MigrationEngine(backend, sink, token).migrate("user-1")

    assert not result.success
    assert result.progress.status == MigrationStatus.ERROR
    assert "organization listing unavailable" in result.error
    assert sink.tables["migrations"] == []


@pytest.mark.asyncio
async def test_expired_session_aborts_the_run(eagles_backend, sink, clock, token):
    clock.advance(90_000)

    result = await MigrationEngine(eagles_backend, sink, token).migrate("user-1")

    assert not result.success
    assert result.progress.status == MigrationStatus.ERROR
    assert result.groups == []


@pytest.mark.asyncio
async def test_selected_organizations_only(store, sink, token):
    backend = three_club_backend(store)

    result = await MigrationEngine(backend, sink, token).migrate("user-1", ["o3"])

    assert [g["name"] for g in result.groups] == ["Club 3", "Club 3 U10"]
    assert backend.calls["teams"] == 1


@pytest.mark.asyncio
async def test_progress_callback_sees_monotonic_snapshots(store, sink, token):
    snapshots = []
    backend = three_club_backend(store, failing=["o2"])

    await MigrationEngine(backend, sink, token, on_progress=snapshots.append).migrate("user-1")

    currents = [s.current for s in snapshots]
    assert currents == sorted(currents)
    assert all(s.current <= s.total for s in snapshots)
    assert snapshots[0].status == MigrationStatus.RUNNING
    assert snapshots[-1].status == MigrationStatus.COMPLETED
    # Snapshots are copies, not the live progress object
    assert len({id(s) for s in snapshots}) == len(snapshots)


@pytest.mark.asyncio
async def test_history_is_newest_first(sink):
    await sink.insert("migrations", {"user_id": "u1", "completed_at": "2026-01-01T00:00:00+00:00"})
    await sink.insert("migrations", {"user_id": "u1", "completed_at": "2026-03-01T00:00:00+00:00"})
    await sink.insert("migrations", {"user_id": "u2", "completed_at": "2026-02-01T00:00:00+00:00"})

    history = await get_migration_history(sink, "u1")

    assert [h["completed_at"][:7] for h in history] == ["2026-03", "2026-01"]


def test_derived_profile_id_is_stable():
    coach = Staff(name="Pat Kim", title="Head Coach")

    assert external_profile_id(coach, "t1", "Head Coach") == external_profile_id(
        Staff(name="Pat Kim"), "t1", "Head Coach"
    )
    assert external_profile_id(coach, "t1", "Head Coach") != external_profile_id(
        coach, "t2", "Head Coach"
    )
    assert external_profile_id(Player(name="Sam Lee", profile_id="se-99"), "t1") == "se-99"


def test_placeholder_email():
    assert placeholder_email("Mary-Jo", "O'Neil") == "maryjo.oneil@migrated.scout.app"
    assert placeholder_email("", "") == "member@migrated.scout.app"


@pytest.mark.asyncio
async def test_unfinished_extraction_task_writes_nothing(store, sink):
    backend = make_backend(store, RecordingHandler())
    token = (await backend.authenticate("coach@example.com", "pw")).token

    result = await MigrationEngine(backend, sink, token).migrate("user-1")

    assert not result.success
    assert result.progress.status == MigrationStatus.ERROR
    assert "still in progress" in result.error
    assert sink.tables["groups"] == []
    assert sink.tables["group_members"] == []
    assert sink.tables["migrations"] == []
    assert store.get(token).task.task_id == "task-1"


@pytest.mark.asyncio
async def test_placeholder_team_stops_the_run_before_writing(store, sink, token):
    organizations = [Organization(id="o1", name="Eagles")]
    teams = {
        "o1": [
            Team(
                id="o1",
                name="Data Extraction in Progress",
                organization_id="o1",
                task_in_progress=True,
            )
        ]
    }
    backend = FakeBackend(store, organizations, teams, {})

    result = await MigrationEngine(backend, sink, token).migrate("user-1")

    assert result.progress.status == MigrationStatus.ERROR
    assert result.groups == []
    assert sink.tables["groups"] == []
