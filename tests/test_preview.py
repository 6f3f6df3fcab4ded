import pytest

from se_migrator.backends.base_backend import SessionExpiredError
from se_migrator.backends.browser_backend import BrowserExtractionBackend
from se_migrator.models.organization import Organization
from se_migrator.models.roster import Player, Staff
from se_migrator.models.team import ExtractedTeam, Team
from se_migrator.preview.aggregator import PreviewAggregator

from .conftest import PASSWORD, FakeBackend, FakeScraper


def club_backend(store, failing=()):
    organizations = [
        Organization(id="o1", name="Eagles"),
        Organization(id="o2", name="Hawks"),
    ]
    teams = {
        "o1": [
            Team(id="t1", name="Eagles U10", organization_id="o1", player_count=9, staff_count=2),
            Team(id="t2", name="Eagles U12", organization_id="o1", player_count=11, staff_count=1),
        ],
        "o2": [Team(id="t3", name="Hawks JV", organization_id="o2", player_count=15, staff_count=3)],
    }
    return FakeBackend(store, organizations, teams, {}, failing_organizations=failing)


@pytest.mark.asyncio
async def test_preview_sums_counts(store, token):
    preview = await PreviewAggregator(club_backend(store)).preview(token)

    assert preview.summary.organization_count == 2
    assert preview.summary.team_count == 3
    assert preview.summary.player_count == 35
    assert preview.summary.staff_count == 6
    assert [t.id for t in preview.organizations[0].teams] == ["t1", "t2"]


@pytest.mark.asyncio
async def test_failing_organization_is_kept_with_no_teams(store, token):
    preview = await PreviewAggregator(club_backend(store, failing=["o1"])).preview(token)

    assert [o.id for o in preview.organizations] == ["o1", "o2"]
    assert preview.organizations[0].teams == []
    assert preview.summary.organization_count == 2
    assert preview.summary.team_count == 1
    assert preview.summary.player_count == 15


@pytest.mark.asyncio
async def test_preview_uses_camel_case_on_the_wire(store, token):
    preview = await club_backend(store).get_migration_preview(token)

    wire = preview.to_wire()

    assert wire["summary"]["teamCount"] == 3
    assert wire["organizations"][0]["teams"][0]["playerCount"] == 9
    assert wire["organizations"][0]["teams"][0]["organizationId"] == "o1"


@pytest.mark.asyncio
async def test_expired_session_is_not_swallowed(store, clock, token):
    backend = club_backend(store)
    clock.advance(90_000)

    with pytest.raises(SessionExpiredError):
        await PreviewAggregator(backend).preview(token)


@pytest.mark.asyncio
async def test_repeated_preview_scrapes_once(store):
    scraper = FakeScraper(
        [Organization(id="o1", name="Eagles")],
        {
            "o1": [
                ExtractedTeam(
                    id="t1",
                    name="Eagles U12",
                    players=[Player(name="Sam Lee"), Player(name="Jo Park")],
                    staff=[Staff(name="Pat Kim", title="Head Coach")],
                )
            ]
        },
    )
    backend = BrowserExtractionBackend(store, scraper)
    token = (await backend.authenticate("parent@example.com", PASSWORD)).token

    first = await backend.get_migration_preview(token)
    second = await backend.get_migration_preview(token)

    assert first == second
    assert second.summary.player_count == 2
    assert second.summary.staff_count == 1
    assert scraper.calls["organizations"] == 1
    assert scraper.calls["teams"] == 1


class DetachingBackend(FakeBackend):
    async def get_teams_for_organization(self, token, organization_id):
        if organization_id == "o2":
            raise RuntimeError("page detached")
        return await super().get_teams_for_organization(token, organization_id)


@pytest.mark.asyncio
async def test_unexpected_error_in_one_organization_keeps_siblings(store, token):
    organizations = [Organization(id=f"o{i}", name=f"Club {i}") for i in (1, 2, 3)]
    teams = {
        "o1": [Team(id="t1", name="Club 1 U10", organization_id="o1", player_count=4)],
        "o3": [Team(id="t3", name="Club 3 U10", organization_id="o3", player_count=6)],
    }
    backend = DetachingBackend(store, organizations, teams, {})

    preview = await PreviewAggregator(backend).preview(token)

    assert [o.id for o in preview.organizations] == ["o1", "o2", "o3"]
    assert preview.organizations[1].teams == []
    assert preview.summary.team_count == 2
    assert preview.summary.player_count == 10
