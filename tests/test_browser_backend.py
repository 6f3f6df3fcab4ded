import pytest

from se_migrator.backends.base_backend import (
    ExtractionError,
    SessionExpiredError,
    UnsupportedOperationError,
)
from se_migrator.backends.browser_backend import BrowserExtractionBackend
from se_migrator.models.organization import Organization
from se_migrator.models.roster import Player
from se_migrator.models.team import ExtractedTeam

from .conftest import PASSWORD, FakeScraper


@pytest.fixture
def scraper():
    return FakeScraper(
        [Organization(id="o1", name="Eagles", url="https://teams.sportngin.com/team/1")],
        {
            "o1": [
                ExtractedTeam(id="t1", name="Eagles U12", players=[Player(name="Sam Lee")]),
                ExtractedTeam(id="t2", name="Eagles U14", roster_loaded=False),
            ]
        },
    )


@pytest.fixture
def backend(store, scraper):
    return BrowserExtractionBackend(store, scraper)


@pytest.mark.asyncio
async def test_bad_credentials_return_failed_result(backend, store):
    result = await backend.authenticate("parent@example.com", "wrong")

    assert not result.success
    assert result.token is None
    assert "Invalid" in result.message
    assert len(store) == 0


@pytest.mark.asyncio
async def test_validate_credentials_keeps_no_session(backend, store):
    check = await backend.validate_credentials("parent@example.com", PASSWORD)

    assert check.valid
    assert len(store) == 0


@pytest.mark.asyncio
async def test_rosters_scraped_with_teams_are_served_from_cache(backend, scraper):
    token = (await backend.authenticate("parent@example.com", PASSWORD)).token

    teams = await backend.get_teams_for_organization(token, "o1")
    roster = await backend.get_team_roster(token, "t1")

    assert [t.player_count for t in teams] == [1, 0]
    assert teams[0].organization_id == "o1"
    assert [p.name for p in roster.players] == ["Sam Lee"]
    assert scraper.calls["roster"] == 0


@pytest.mark.asyncio
async def test_unloaded_roster_is_scraped_once(backend, scraper):
    token = (await backend.authenticate("parent@example.com", PASSWORD)).token
    await backend.get_teams_for_organization(token, "o1")

    await backend.get_team_roster(token, "t2")
    await backend.get_team_roster(token, "t2")

    assert scraper.calls["roster"] == 1


@pytest.mark.asyncio
async def test_unknown_organization(backend):
    token = (await backend.authenticate("parent@example.com", PASSWORD)).token

    with pytest.raises(ExtractionError):
        await backend.get_teams_for_organization(token, "o9")


@pytest.mark.asyncio
async def test_disconnected_session_is_expired(backend):
    token = (await backend.authenticate("parent@example.com", PASSWORD)).token

    backend.disconnect(token)

    with pytest.raises(SessionExpiredError):
        await backend.get_organizations(token)
    assert not (await backend.test_connection(token)).success


@pytest.mark.asyncio
async def test_task_operations_are_unsupported(backend):
    token = (await backend.authenticate("parent@example.com", PASSWORD)).token

    with pytest.raises(UnsupportedOperationError):
        await backend.check_task_completion(token)
    with pytest.raises(UnsupportedOperationError):
        await backend.handle_notification({"event_type": "task_stopped"})
