import json

import httpx
import pytest

from se_migrator.api.app import create_app
from se_migrator.client.local_store import LocalSessionStore
from se_migrator.client.proxy import ProxyBackendError, RemoteProxyClient

from .conftest import PASSWORD, FakeBackend, FixedClock, eagles_data
from .test_manus_backend import TEAMS_JSON, RecordingHandler, StubStatusProvider, make_backend


@pytest.fixture
def local_store(tmp_path, clock):
    return LocalSessionStore(tmp_path / "session.json", clock=clock)


@pytest.fixture
def proxy(store, local_store):
    organizations, teams, rosters = eagles_data()
    app = create_app(FakeBackend(store, organizations, teams, rosters), store)
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://migrator")
    return RemoteProxyClient("http://migrator", local_store, client=client)


@pytest.mark.asyncio
async def test_login_saves_session_and_sends_bearer_token(proxy, local_store):
    body = await proxy.authenticate_with_credentials("parent@example.com", PASSWORD)

    assert local_store.token == body["token"]
    assert local_store.load()["email"] == "parent@example.com"
    assert proxy.is_authenticated()

    orgs = await proxy.get_organizations()
    teams = await proxy.get_teams_for_organization("o1")
    roster = await proxy.get_team_roster("t1")
    preview = await proxy.get_migration_preview()

    assert [o.name for o in orgs] == ["Eagles"]
    assert teams[0].player_count == 1
    assert roster.players[0].jersey_number == "7"
    assert preview.summary.team_count == 1
    assert (await proxy.test_connection()).success


@pytest.mark.asyncio
async def test_rejected_login_raises_with_server_message(proxy, local_store):
    with pytest.raises(ProxyBackendError) as exc_info:
        await proxy.authenticate_with_credentials("parent@example.com", "wrong")

    assert exc_info.value.status_code == 401
    assert str(exc_info.value) == "Invalid credentials"
    assert local_store.load() is None


@pytest.mark.asyncio
async def test_calls_without_session_fail_locally(proxy):
    assert not proxy.is_authenticated()

    with pytest.raises(ProxyBackendError) as exc_info:
        await proxy.get_organizations()

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_server_side_expiry_clears_local_session(proxy, local_store, clock):
    await proxy.authenticate_with_credentials("parent@example.com", PASSWORD)
    local_store.ttl_seconds = 200_000
    clock.advance(90_000)

    with pytest.raises(ProxyBackendError) as exc_info:
        await proxy.get_organizations()

    assert exc_info.value.status_code == 401
    assert "reauthenticate" in str(exc_info.value)
    assert not local_store.path.exists()


@pytest.mark.asyncio
async def test_clear_session_closes_server_session(proxy, store, local_store):
    await proxy.authenticate_with_credentials("parent@example.com", PASSWORD)
    assert len(store) == 1

    await proxy.clear_session()

    assert len(store) == 0
    assert not proxy.is_authenticated()


@pytest.mark.asyncio
async def test_server_errors_use_message_or_detail(local_store):
    def handler(request):
        if request.url.path.endswith("/organizations"):
            return httpx.Response(502, json={"success": False, "error": "Timed out loading teams"})
        return httpx.Response(404, json={"detail": "Not Found"})

    local_store.save({"token": "abc"})
    proxy = RemoteProxyClient(
        "http://migrator",
        local_store,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://migrator"),
    )

    with pytest.raises(ProxyBackendError, match="Timed out loading teams"):
        await proxy.get_organizations()
    with pytest.raises(ProxyBackendError, match="Not Found"):
        await proxy.get_team_roster("t1")
    assert local_store.token == "abc"


def test_local_session_expires(tmp_path):
    clock = FixedClock()
    local_store = LocalSessionStore(tmp_path / "s.json", ttl_seconds=100, clock=clock)
    local_store.save({"token": "abc", "taskId": None})

    assert json.loads(local_store.path.read_text())["savedAt"] == clock.now
    assert "taskId" not in local_store.load()

    clock.advance(60)
    local_store.update(taskUrl="https://manus.im/app/t")
    clock.advance(41)

    assert local_store.load() is None
    assert not local_store.path.exists()


def test_unreadable_session_file_is_discarded(tmp_path):
    path = tmp_path / "s.json"
    path.write_text("{not json")

    assert LocalSessionStore(path).load() is None
    assert not path.exists()


@pytest.mark.asyncio
async def test_delegated_task_info_is_kept_until_completion(store, local_store):
    provider = StubStatusProvider(
        [
            None,
            {
                "task_id": "task-1",
                "message": json.dumps(TEAMS_JSON),
                "attachments": [],
                "stop_reason": "finish",
            },
        ]
    )
    backend = make_backend(store, RecordingHandler(), status_provider=provider)
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=create_app(backend, store)), base_url="http://migrator"
    )
    proxy = RemoteProxyClient("http://migrator", local_store, client=client)

    await proxy.authenticate_with_credentials("coach@example.com", "pw")
    assert "taskId" not in local_store.load()

    orgs = await proxy.get_organizations()

    assert orgs[0].is_placeholder
    saved = local_store.load()
    assert saved["taskId"] == "task-1"
    assert saved["taskUrl"] == "https://manus.im/app/task-1"

    assert not (await proxy.check_task_completion()).completed
    assert local_store.load()["taskId"] == "task-1"

    done = await proxy.check_task_completion()

    assert done.completed
    saved = local_store.load()
    assert "taskId" not in saved
    assert "taskUrl" not in saved
    assert saved["token"]
