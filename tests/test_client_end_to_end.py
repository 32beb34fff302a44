from fastapi.testclient import TestClient

from anki_assistant.client.session_manager import ClientSessionManager
from anki_assistant.core.config import settings

from conftest import DEFAULT_PASSWORD

COOKIE = "refreshToken"


def _register_with_expired_access_token(manager: ClientSessionManager, monkeypatch) -> None:
    monkeypatch.setattr(settings, "ACCESS_TOKEN_MINUTES", -1)
    manager.register("alice", "alice@test.dev", DEFAULT_PASSWORD)
    monkeypatch.setattr(settings, "ACCESS_TOKEN_MINUTES", 15)


def test_expired_access_token_is_refreshed_before_request(client: TestClient, monkeypatch) -> None:
    manager = ClientSessionManager(client)
    _register_with_expired_access_token(manager, monkeypatch)
    assert manager.needs_refresh()

    response = manager.get("/user")

    assert response.status_code == 200
    assert response.json()["username"] == "alice"
    assert not manager.needs_refresh()


def test_rejected_request_is_retried_with_refreshed_token(client: TestClient, monkeypatch) -> None:
    # A clock stuck at the epoch never considers the token stale, so only the server can reject it.
    manager = ClientSessionManager(client, clock=lambda: 0.0)
    _register_with_expired_access_token(manager, monkeypatch)
    stale_token = manager.access_token

    response = manager.get("/user")

    assert response.status_code == 200
    assert manager.access_token != stale_token


def test_restoring_session_from_cookie(client: TestClient) -> None:
    ClientSessionManager(client).register("alice", "alice@test.dev", DEFAULT_PASSWORD)

    restored = ClientSessionManager(client)

    assert restored.initialize() is True
    assert restored.user is not None and restored.user["username"] == "alice"
    assert restored.get("/user").status_code == 200


def test_logout_ends_the_server_session(client: TestClient) -> None:
    manager = ClientSessionManager(client)
    manager.register("alice", "alice@test.dev", DEFAULT_PASSWORD)
    refresh_token = client.cookies.get(COOKIE)
    assert refresh_token

    manager.logout()

    assert not manager.is_authenticated
    assert client.cookies.get(COOKIE) is None
    replay = client.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={refresh_token}"})
    assert replay.status_code == 403
    assert client.post("/auth/refresh").status_code == 401
    assert ClientSessionManager(client).initialize() is False
