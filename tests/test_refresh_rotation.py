from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine, select

from anki_assistant.core.config import settings
from anki_assistant.core.errors import (
    MissingCredential,
    SessionExpired,
    SessionNotFound,
    SessionRevoked,
)
from anki_assistant.core.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    hash_refresh_token,
    new_token_family,
)
from anki_assistant.models.base import utcnow
from anki_assistant.models.user import User
from anki_assistant.models.user_session import UserSession
from anki_assistant.services.refresh import RefreshCoordinator, start_session
from anki_assistant.services.session_store import SessionStore

COOKIE = "refreshToken"


@pytest.fixture
def file_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sessions.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _seed_user(session: Session, username: str = "alice") -> User:
    user = User(
        username=username,
        email=f"{username}@test.dev",
        password_hash=hash_password("correct-horse-battery"),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def test_coordinator_rejects_missing_and_unknown_tokens(db: Session) -> None:
    coordinator = RefreshCoordinator(db)

    with pytest.raises(MissingCredential):
        coordinator.refresh(None)
    with pytest.raises(MissingCredential):
        coordinator.refresh("")
    with pytest.raises(SessionNotFound):
        coordinator.refresh("definitely-not-issued")


def test_rotation_revokes_predecessor_and_keeps_family(db: Session) -> None:
    user = _seed_user(db)
    tokens = start_session(SessionStore(db), user)
    family = decode_refresh_token(tokens.refresh_token)["family"]

    outcome = RefreshCoordinator(db, rotate=True).refresh(tokens.refresh_token)

    assert outcome.refresh_token is not None
    assert outcome.refresh_token != tokens.refresh_token
    assert decode_refresh_token(outcome.refresh_token)["family"] == family
    assert decode_access_token(outcome.access_token)["sub"] == str(user.id)

    store = SessionStore(db)
    previous = store.find_by_hash(hash_refresh_token(tokens.refresh_token))
    successor = store.find_by_hash(hash_refresh_token(outcome.refresh_token))
    assert previous is not None and previous.revoked_at is not None
    assert successor is not None and successor.revoked_at is None
    assert successor.family == family


def test_replaying_rotated_token_revokes_successor(db: Session) -> None:
    user = _seed_user(db)
    tokens = start_session(SessionStore(db), user)
    coordinator = RefreshCoordinator(db, rotate=True)
    outcome = coordinator.refresh(tokens.refresh_token)

    with pytest.raises(SessionRevoked):
        coordinator.refresh(tokens.refresh_token)

    successor = SessionStore(db).find_by_hash(hash_refresh_token(outcome.refresh_token))
    assert successor is not None and successor.revoked_at is not None
    with pytest.raises(SessionRevoked):
        coordinator.refresh(outcome.refresh_token)


def test_losing_a_rotation_race_revokes_the_family(file_engine: Engine) -> None:
    with Session(file_engine) as setup:
        user = _seed_user(setup)
        tokens = start_session(SessionStore(setup), user)
    token_hash = hash_refresh_token(tokens.refresh_token)

    with Session(file_engine) as first, Session(file_engine) as second:
        # The second request has already read the session while it was still live.
        stale = SessionStore(second).find_by_hash(token_hash)
        assert stale is not None and stale.revoked_at is None

        winner = RefreshCoordinator(first, rotate=True).refresh(tokens.refresh_token)
        assert winner.refresh_token is not None

        with pytest.raises(SessionRevoked):
            RefreshCoordinator(second, rotate=True).refresh(tokens.refresh_token)

    with Session(file_engine) as check:
        rows = check.exec(select(UserSession)).all()
        assert len(rows) == 2
        assert all(row.revoked_at is not None for row in rows)


def test_refresh_endpoint_rotates_cookie_when_enabled(
    client: TestClient,
    engine: Engine,
    monkeypatch,
) -> None:
    monkeypatch.setattr(settings, "ROTATE_REFRESH_TOKENS", True)
    registered = client.post(
        "/auth/register",
        json={"username": "ivan", "email": "ivan@test.dev", "password": "correct-horse-battery"},
    )
    first_token = registered.cookies.get(COOKIE)

    rotated = client.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={first_token}"})

    assert rotated.status_code == 200
    replacement = rotated.cookies.get(COOKIE)
    assert replacement and replacement != first_token
    assert "httponly" in rotated.headers["set-cookie"].lower()

    replay = client.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={first_token}"})
    assert replay.status_code == 403

    after_replay = client.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={replacement}"})
    assert after_replay.status_code == 403

    with Session(engine) as session:
        rows = session.exec(select(UserSession)).all()
        assert len(rows) == 2
        assert all(row.revoked_at is not None for row in rows)


def _store_session_for(db: Session, user: User, refresh_token: str, family: str) -> UserSession:
    return SessionStore(db).create(
        user_id=user.id,
        token_hash=hash_refresh_token(refresh_token),
        family=family,
        expires_at=utcnow() + timedelta(days=7),
    )


def test_stored_token_with_foreign_signature_is_rejected(db: Session) -> None:
    user = _seed_user(db)
    family = new_token_family()
    forged = jwt.encode(
        {"sub": str(user.id), "role": "admin", "type": "refresh", "family": family, "exp": 4_102_444_800},
        "not-the-server-key",
        algorithm=settings.JWT_ALG,
    )
    _store_session_for(db, user, forged, family)

    with pytest.raises(SessionNotFound):
        RefreshCoordinator(db).refresh(forged)


def test_access_token_cannot_be_used_as_refresh_token(db: Session) -> None:
    user = _seed_user(db)
    access_token = create_access_token(user.id, "user")
    _store_session_for(db, user, access_token, new_token_family())

    with pytest.raises(SessionNotFound):
        RefreshCoordinator(db).refresh(access_token)


def test_token_subject_must_match_the_stored_session(db: Session) -> None:
    owner = _seed_user(db, "owner")
    other = _seed_user(db, "other")
    family = new_token_family()
    token = create_refresh_token(other.id, "user", family=family)
    _store_session_for(db, owner, token, family)

    with pytest.raises(SessionNotFound):
        RefreshCoordinator(db).refresh(token)


def test_expired_signature_is_reported_as_expired_session(db: Session) -> None:
    user = _seed_user(db)
    family = new_token_family()
    token = create_refresh_token(user.id, "user", family=family, expires_days=-1)
    stored = _store_session_for(db, user, token, family)

    with pytest.raises(SessionExpired):
        RefreshCoordinator(db).refresh(token)

    row = SessionStore(db).find_by_hash(stored.token_hash)
    assert row is not None and row.revoked_at is None


def test_expired_signature_of_revoked_session_still_revokes_family(db: Session) -> None:
    user = _seed_user(db)
    family = new_token_family()
    expired = create_refresh_token(user.id, "user", family=family, expires_days=-1)
    live = create_refresh_token(user.id, "user", family=family)
    _store_session_for(db, user, expired, family)
    _store_session_for(db, user, live, family)
    store = SessionStore(db)
    store.revoke_by_hash(hash_refresh_token(expired))

    with pytest.raises(SessionRevoked):
        RefreshCoordinator(db).refresh(expired)

    sibling = store.find_by_hash(hash_refresh_token(live))
    assert sibling is not None and sibling.revoked_at is not None
