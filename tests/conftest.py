import os

os.environ.setdefault("JWT_SECRET", "test-secret-for-anki-assistant")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from anki_assistant.core.security import hash_password
from anki_assistant.db.session import get_session
from anki_assistant.main import app
from anki_assistant.models.user import User, UserRole, UserStatus

DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine: Engine) -> Iterator[TestClient]:
    def get_test_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_test_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(engine: Engine) -> Callable[..., int]:
    def _make_user(
        username: str = "alice",
        *,
        password: str = DEFAULT_PASSWORD,
        email: str | None = None,
        role: UserRole = UserRole.user,
        status: UserStatus = UserStatus.active,
    ) -> int:
        with Session(engine) as session:
            user = User(
                username=username,
                email=email or f"{username}@test.dev",
                password_hash=hash_password(password),
                role=role,
                status=status,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            assert user.id is not None
            return user.id

    return _make_user
