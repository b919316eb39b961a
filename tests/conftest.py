"""
Pytest fixtures for the test suite.

Each test gets its own file-backed SQLite database under ``tmp_path`` (separate
connections per unit of work, like a real pool), with all tables created up front.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from erp.db.base import Base
from erp.db.record import ActiveRecord
from erp.db.session import Database
from erp.models.security import Permission, Role, User
from erp.settings import DatabaseSettings, JWTSettings, ServerSettings, Settings

TEST_SECRET = "test-secret-that-is-long-enough-for-hs256"
SUPER_ACCOUNT = "root"


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """bcrypt at its minimum cost; production cost is pointless in tests."""
    monkeypatch.setattr("erp.security.passwords.DEFAULT_ROUNDS", 4)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database=DatabaseSettings(url=f"sqlite:///{tmp_path / 'test.db'}"),
        jwt=JWTSettings(secret=TEST_SECRET, expiry_hours=1),
        server=ServerSettings(mode="debug"),
        super_account=SUPER_ACCOUNT,
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database)
    Base.metadata.create_all(bind=db.engine)
    yield db
    db.dispose()


@pytest.fixture
def session_factory(database):
    return database.session_factory


@pytest.fixture
def users(session_factory) -> ActiveRecord[User]:
    return ActiveRecord(User, session_factory)


@pytest.fixture
def roles(session_factory) -> ActiveRecord[Role]:
    return ActiveRecord(Role, session_factory)


@pytest.fixture
def permissions(session_factory) -> ActiveRecord[Permission]:
    return ActiveRecord(Permission, session_factory)


@pytest.fixture
def make_user(users):
    def _make(username: str, password: str = "secret123", **fields) -> User:
        user = User(username=username, **fields)
        user.set_password(password)
        return users.create(user)

    return _make


@pytest.fixture
def make_permission(permissions):
    def _make(path: str, method: str = "GET") -> Permission:
        return permissions.create(
            Permission(name=f"{path}#{method}", path=path, method=method, description=f"{method} {path}")
        )

    return _make


@pytest.fixture
def app(settings, database):
    from erp.main import create_app

    return create_app(settings, database)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
