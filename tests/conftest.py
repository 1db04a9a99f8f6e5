from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app import create_app
from auth import AuthService, make_password_context
from config import Settings
from database import create_db_engine, create_session_factory, init_db
from storage import MemoryStorage, SqlStorage
from tasks import TaskService

SECRET = "test-secret-key"


class FakeClock:
    """Settable UTC clock for token expiry tests."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        storage="memory",
        secret_key=SECRET,
        token_ttl_seconds=3600,
        # Minimum bcrypt cost keeps the suite fast.
        bcrypt_rounds=4,
        login_rate_limit="100/minute",
        register_rate_limit="100/minute",
    )


@pytest.fixture()
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def sql_storage(tmp_path: Path) -> SqlStorage:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'todos.db'}")
    init_db(engine)
    yield SqlStorage(create_session_factory(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def storage(request):
    """Run the test once per storage backend."""
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture()
def auth_service(storage, clock) -> AuthService:
    return AuthService(
        storage,
        SECRET,
        token_ttl=timedelta(hours=1),
        clock=clock,
        pwd_context=make_password_context(4),
    )


@pytest.fixture()
def task_service(storage) -> TaskService:
    return TaskService(storage)


@pytest.fixture()
def client(settings, memory_storage, clock) -> TestClient:
    app = create_app(settings=settings, storage=memory_storage, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def login_as(client):
    """Register ``username`` and return Authorization headers for it."""

    def _login_as(username: str, password: str = "pw1") -> dict:
        r = client.post("/register", json={"username": username, "password": password})
        assert r.status_code == 201, r.text
        r = client.post("/login", json={"username": username, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return _login_as


@pytest.fixture()
def sql_client(settings, sql_storage, clock) -> TestClient:
    app = create_app(settings=settings, storage=sql_storage, clock=clock)
    with TestClient(app) as c:
        yield c
