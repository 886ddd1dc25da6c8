import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from horizonte.config import SESSION_COOKIE_NAME
from horizonte.db import build_sessionmaker, create_tables
from horizonte.kv import KvStore
from horizonte.main import create_app
from horizonte.repositories import build_repositories
from horizonte.services import seed

ADMIN_EMAIL = "admin@horizonte.com"
PASSWORD = "password123"


def make_engine():
    # one shared in-memory connection per test
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest_asyncio.fixture
async def engine():
    engine = make_engine()
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """On-disk database with a real pool, so concurrent commits use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'horizonte.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def kv(engine):
    return KvStore(build_sessionmaker(engine))


@pytest.fixture
def repos(kv):
    return build_repositories(kv)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(seed, "SUPERADMIN_EMAIL", ADMIN_EMAIL)
    monkeypatch.setattr(seed, "SUPERADMIN_PASSWORD", PASSWORD)
    monkeypatch.setattr(seed, "SEED_DEFAULT_ROOMS", True)

    engine = make_engine()
    app = create_app(engine=engine)
    with TestClient(app) as c:
        yield c
        c.portal.call(engine.dispose)


@pytest.fixture
def app_repos(client):
    """Repositories of the running app; call them through `client.portal.call`."""
    return client.app.state.repositories


def login(client, email, password=PASSWORD) -> str:
    client.cookies.clear()
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.cookies[SESSION_COOKIE_NAME]


def use_session(client, session_id: str) -> None:
    client.cookies.clear()
    client.cookies.set(SESSION_COOKIE_NAME, session_id)


def create_psychologist(client, email, name="Dr. Test"):
    r = client.post(
        "/api/psychologists",
        json={"email": email, "password": PASSWORD, "name": name},
    )
    assert r.status_code == 201, r.text
    return r.json()["psychologist"]


@pytest.fixture
def admin_session(client):
    return login(client, ADMIN_EMAIL)


@pytest.fixture
def psychologist_session(client, admin_session):
    create_psychologist(client, "psicologo1@horizonte.com", "Dr. Carlos Mendoza")
    sid = login(client, "psicologo1@horizonte.com")
    use_session(client, admin_session)
    return sid
