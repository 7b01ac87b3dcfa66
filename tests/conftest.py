from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from helpdesk.auth.jwt_handler import create_token
from helpdesk.auth.passwords import hash_password
from helpdesk.config import get_settings
from helpdesk.main import create_app
from helpdesk.storage.repositories import ticket_create, user_create

BASE_TIME = datetime(2024, 3, 1, 9, 0, 0)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
async def app(settings):
    application = create_app()
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
def database(app):
    return app.state.db


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def make_ticket(database):
    """Insert a ticket; minutes offsets created_at from a fixed base so ordering is deterministic."""
    async def _make(email="user@x.com", subject="Printer jam", minutes=0, **fields):
        fields.setdefault("message", "")
        async with database.session() as session:
            return await ticket_create(
                session,
                email=email,
                subject=subject,
                created_at=BASE_TIME + timedelta(minutes=minutes),
                **fields,
            )
    return _make


@pytest.fixture
def make_user(database):
    async def _make(email="user@x.com", role="user", password="secret123", name="Test User"):
        async with database.session() as session:
            return await user_create(
                session,
                name=name,
                email=email,
                password_hash=hash_password(password),
                role=role,
            )
    return _make


def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user.id, user.role)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
async def admin_headers(make_user):
    return auth_headers(await make_user(email="admin@x.com", role="admin"))


@pytest.fixture
async def user_headers(make_user):
    return auth_headers(await make_user(email="a@x.com", role="user"))
