from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from config import Settings
from main import create_app
from models import Role
from security import SessionAssertion

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "adminpass123"


@pytest.fixture
def settings(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'pharmacy.db'}"
    return Settings(
        database_url=db_url,
        sync_database_url=db_url,
        secret_key="test-secret",
        bcrypt_rounds=4,
        bootstrap_admin_username=ADMIN_USERNAME,
        bootstrap_admin_password=ADMIN_PASSWORD,
        api_prefix="/api",
    )


@pytest.fixture
async def app(settings):
    app = create_app(settings)
    await app.state.pharmacy.startup()
    yield app
    await app.state.pharmacy.shutdown()


@pytest.fixture
def pharmacy(app):
    return app.state.pharmacy


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


async def login_headers(client, username, password):
    resp = await client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
async def admin_headers(client):
    return await login_headers(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
async def cashier_headers(client, admin_headers):
    resp = await client.post(
        "/api/auth/register",
        json={"username": "cashier1", "password": "cashpass", "role": "cashier"},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return await login_headers(client, "cashier1", "cashpass")


def make_actor(role=Role.ADMIN, account_id=1, username="admin"):
    return SessionAssertion(
        account_id=account_id,
        username=username,
        role=role,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def admin_actor():
    return make_actor()


@pytest.fixture
def cashier_actor():
    return make_actor(Role.CASHIER, account_id=2, username="cashier1")
