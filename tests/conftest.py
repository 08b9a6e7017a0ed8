"""
Shared fixtures: a throwaway sqlite database seeded with the demo data, and an
httpx client bound to a freshly built app.
"""

import os
import tempfile
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="idp-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'idp.db'}"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123456789"
os.environ["COOKIE_SECRET"] = "test-cookie-secret-0123456789abcdef012345"
os.environ["IDP_URL"] = "http://testserver"
os.environ["GOOGLE_CLIENT_ID"] = "google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-client-secret"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["APP_A_URL"] = ""
os.environ["APP_B_URL"] = ""

import pytest  # noqa: E402


@pytest.fixture
async def database():
    import idp.database.orms  # noqa
    from idp.database import Base, engine, get_session
    from idp.database.seed import seed_demo_data

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with get_session() as session:
        await seed_demo_data(session)
        await session.commit()
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(database):
    from idp.database import get_session

    async with get_session() as session:
        yield session


@pytest.fixture
async def client(database):
    from httpx import ASGITransport, AsyncClient
    from idp.main import create_app

    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
        yield http
