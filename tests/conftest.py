"""Test fixtures — a throwaway SQLite database per test.

Learn: Testing pattern for the wiki:

1. Each test gets its own SQLite file under pytest's tmp_path, so nothing
   leaks between tests and no database server is needed.
2. startup() brings up the same resources the app lifespan does (engine,
   tables, page store, token issuer, session store), minus Redis.
3. The demo accounts are seeded, so tests log in as real users through
   the real auth pipeline:

       root/w00t  admin            create, update, delete
       foo/bar    editor, writer   create, update, delete
       bar/baz    writer           create, update
       baz/baz    (no roles)       nothing

httpx's ASGITransport doesn't run the lifespan, which is why the `services`
fixture calls startup()/shutdown() itself.
"""

import os

# Must be set before wikiserver.config is imported.
os.environ.setdefault("WIKI_BCRYPT_ROUNDS", "4")
os.environ.setdefault("WIKI_JWT_SECRET", "test-signing-secret-that-is-long-enough-for-hs256")
os.environ.setdefault("WIKI_SESSION_SECRET", "test-session-secret")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from wikiserver.auth.credentials import seed_demo_credentials
from wikiserver.db.engine import session_factory
from wikiserver.main import app, shutdown, startup
from wikiserver.services.page_store import get_page_store


@pytest_asyncio.fixture()
async def services(tmp_path):
    """Every shared resource, backed by a fresh database file."""
    await startup(database_url=f"sqlite+aiosqlite:///{tmp_path / 'wiki.db'}", with_redis=False)
    async with session_factory()() as db:
        await seed_demo_credentials(db)
    try:
        yield
    finally:
        await shutdown()


@pytest_asyncio.fixture()
async def db_session(services):
    """A credential-store session on the test database."""
    async with session_factory()() as session:
        yield session


@pytest_asyncio.fixture()
async def page_store(services):
    return get_page_store()


@pytest_asyncio.fixture()
async def client(services):
    """HTTP client talking to the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def fetch_token(client: AsyncClient, login: str, password: str) -> str:
    r = await client.get("/api/token", headers={"login": login, "password": password})
    assert r.status_code == 200, r.text
    return r.text


async def login(client: AsyncClient, username: str, password: str):
    """Log the client in through the form; the session cookie sticks."""
    return await client.post(
        "/login-auth", data={"username": username, "password": password}
    )


@pytest_asyncio.fixture()
async def editor_headers(client):
    """Bearer headers for foo (create, update, delete)."""
    token = await fetch_token(client, "foo", "bar")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def writer_headers(client):
    """Bearer headers for bar (create, update; no delete)."""
    token = await fetch_token(client, "bar", "baz")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def reader_headers(client):
    """Bearer headers for baz (no claims at all)."""
    token = await fetch_token(client, "baz", "baz")
    return {"Authorization": f"Bearer {token}"}
