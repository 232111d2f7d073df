"""wikiserver CLI — run the server, manage accounts, talk to the API.

Usage:
    wikiserver serve                              # Run the HTTP server
    wikiserver init-db --seed                     # Create tables + demo accounts
    wikiserver add-user alice s3cret -r writer    # Add an account
    wikiserver grant writer create                # Let a role create pages
    wikiserver export -o backup.json              # Dump every page as JSON
    wikiserver token foo bar                      # Get an API token
    wikiserver pages --token ...                  # List pages through the API

Local commands (init-db, add-user, grant, export) use the WIKI_* database
settings directly. Remote commands (token, pages) call a running server.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from wikiserver import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8080"


def _api_url() -> str:
    return os.environ.get("WIKI_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the wiki server."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


async def _with_database(action):
    """Bring up engine + page store, run `action`, tear everything down."""
    from wikiserver.main import shutdown, startup

    await startup(with_redis=False)
    try:
        return await action()
    finally:
        await shutdown()


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="wikiserver")
def main():
    """wikiserver — a wiki with a browser UI and a JSON API."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: WIKI_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: WIKI_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP server."""
    import uvicorn

    from wikiserver.config import settings

    uvicorn.run(
        "wikiserver.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Local administration
# ---------------------------------------------------------------------------


@main.command("init-db")
@click.option("--seed", is_flag=True, help="Install the demo accounts and role grants")
def init_db(seed: bool):
    """Create the pages and credential tables."""

    async def action():
        if seed:
            from wikiserver.auth.credentials import seed_demo_credentials
            from wikiserver.db.engine import session_factory

            async with session_factory()() as db:
                await seed_demo_credentials(db)

    _run(_with_database(action))
    click.secho("Database ready" + (" (demo accounts installed)" if seed else ""), fg="green")


@main.command("add-user")
@click.argument("username")
@click.argument("password")
@click.option("--role", "-r", "roles", multiple=True, help="Role to assign (repeatable)")
def add_user(username: str, password: str, roles: tuple[str, ...]):
    """Create an account."""
    from wikiserver.auth.credentials import CredentialStore
    from wikiserver.db.engine import session_factory

    async def action():
        async with session_factory()() as db:
            store = CredentialStore(db)
            if await store.get_user(username) is not None:
                return False
            await store.add_user(username, password, roles)
            return True

    if not _run(_with_database(action)):
        _fail(f"user {username!r} already exists")
    click.secho(f"User {username} created", fg="green")


@main.command()
@click.argument("role")
@click.argument("perm", type=click.Choice(["create", "update", "delete"]))
def grant(role: str, perm: str):
    """Grant a page permission to a role."""
    from wikiserver.auth.credentials import CredentialStore
    from wikiserver.db.engine import session_factory

    async def action():
        async with session_factory()() as db:
            await CredentialStore(db).grant_permission(role, perm)

    _run(_with_database(action))
    click.secho(f"Role {role} may now {perm} pages", fg="green")


@main.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to a file instead of stdout")
def export(output: Optional[str]):
    """Dump every page (id, name, content) as JSON."""
    from wikiserver.services.page_store import get_page_store

    async def action():
        return await get_page_store().fetch_all_pages_data()

    outcome = _run(_with_database(action))
    if outcome.failed:
        _fail(str(outcome.error))

    data = json.dumps([p.to_dict() for p in outcome.value], indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(data)
        click.secho(f"Exported {len(outcome.value)} pages to {output}", fg="green")
    else:
        click.echo(data)


# ---------------------------------------------------------------------------
# Remote commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("login")
@click.argument("password")
def token(login: str, password: str):
    """Fetch an API token from a running server."""

    async def fetch():
        async with _client() as c:
            return await c.get("/api/token", headers={"login": login, "password": password})

    r = _run(fetch())
    if r.status_code != 200:
        _fail(f"could not get a token (HTTP {r.status_code})")
    click.echo(r.text)


@main.command()
@click.option("--token", "-t", "api_token", envvar="WIKI_API_TOKEN", required=True,
              help="Bearer token (or set WIKI_API_TOKEN)")
def pages(api_token: str):
    """List pages through the API."""

    async def fetch():
        async with _client() as c:
            return await c.get("/api/pages", headers={"Authorization": f"Bearer {api_token}"})

    r = _run(fetch())
    if r.status_code != 200:
        _fail(r.json().get("error", f"HTTP {r.status_code}"))

    rows = r.json()["pages"]
    if not rows:
        click.echo("No pages.")
        return
    click.secho(f"{'ID':<6}  NAME", bold=True)
    click.echo("-" * 40)
    for row in rows:
        click.echo(f"{row['id']:<6}  {row['name']}")


if __name__ == "__main__":
    main()
