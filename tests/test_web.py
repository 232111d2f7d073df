"""Browser UI tests — session login, page views, save and delete forms.

Learn: the httpx client keeps the session cookie between requests, so a
test logs in once through POST /login-auth and then behaves like a
browser. Redirects are not followed, which lets us assert on them.
"""

import pytest

from wikiserver.auth.credentials import CredentialStore

from conftest import login


@pytest.mark.asyncio
async def test_anonymous_redirected_to_login(client):
    r = await client.get("/")
    assert r.status_code == 302
    assert r.headers["location"] == "/login"

    r = await client.get("/login")
    assert r.status_code == 200
    assert 'action="/login-auth"' in r.text


@pytest.mark.asyncio
async def test_login_returns_to_requested_page(client):
    r = await client.get("/wiki/Hello")
    assert r.headers["location"] == "/login"

    r = await login(client, "foo", "bar")
    assert r.status_code == 303
    assert r.headers["location"] == "/wiki/Hello"


@pytest.mark.asyncio
async def test_login_without_pending_page_goes_home(client):
    r = await login(client, "foo", "bar")
    assert r.headers["location"] == "/"

    r = await client.get("/")
    assert r.status_code == 200
    assert "Signed in as foo" in r.text
    assert "The wiki is currently empty!" in r.text


@pytest.mark.asyncio
async def test_bad_login_stays_on_form(client):
    r = await login(client, "foo", "wrong")
    assert r.status_code == 401
    assert "Invalid username or password" in r.text

    r = await client.get("/")
    assert r.status_code == 302


@pytest.mark.asyncio
async def test_logout_ends_session(client):
    await login(client, "foo", "bar")
    r = await client.get("/logout")
    assert r.status_code == 302
    assert r.headers["location"] == "/"

    r = await client.get("/")
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


@pytest.mark.asyncio
async def test_new_page_shows_editor_template(client):
    await login(client, "bar", "baz")

    r = await client.get("/wiki/Fresh")
    assert r.status_code == 200
    assert "Feel-free to write in Markdown!" in r.text
    assert 'name="newPage" value="yes"' in r.text
    assert 'name="id" value="-1"' in r.text
    # A brand-new page has nothing to delete
    assert 'action="/action/delete"' not in r.text


@pytest.mark.asyncio
async def test_save_new_then_update(client, page_store):
    await login(client, "foo", "bar")

    r = await client.post(
        "/action/save",
        data={"title": "Hello", "markdown": "# Hi", "newPage": "yes", "id": "-1"},
    )
    assert r.status_code == 303
    assert r.headers["location"] == "/wiki/Hello"

    r = await client.get("/wiki/Hello")
    assert "<h1>Hi</h1>" in r.text
    assert 'name="newPage" value="no"' in r.text
    assert 'name="id" value="0"' in r.text
    assert 'action="/action/delete"' in r.text

    r = await client.post(
        "/action/save",
        data={"title": "Hello", "markdown": "changed", "newPage": "no", "id": "0"},
    )
    assert r.status_code == 303
    assert (await page_store.fetch_page("Hello")).value.content == "changed"

    r = await client.get("/")
    assert 'href="/wiki/Hello"' in r.text


@pytest.mark.asyncio
async def test_save_duplicate_new_page_is_409(client, page_store):
    await page_store.create_page("Taken", "original")
    await login(client, "foo", "bar")

    r = await client.post(
        "/action/save",
        data={"title": "Taken", "markdown": "mine", "newPage": "yes", "id": "-1"},
    )
    assert r.status_code == 409
    assert (await page_store.fetch_page("Taken")).value.content == "original"


@pytest.mark.asyncio
async def test_save_without_claim_is_403(client, page_store):
    await login(client, "baz", "baz")

    r = await client.post(
        "/action/save",
        data={"title": "Nope", "markdown": "x", "newPage": "yes", "id": "-1"},
    )
    assert r.status_code == 403
    assert (await page_store.fetch_all_pages()).value == []

    r = await client.get("/")
    assert 'action="/action/create"' not in r.text


@pytest.mark.asyncio
async def test_save_form_missing_title_is_400(client, page_store):
    await login(client, "foo", "bar")

    r = await client.post("/action/save", data={"markdown": "x", "newPage": "yes"})
    assert r.status_code == 400
    assert "Bad request payload" in r.text
    assert "<li>title</li>" in r.text
    assert (await page_store.fetch_all_pages()).value == []


@pytest.mark.asyncio
async def test_delete_requires_claim(client, page_store):
    await page_store.create_page("Keep", "x")
    await login(client, "bar", "baz")

    r = await client.get("/wiki/Keep")
    assert 'action="/action/delete"' not in r.text

    r = await client.post("/action/delete", data={"id": "0"})
    assert r.status_code == 403
    assert (await page_store.fetch_page("Keep")).value.found


@pytest.mark.asyncio
async def test_delete_with_claim(client, page_store):
    await page_store.create_page("Gone", "x")
    await login(client, "root", "w00t")

    r = await client.post("/action/delete", data={"id": "0"})
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert (await page_store.fetch_page("Gone")).value.found is False


@pytest.mark.asyncio
async def test_session_claims_are_live(client, db_session):
    """A role granted mid-session applies on the very next request."""
    await login(client, "baz", "baz")
    r = await client.get("/")
    assert 'action="/action/create"' not in r.text

    await CredentialStore(db_session).assign_role("baz", "writer")

    r = await client.get("/")
    assert 'action="/action/create"' in r.text


@pytest.mark.asyncio
async def test_create_action_redirects_to_editor(client):
    await login(client, "foo", "bar")

    r = await client.post("/action/create", data={"name": "My Page"})
    assert r.status_code == 303
    assert r.headers["location"] == "/wiki/My%20Page"


@pytest.mark.asyncio
async def test_markdown_preview(client):
    await login(client, "foo", "bar")

    r = await client.post("/app/markdown", content="**bold**")
    assert r.status_code == 200
    assert r.text == "<p><strong>bold</strong></p>"
