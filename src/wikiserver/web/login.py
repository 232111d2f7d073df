"""Login, logout and the session lifecycle.

Learn: a successful login starts a brand-new server-side session (any old
one is destroyed first) bound to the username only. The browser is then
sent back to the page that triggered the login redirect, or to /.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wikiserver.auth.authenticator import AuthFailure, Authenticator
from wikiserver.auth.gateway import SESSION_KEY
from wikiserver.auth.sessions import SessionStore, get_session_store
from wikiserver.db.engine import get_db
from wikiserver.rendering import templates

logger = structlog.get_logger()

router = APIRouter()

RETURN_URL_KEY = "return_url"


def _safe_return_url(url: Optional[str]) -> str:
    # Only same-site paths; never an absolute or protocol-relative URL.
    if not url or not url.startswith("/") or url.startswith("//"):
        return "/"
    return url


@router.get("/login")
async def login_form(request: Request):
    return templates.TemplateResponse(request, "login.html", {"title": "Login"})


@router.post("/login-auth")
async def login(
    request: Request,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    try:
        principal = await Authenticator(db=db).authenticate(username, password)
    except AuthFailure:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"title": "Login", "error": "Invalid username or password"},
            status_code=401,
        )

    sessions.destroy(request.session.get(SESSION_KEY))
    return_url = _safe_return_url(request.session.pop(RETURN_URL_KEY, None))
    request.session[SESSION_KEY] = sessions.create(principal.username)
    logger.info("ui.session_started", username=principal.username)
    return RedirectResponse(return_url, status_code=303)


@router.get("/logout")
async def logout(
    request: Request,
    sessions: SessionStore = Depends(get_session_store),
):
    sessions.destroy(request.session.get(SESSION_KEY))
    request.session.clear()
    return RedirectResponse("/", status_code=302)
