"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to resolve the
current Principal and check its claims. One pair per entry surface:

1. get_api_principal / api_claim — bearer token, failures are 401 JSON.
2. get_session_principal / ui_claim — session cookie, a missing session
   redirects to /login and a missing claim is 403.
"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from wikiserver.auth.authenticator import AuthFailure
from wikiserver.auth.gateway import (
    BearerTokenResolver,
    ForbiddenOperation,
    LoginRequired,
    SessionResolver,
    require_claim,
)
from wikiserver.auth.jwt import TokenIssuer, get_token_issuer
from wikiserver.auth.principal import Claim, Principal
from wikiserver.auth.sessions import SessionStore, get_session_store
from wikiserver.db.engine import get_db
from wikiserver.errors import ApiError


async def get_api_principal(
    request: Request,
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    """Principal from the bearer token (required — 401 if absent or bad)."""
    try:
        return await BearerTokenResolver(tokens).resolve(request)
    except AuthFailure:
        raise ApiError(
            401,
            "Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )


def api_claim(claim: Claim):
    """Dependency factory: bearer principal holding `claim`, else 401."""

    async def dependency(
        principal: Principal = Depends(get_api_principal),
    ) -> Principal:
        try:
            return require_claim(principal, claim)
        except ForbiddenOperation as e:
            raise ApiError(401, str(e))

    return dependency


async def get_session_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
) -> Principal:
    """Principal from the session cookie; redirects to /login when absent."""
    try:
        return await SessionResolver(db, sessions).resolve(request)
    except AuthFailure:
        return_url = request.url.path
        if request.url.query:
            return_url += f"?{request.url.query}"
        raise LoginRequired(return_url)


def ui_claim(claim: Claim):
    """Dependency factory: session principal holding `claim`, else 403."""

    async def dependency(
        principal: Principal = Depends(get_session_principal),
    ) -> Principal:
        try:
            return require_claim(principal, claim)
        except ForbiddenOperation as e:
            raise HTTPException(status_code=403, detail=str(e))

    return dependency
