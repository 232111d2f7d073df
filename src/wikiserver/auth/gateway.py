"""Credential resolvers and the single claim check.

Learn: a request reaches the page store along one path:

    UNAUTHENTICATED --resolve()--> AUTHENTICATED(Principal)
                    --require_claim()--> AUTHORIZED | FORBIDDEN

CredentialResolver has two implementations, one per entry surface:

- SessionResolver: session cookie → username → claims from the
  credential store (fresh on every request).
- BearerTokenResolver: Authorization header → token → claims frozen in
  the token (no database access).

Both return the same Principal, so require_claim is written once. What a
failure looks like (redirect, 401, 403) is up to the route layer.
"""

from abc import ABC, abstractmethod

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from wikiserver.auth.authenticator import AuthFailure, Authenticator
from wikiserver.auth.jwt import TokenIssuer
from wikiserver.auth.principal import Claim, Principal
from wikiserver.auth.sessions import SessionStore

logger = structlog.get_logger()

SESSION_KEY = "sid"


class ForbiddenOperation(Exception):
    """Authenticated, but without the claim the operation needs."""

    def __init__(self, claim: Claim, username: str):
        super().__init__(f"Operation not permitted: {claim.value}")
        self.claim = claim
        self.username = username


class LoginRequired(Exception):
    """A UI request arrived without a usable session."""

    def __init__(self, return_url: str = "/"):
        super().__init__("Login required")
        self.return_url = return_url


class CredentialResolver(ABC):
    """Maps the credential carried by a request to a Principal."""

    @abstractmethod
    async def resolve(self, request: Request) -> Principal:
        """Return the request's Principal or raise AuthFailure."""


class BearerTokenResolver(CredentialResolver):
    def __init__(self, tokens: TokenIssuer):
        self.authenticator = Authenticator(tokens=tokens)

    async def resolve(self, request: Request) -> Principal:
        header = request.headers.get("Authorization")
        if not header:
            raise AuthFailure(AuthFailure.MISSING_CREDENTIALS)
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthFailure(AuthFailure.MALFORMED_TOKEN)
        return self.authenticator.authenticate_token(token.strip())


class SessionResolver(CredentialResolver):
    def __init__(self, db: AsyncSession, sessions: SessionStore):
        self.authenticator = Authenticator(db=db)
        self.sessions = sessions

    async def resolve(self, request: Request) -> Principal:
        session_id = request.session.get(SESSION_KEY)
        username = self.sessions.get(session_id)
        if username is None:
            raise AuthFailure(AuthFailure.MISSING_CREDENTIALS)
        try:
            return await self.authenticator.resolve_principal(username)
        except AuthFailure:
            # The account is gone; so is the session.
            self.sessions.destroy(session_id)
            request.session.pop(SESSION_KEY, None)
            raise


def require_claim(principal: Principal, claim: Claim) -> Principal:
    """Let the request through only if the principal holds `claim`."""
    if not principal.has_claim(claim):
        logger.info("auth.forbidden", username=principal.username, claim=claim.value)
        raise ForbiddenOperation(claim, principal.username)
    return principal
