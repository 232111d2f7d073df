"""Authenticator — turns a presented credential into a Principal.

Learn: three entry points, one result type:

- authenticate(username, password): the credential store checks the
  password, then each claim is resolved by its own permission lookup.
- resolve_principal(username): re-derives claims for a user whose session
  is already established (no password involved).
- authenticate_token(token): delegates to the token issuer; the credential
  store is not touched.

Every failure is an AuthFailure. The reason is kept for logs; clients only
ever see a generic 401.

A permission lookup that errors counts as "not granted" for that one claim
and the login still succeeds with the remaining claims.
"""

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wikiserver.auth.credentials import CredentialStore
from wikiserver.auth.jwt import TokenError, TokenIssuer
from wikiserver.auth.password import hash_password, needs_upgrade, verify_password
from wikiserver.auth.principal import Claim, Principal

logger = structlog.get_logger()


class AuthFailure(Exception):
    """A credential did not resolve to a Principal."""

    UNKNOWN_USER = "unknown_user"
    BAD_PASSWORD = "bad_password"
    EXPIRED_TOKEN = "expired_token"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_TOKEN = "malformed_token"
    MISSING_CREDENTIALS = "missing_credentials"

    def __init__(self, reason: str):
        super().__init__("Authentication failed")
        self.reason = reason


_TOKEN_REASONS = {
    TokenError.EXPIRED: AuthFailure.EXPIRED_TOKEN,
    TokenError.INVALID_SIGNATURE: AuthFailure.INVALID_SIGNATURE,
    TokenError.MALFORMED: AuthFailure.MALFORMED_TOKEN,
}


class Authenticator:
    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        tokens: Optional[TokenIssuer] = None,
    ):
        self.credentials = CredentialStore(db) if db is not None else None
        self.tokens = tokens

    # ─── Password credentials ───────────────────────────

    async def authenticate(
        self, username: Optional[str], password: Optional[str]
    ) -> Principal:
        if not username or password is None:
            raise self._fail(AuthFailure.MISSING_CREDENTIALS, username)

        store = self._store()
        user = await store.get_user(username)
        if user is None:
            raise self._fail(AuthFailure.UNKNOWN_USER, username)
        if not verify_password(password, user.password_hash):
            raise self._fail(AuthFailure.BAD_PASSWORD, username)

        # Auto-upgrade legacy SHA-512 hashes to bcrypt on successful login
        if needs_upgrade(user.password_hash):
            await store.set_password_hash(user, hash_password(password))
            logger.info("auth.password_hash_upgraded", username=username)

        principal = await self._with_claims(username)
        logger.info(
            "auth.login_succeeded",
            username=username,
            claims=sorted(c.value for c in principal.claims),
        )
        return principal

    async def resolve_principal(self, username: str) -> Principal:
        """Fresh claims for an already-authenticated user."""
        if await self._store().get_user(username) is None:
            raise self._fail(AuthFailure.UNKNOWN_USER, username)
        return await self._with_claims(username)

    async def _with_claims(self, username: str) -> Principal:
        claims = set()
        for claim in (Claim.CREATE, Claim.UPDATE, Claim.DELETE):
            if await self._lookup_claim(username, claim):
                claims.add(claim)
        return Principal(username=username, claims=frozenset(claims))

    async def _lookup_claim(self, username: str, claim: Claim) -> bool:
        try:
            return await self._store().has_permission(username, claim.value)
        except SQLAlchemyError as e:
            logger.warning(
                "auth.claim_lookup_failed",
                username=username,
                claim=claim.value,
                error=str(e),
            )
            # Release the failed transaction (and a dead connection) so the
            # next claim is looked up on a clean one.
            await self._store().db.rollback()
            return False

    # ─── Bearer tokens ──────────────────────────────────

    def authenticate_token(self, token: Optional[str]) -> Principal:
        if not token:
            raise self._fail(AuthFailure.MISSING_CREDENTIALS)
        if self.tokens is None:
            raise RuntimeError("Authenticator was built without a token issuer")
        try:
            return self.tokens.verify(token)
        except TokenError as e:
            raise self._fail(_TOKEN_REASONS[e.reason])

    # ─── Helpers ────────────────────────────────────────

    def _store(self) -> CredentialStore:
        if self.credentials is None:
            raise RuntimeError("Authenticator was built without a database session")
        return self.credentials

    @staticmethod
    def _fail(reason: str, username: Optional[str] = None) -> AuthFailure:
        logger.info("auth.failed", reason=reason, username=username)
        return AuthFailure(reason)
