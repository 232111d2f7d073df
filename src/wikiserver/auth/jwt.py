"""JWT token issuing and verification for the JSON API.

Learn: an API token carries the user's claims, frozen at issuance:

    {"username": "foo", "canCreate": true, "canUpdate": true,
     "canDelete": false, "sub": "Wiki API", "iss": "wikiserver",
     "iat": ..., "exp": ...}

Verification checks the signature and the expiry, nothing else. There is
no revocation list, so a role change only reaches API clients when they
fetch a new token.

The signing key is loaded once at startup (init_token_issuer). HS*
algorithms use WIKI_JWT_SECRET (or the contents of WIKI_JWT_KEY_FILE);
RS*/ES* algorithms load a PEM private key from WIKI_JWT_KEY_FILE,
decrypted with WIKI_JWT_KEY_PASSPHRASE.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import jwt
from cryptography.hazmat.primitives import serialization

from wikiserver.auth.principal import Claim, Principal
from wikiserver.config import Settings, settings


class TokenError(Exception):
    """Raised when a token can't be verified."""

    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED = "malformed"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


def load_signing_keys(config: Settings) -> tuple[Any, Any]:
    """Return (signing_key, verification_key) for the configured algorithm."""
    if config.jwt_algorithm.startswith("HS"):
        if config.jwt_key_file:
            secret = Path(config.jwt_key_file).read_text(encoding="utf-8").strip()
        else:
            secret = config.jwt_secret
        return secret, secret

    if not config.jwt_key_file:
        raise ValueError(
            f"WIKI_JWT_KEY_FILE is required for the {config.jwt_algorithm} algorithm"
        )
    pem = Path(config.jwt_key_file).read_bytes()
    passphrase = config.jwt_key_passphrase.encode("utf-8") or None
    private_key = serialization.load_pem_private_key(pem, password=passphrase)
    return private_key, private_key.public_key()


class TokenIssuer:
    """Mints and verifies signed, time-bounded API tokens."""

    def __init__(
        self,
        signing_key: Any,
        verification_key: Any,
        algorithm: str = "HS256",
        issuer: str = "wikiserver",
        subject: str = "Wiki API",
        expire_minutes: int = 60,
    ):
        self._signing_key = signing_key
        self._verification_key = verification_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.subject = subject
        self.expire_minutes = expire_minutes

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TokenIssuer":
        signing_key, verification_key = load_signing_keys(config)
        return cls(
            signing_key,
            verification_key,
            algorithm=config.jwt_algorithm,
            issuer=config.jwt_issuer,
            subject=config.jwt_subject,
            expire_minutes=config.token_expire_minutes,
        )

    def issue(
        self,
        principal: Principal,
        subject: Optional[str] = None,
        issuer: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ) -> str:
        """Sign the principal's claims into a token string."""
        now = datetime.now(timezone.utc)
        lifetime = self.expire_minutes if expires_minutes is None else expires_minutes
        payload: dict[str, Any] = {
            "username": principal.username,
            "sub": subject or self.subject,
            "iss": issuer or self.issuer,
            "iat": now,
            "exp": now + timedelta(minutes=lifetime),
        }
        for claim in Claim:
            payload[claim.token_field] = principal.has_claim(claim)
        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Principal:
        """Decode a token back into a Principal.

        Raises TokenError on a bad signature, an expired token or a
        payload that isn't one of ours.
        """
        try:
            payload = jwt.decode(
                token,
                self._verification_key,
                algorithms=[self.algorithm],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("Token has expired", TokenError.EXPIRED)
        except jwt.InvalidSignatureError:
            raise TokenError("Invalid token signature", TokenError.INVALID_SIGNATURE)
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}", TokenError.MALFORMED)

        username = payload.get("username")
        if not isinstance(username, str) or not username:
            raise TokenError("Invalid token: no username", TokenError.MALFORMED)

        claims = frozenset(
            claim for claim in Claim if payload.get(claim.token_field) is True
        )
        return Principal(username=username, claims=claims)


# Loaded once before serving; read-only afterwards.
_issuer: Optional[TokenIssuer] = None


def init_token_issuer(config: Settings = settings) -> TokenIssuer:
    global _issuer
    _issuer = TokenIssuer.from_settings(config)
    return _issuer


def get_token_issuer() -> TokenIssuer:
    """FastAPI dependency — the process-wide token issuer."""
    if _issuer is None:
        raise RuntimeError("Token issuer not initialized. Call init_token_issuer() first.")
    return _issuer
