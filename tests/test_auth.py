"""Authentication and authorization tests — below the HTTP layer.

Learn: covers each piece on its own:
- password hashing (bcrypt, plus legacy salted SHA-512 accounts)
- the token issuer (claims round trip, expiry, signature, garbage)
- the authenticator (claims from roles, failure reasons, fail-closed lookups)
- the session store (idle timeout with a fake clock)
- require_claim, the one authorization check
"""

import jwt
import pytest
from sqlalchemy.exc import OperationalError

from wikiserver.auth.authenticator import AuthFailure, Authenticator
from wikiserver.auth.credentials import CredentialStore
from wikiserver.auth.gateway import ForbiddenOperation, require_claim
from wikiserver.auth.jwt import TokenError, TokenIssuer, get_token_issuer
from wikiserver.auth.password import (
    hash_password,
    legacy_hash,
    needs_upgrade,
    verify_password,
)
from wikiserver.auth.principal import Claim, Principal
from wikiserver.auth.sessions import SessionStore

ALL_CLAIMS = frozenset({Claim.CREATE, Claim.UPDATE, Claim.DELETE})


def _issuer(**kwargs) -> TokenIssuer:
    secret = "unit-test-secret-of-a-reasonable-length-0123456789"
    return TokenIssuer(secret, secret, **kwargs)


# ─── Passwords ──────────────────────────────────────────


def test_bcrypt_round_trip():
    hashed = hash_password("w00t")
    assert hashed.startswith("$2")
    assert verify_password("w00t", hashed)
    assert not verify_password("wrong", hashed)
    assert not needs_upgrade(hashed)


def test_legacy_hash_verifies_and_needs_upgrade():
    hashed = legacy_hash("bar", "s4lt")
    assert hashed.startswith("s4lt$")
    assert verify_password("bar", hashed)
    assert not verify_password("baz", hashed)
    assert needs_upgrade(hashed)


def test_garbage_hash_never_verifies():
    assert not verify_password("anything", "no-dollar-sign-here")


# ─── Tokens ─────────────────────────────────────────────


def test_token_carries_claims():
    issuer = _issuer()
    token = issuer.issue(Principal("foo", frozenset({Claim.CREATE, Claim.UPDATE})))

    principal = issuer.verify(token)
    assert principal.username == "foo"
    assert principal.can_create and principal.can_update
    assert not principal.can_delete


def test_token_payload_fields():
    issuer = _issuer(issuer="wikiserver", subject="Wiki API")
    token = issuer.issue(Principal("foo", frozenset({Claim.DELETE})))

    payload = jwt.decode(token, options={"verify_signature": False})
    assert payload["username"] == "foo"
    assert payload["sub"] == "Wiki API"
    assert payload["iss"] == "wikiserver"
    assert payload["canCreate"] is False
    assert payload["canUpdate"] is False
    assert payload["canDelete"] is True
    assert payload["exp"] > payload["iat"]


def test_expired_token_rejected():
    issuer = _issuer()
    token = issuer.issue(Principal("foo", ALL_CLAIMS), expires_minutes=-1)

    with pytest.raises(TokenError) as exc:
        issuer.verify(token)
    assert exc.value.reason == TokenError.EXPIRED


def test_token_from_another_key_rejected():
    other_secret = "another-secret-entirely-different-0123456789"
    other = TokenIssuer(other_secret, other_secret)
    token = other.issue(Principal("foo", ALL_CLAIMS))

    with pytest.raises(TokenError) as exc:
        _issuer().verify(token)
    assert exc.value.reason == TokenError.INVALID_SIGNATURE


def test_garbage_token_rejected():
    with pytest.raises(TokenError) as exc:
        _issuer().verify("not.a.token")
    assert exc.value.reason == TokenError.MALFORMED


def test_token_without_username_rejected():
    issuer = _issuer()
    token = jwt.encode(
        {"exp": 9999999999, "canCreate": True},
        "unit-test-secret-of-a-reasonable-length-0123456789",
        algorithm="HS256",
    )
    with pytest.raises(TokenError) as exc:
        issuer.verify(token)
    assert exc.value.reason == TokenError.MALFORMED


def test_rs256_keys_from_pem(tmp_path):
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    from wikiserver.config import Settings

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(b"open sesame"),
    )
    key_file = tmp_path / "jwt.pem"
    key_file.write_bytes(pem)

    config = Settings(
        jwt_algorithm="RS256",
        jwt_key_file=str(key_file),
        jwt_key_passphrase="open sesame",
    )
    issuer = TokenIssuer.from_settings(config)
    principal = issuer.verify(issuer.issue(Principal("root", ALL_CLAIMS)))
    assert principal.claims == ALL_CLAIMS


# ─── Authenticator ──────────────────────────────────────


@pytest.mark.asyncio
async def test_claims_follow_roles(db_session):
    auth = Authenticator(db=db_session)

    assert (await auth.authenticate("root", "w00t")).claims == ALL_CLAIMS
    assert (await auth.authenticate("foo", "bar")).claims == ALL_CLAIMS
    assert (await auth.authenticate("bar", "baz")).claims == {Claim.CREATE, Claim.UPDATE}
    assert (await auth.authenticate("baz", "baz")).claims == frozenset()


@pytest.mark.asyncio
async def test_unknown_user_and_bad_password(db_session):
    auth = Authenticator(db=db_session)

    with pytest.raises(AuthFailure) as exc:
        await auth.authenticate("nobody", "x")
    assert exc.value.reason == AuthFailure.UNKNOWN_USER

    with pytest.raises(AuthFailure) as exc:
        await auth.authenticate("foo", "not-bar")
    assert exc.value.reason == AuthFailure.BAD_PASSWORD

    with pytest.raises(AuthFailure) as exc:
        await auth.authenticate(None, None)
    assert exc.value.reason == AuthFailure.MISSING_CREDENTIALS


@pytest.mark.asyncio
async def test_failed_claim_lookup_denies_only_that_claim(db_session, monkeypatch):
    original = CredentialStore.has_permission

    async def flaky_has_permission(self, username, perm):
        if perm == "delete":
            raise OperationalError("SELECT ...", {}, Exception("connection reset"))
        return await original(self, username, perm)

    monkeypatch.setattr(CredentialStore, "has_permission", flaky_has_permission)

    principal = await Authenticator(db=db_session).authenticate("foo", "bar")
    assert principal.claims == {Claim.CREATE, Claim.UPDATE}


@pytest.mark.asyncio
async def test_dropped_connection_on_first_claim_spares_the_rest(db_session, monkeypatch):
    """A lookup that kills the connection must not poison the later lookups."""
    original = CredentialStore.has_permission

    async def disconnecting_has_permission(self, username, perm):
        if perm == "create":
            conn = await self.db.connection()
            await conn.invalidate()
            raise OperationalError("SELECT ...", {}, Exception("server closed the connection"))
        return await original(self, username, perm)

    monkeypatch.setattr(CredentialStore, "has_permission", disconnecting_has_permission)

    principal = await Authenticator(db=db_session).authenticate("foo", "bar")
    assert principal.claims == {Claim.UPDATE, Claim.DELETE}


@pytest.mark.asyncio
async def test_legacy_password_upgraded_on_login(db_session):
    store = CredentialStore(db_session)
    user = await store.add_user("legacy", "placeholder", ["writer"])
    await store.set_password_hash(user, legacy_hash("old-secret", "xyz"))

    principal = await Authenticator(db=db_session).authenticate("legacy", "old-secret")
    assert principal.claims == {Claim.CREATE, Claim.UPDATE}

    refreshed = await store.get_user("legacy")
    assert refreshed.password_hash.startswith("$2")
    assert verify_password("old-secret", refreshed.password_hash)


@pytest.mark.asyncio
async def test_resolve_principal_sees_role_changes(db_session):
    auth = Authenticator(db=db_session)
    assert (await auth.resolve_principal("baz")).claims == frozenset()

    await CredentialStore(db_session).assign_role("baz", "writer")
    assert (await auth.resolve_principal("baz")).claims == {Claim.CREATE, Claim.UPDATE}


@pytest.mark.asyncio
async def test_authenticate_token_maps_failures(services):
    auth = Authenticator(tokens=get_token_issuer())

    with pytest.raises(AuthFailure) as exc:
        auth.authenticate_token("garbage")
    assert exc.value.reason == AuthFailure.MALFORMED_TOKEN

    with pytest.raises(AuthFailure) as exc:
        auth.authenticate_token("")
    assert exc.value.reason == AuthFailure.MISSING_CREDENTIALS

    token = get_token_issuer().issue(Principal("foo", ALL_CLAIMS), expires_minutes=-1)
    with pytest.raises(AuthFailure) as exc:
        auth.authenticate_token(token)
    assert exc.value.reason == AuthFailure.EXPIRED_TOKEN


# ─── Authorization ──────────────────────────────────────


def test_require_claim():
    writer = Principal("bar", frozenset({Claim.CREATE, Claim.UPDATE}))
    assert require_claim(writer, Claim.CREATE) is writer

    with pytest.raises(ForbiddenOperation) as exc:
        require_claim(writer, Claim.DELETE)
    assert exc.value.claim == Claim.DELETE
    assert exc.value.username == "bar"


def test_claim_token_fields():
    assert [c.token_field for c in Claim] == ["canCreate", "canUpdate", "canDelete"]


# ─── Sessions ───────────────────────────────────────────


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_session_idle_timeout():
    clock = FakeClock()
    sessions = SessionStore(timeout_minutes=30, clock=clock)
    sid = sessions.create("foo")

    clock.now += 29 * 60
    assert sessions.get(sid) == "foo"  # refreshes the idle timer

    clock.now += 29 * 60
    assert sessions.get(sid) == "foo"

    clock.now += 31 * 60
    assert sessions.get(sid) is None
    assert len(sessions) == 0


def test_session_destroy_and_unknown_ids():
    sessions = SessionStore()
    sid = sessions.create("foo")
    other = sessions.create("foo")
    assert sid != other

    sessions.destroy(sid)
    assert sessions.get(sid) is None
    assert sessions.get(other) == "foo"
    assert sessions.get(None) is None
    assert sessions.get("made-up") is None


def test_purge_expired():
    clock = FakeClock()
    sessions = SessionStore(timeout_minutes=1, clock=clock)
    sessions.create("a")
    clock.now += 120
    sessions.create("b")  # purges "a" on the way in

    assert len(sessions) == 1
    clock.now += 120
    assert sessions.purge_expired() == 1
