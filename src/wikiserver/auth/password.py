"""Password hashing utilities.

Learn: Uses bcrypt for password hashing. bcrypt salts automatically and
its work factor (WIKI_BCRYPT_ROUNDS, default 12) keeps brute force slow.

Accounts imported from the old JDBC-auth tables carry a salted SHA-512
hash instead ("salt$HEXDIGEST", digest of password + salt). Those are still
verified, and needs_upgrade() tells the login path to re-hash them with
bcrypt once the password is known to be correct.
"""

import hashlib
import secrets

import bcrypt

from wikiserver.config import settings


def hash_password(password: str) -> str:
    """Hash a password with bcrypt.

    Passwords are truncated to 72 bytes (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt or legacy SHA-512 hash."""
    if _is_legacy_hash(password_hash):
        return _verify_legacy(password, password_hash)
    try:
        pw_bytes = password.encode("utf-8")[:72]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def needs_upgrade(password_hash: str) -> bool:
    """Check if a password hash should be upgraded to bcrypt."""
    return _is_legacy_hash(password_hash)


def legacy_hash(password: str, salt: str) -> str:
    """Build a legacy salted SHA-512 hash (used when importing accounts)."""
    digest = hashlib.sha512(f"{password}{salt}".encode("utf-8")).hexdigest().upper()
    return f"{salt}${digest}"


def _is_legacy_hash(password_hash: str) -> bool:
    return not password_hash.startswith("$2")


def _verify_legacy(password: str, password_hash: str) -> bool:
    try:
        salt, hashed = password_hash.split("$", 1)
    except ValueError:
        return False
    expected = legacy_hash(password, salt).split("$", 1)[1]
    return secrets.compare_digest(hashed.upper(), expected)
