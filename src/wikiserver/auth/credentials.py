"""Credential store — users, roles and role permissions.

Learn: the authenticator only reads from here. Writes (add_user,
grant_permission, ...) exist for the CLI and for test fixtures; no HTTP
route changes credentials.
"""

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wikiserver.auth.password import hash_password
from wikiserver.db.models import RolePermission, User, UserRole


class CredentialStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Reads ──────────────────────────────────────────

    async def get_user(self, username: str) -> Optional[User]:
        return await self.db.get(User, username)

    async def has_permission(self, username: str, perm: str) -> bool:
        """Does any of the user's roles grant `perm`?"""
        q = (
            select(RolePermission.id)
            .join(UserRole, UserRole.role == RolePermission.role)
            .where(UserRole.username == username, RolePermission.perm == perm)
            .limit(1)
        )
        result = await self.db.execute(q)
        return result.first() is not None

    # ─── Writes ─────────────────────────────────────────

    async def add_user(
        self,
        username: str,
        password: str,
        roles: Iterable[str] = (),
    ) -> User:
        user = User(username=username, password_hash=hash_password(password))
        self.db.add(user)
        for role in roles:
            self.db.add(UserRole(username=username, role=role))
        await self.db.commit()
        return user

    async def set_password_hash(self, user: User, password_hash: str) -> None:
        user.password_hash = password_hash
        await self.db.commit()

    async def assign_role(self, username: str, role: str) -> None:
        self.db.add(UserRole(username=username, role=role))
        await self.db.commit()

    async def grant_permission(self, role: str, perm: str) -> None:
        existing = await self.db.execute(
            select(RolePermission.id).where(
                RolePermission.role == role, RolePermission.perm == perm
            )
        )
        if existing.first() is None:
            self.db.add(RolePermission(role=role, perm=perm))
            await self.db.commit()


# Demo accounts and role grants for development instances.
DEMO_USERS: list[tuple[str, str, list[str]]] = [
    ("root", "w00t", ["admin"]),
    ("foo", "bar", ["editor", "writer"]),
    ("bar", "baz", ["writer"]),
    ("baz", "baz", []),
]

DEMO_GRANTS: list[tuple[str, str]] = [
    ("admin", "create"),
    ("admin", "delete"),
    ("admin", "update"),
    ("editor", "create"),
    ("editor", "delete"),
    ("editor", "update"),
    ("writer", "create"),
    ("writer", "update"),
]


async def seed_demo_credentials(db: AsyncSession) -> None:
    """Install the demo users and role grants (skips existing users)."""
    store = CredentialStore(db)
    for role, perm in DEMO_GRANTS:
        await store.grant_permission(role, perm)
    for username, password, roles in DEMO_USERS:
        if await store.get_user(username) is None:
            await store.add_user(username, password, roles)
