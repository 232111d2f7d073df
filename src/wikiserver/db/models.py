"""SQLAlchemy ORM models for the credential store.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] +
mapped_column). Three tables hold everything the authenticator needs:

- users: one row per account, with its password hash
- user_roles: which roles a user holds
- roles_perms: which permissions ("create", "update", "delete") a role grants

The pages table is not mapped here. It belongs to the page store, which
creates and queries it through its own SQL query map (db/queries.py).
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """A wiki account.

    Learn: password_hash is bcrypt ("$2b$...") for accounts created here,
    or the legacy salted SHA-512 form ("salt$hex") for imported accounts.
    Legacy hashes are upgraded to bcrypt on the next successful login.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(255), primary_key=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("username", "role", name="uq_user_roles"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(255), nullable=False)


class RolePermission(Base):
    __tablename__ = "roles_perms"
    __table_args__ = (
        UniqueConstraint("role", "perm", name="uq_roles_perms"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    role: Mapped[str] = mapped_column(String(255), nullable=False)
    perm: Mapped[str] = mapped_column(String(255), nullable=False)
