"""The authenticated identity of a request and its capability claims."""

import enum
from dataclasses import dataclass, field


class Claim(str, enum.Enum):
    """A page permission. Values match the perm column of roles_perms."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def token_field(self) -> str:
        """Name of the boolean carrying this claim inside an API token."""
        return "can" + self.value.capitalize()


@dataclass(frozen=True)
class Principal:
    """Who is asking, and what they may do.

    Learn: never stored. Session requests rebuild it from the credential
    store; API requests decode it from the bearer token.
    """

    username: str
    claims: frozenset[Claim] = field(default_factory=frozenset)

    def has_claim(self, claim: Claim) -> bool:
        return claim in self.claims

    @property
    def can_create(self) -> bool:
        return Claim.CREATE in self.claims

    @property
    def can_update(self) -> bool:
        return Claim.UPDATE in self.claims

    @property
    def can_delete(self) -> bool:
        return Claim.DELETE in self.claims
