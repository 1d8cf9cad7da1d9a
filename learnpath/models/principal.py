from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Principal:
    """The caller, as asserted by a verified bearer token.

    user_id is the identity provider's subject and is the same id the
    enrollment, certificate and stats documents are keyed by.
    """

    user_id: str
    roles: frozenset[str]

    @staticmethod
    def from_claims(claims: Mapping[str, Any]) -> Principal:
        roles = claims.get("roles") or ()
        if isinstance(roles, str):
            roles = (roles,)
        return Principal(user_id=str(claims["sub"]), roles=frozenset(roles))

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    def can_read_records_of(self, user_id: str) -> bool:
        """Learners see their own progress; admins (support staff) see anyone's."""
        return self.user_id == user_id or self.is_admin
