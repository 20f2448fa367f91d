"""
Actor -- the caller identity handed to every service operation.

The identity provider (outside this package) authenticates the request and
supplies ``Actor(account_id, role, guide_id)``.  Services trust it and run
their own authorization checks against it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class AccountRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller."""

    account_id: UUID
    role: AccountRole = AccountRole.USER
    guide_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    @property
    def actor_id(self) -> str:
        return str(self.account_id)
