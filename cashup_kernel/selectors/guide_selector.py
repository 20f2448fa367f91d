"""GuideSelector -- guide and account lookups."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from cashup_kernel.domain.actor import AccountRole
from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.exceptions import AccountNotFoundError, GuideNotFoundError
from cashup_kernel.models.account import Account
from cashup_kernel.models.guide import Guide
from cashup_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class GuideView:
    id: UUID
    name: str
    rank: GuideRank
    active: bool
    email: str | None

    @property
    def can_lead(self) -> bool:
        return self.rank.can_lead

    @classmethod
    def from_model(cls, guide: Guide) -> GuideView:
        return cls(
            id=guide.id,
            name=guide.name,
            rank=GuideRank(guide.rank),
            active=guide.active,
            email=guide.email,
        )


@dataclass(frozen=True)
class AccountView:
    id: UUID
    email: str
    name: str | None
    role: AccountRole
    active: bool
    guide_id: UUID | None

    @classmethod
    def from_model(cls, account: Account) -> AccountView:
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role=AccountRole(account.role),
            active=account.active,
            guide_id=account.guide_id,
        )


class GuideSelector(BaseSelector):
    def get_guide(self, guide_id: UUID) -> GuideView:
        guide = self.session.get(Guide, guide_id)
        if guide is None:
            raise GuideNotFoundError(str(guide_id))
        return GuideView.from_model(guide)

    def list_guides(self, *, active_only: bool = False) -> list[GuideView]:
        """Guides ordered by name (case-insensitive)."""
        stmt = select(Guide).order_by(func.lower(Guide.name))
        if active_only:
            stmt = stmt.where(Guide.active.is_(True))
        return [GuideView.from_model(g) for g in self.session.execute(stmt).scalars()]

    def trip_leader_candidates(self) -> list[GuideView]:
        """Active guides allowed to lead a trip."""
        return [g for g in self.list_guides(active_only=True) if g.can_lead]

    def get_account(self, account_id: UUID) -> AccountView:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return AccountView.from_model(account)

    def linked_accounts(self, guide_id: UUID) -> list[AccountView]:
        stmt = select(Account).where(Account.guide_id == guide_id).order_by(Account.email)
        return [AccountView.from_model(a) for a in self.session.execute(stmt).scalars()]
