"""
Module: cashup_kernel.models.account
Responsibility: ORM persistence for sign-in accounts.
Architecture position: Kernel > Models.

Accounts hold an optional weak reference to one guide (guide_id).  The link
is a lookup, not ownership: deleting or renaming one side never cascades to
the other except through GuideService.link_account, which is audited.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cashup_kernel.db.base import Base, UUIDString
from cashup_kernel.domain.actor import AccountRole


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("email", name="uq_account_email"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    role: Mapped[AccountRole] = mapped_column(
        SAEnum(AccountRole, native_enum=False, length=10),
        nullable=False,
        default=AccountRole.USER,
    )

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    guide_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("guides.id"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    last_sign_in_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.email} {self.role.value}>"

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "email": self.email,
            "name": self.name,
            "role": AccountRole(self.role).value,
            "active": self.active,
            "guide_id": str(self.guide_id) if self.guide_id else None,
        }
