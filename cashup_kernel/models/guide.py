"""
Module: cashup_kernel.models.guide
Responsibility: ORM persistence for guides, the people who earn per-trip fees.
Architecture position: Kernel > Models.  May import from db/ and domain/ value
    types only.

Invariants enforced:
    - Display name is unique (uq_guide_name).
    - A guide with trips is deactivated, never deleted (GuideService).
"""

from sqlalchemy import Boolean, Enum as SAEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cashup_kernel.db.base import TrackedBase
from cashup_kernel.domain.rates import GuideRank


class Guide(TrackedBase):
    """A tour guide with a rank that drives fees."""

    __tablename__ = "guides"

    __table_args__ = (
        UniqueConstraint("name", name="uq_guide_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    rank: Mapped[GuideRank] = mapped_column(
        SAEnum(GuideRank, native_enum=False, length=20),
        nullable=False,
    )

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Guide {self.name} {self.rank.value}>"

    @property
    def can_lead(self) -> bool:
        return GuideRank(self.rank).can_lead

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "rank": GuideRank(self.rank).value,
            "active": self.active,
            "email": self.email,
        }
