"""
Module: cashup_kernel.models.trip
Responsibility: ORM persistence for trips (cash-ups) and the records they own:
    the guide roster (TripGuide), the payment breakdown and discount lines.
Architecture position: Kernel > Models.  May import from db/ and domain/
    value types only.

Invariants enforced:
    - (trip_id, guide_id) is unique on the roster (uq_trip_guide).
    - fee_amount >= 0 (ck_trip_guide_fee_non_negative).
    - Exactly one PaymentBreakdown per trip (uq_payment_breakdown_trip).
    - Children are owned by the trip: cascade="all, delete-orphan".
    The trip-leader-in-roster and leader-rank rules are enforced by
    LedgerService, which is the only writer.

Audit relevance:
    Trip.to_snapshot() is the before/after payload of every trip audit
    entry, so it includes the full roster, payments and discounts.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cashup_kernel.db.base import Base, TrackedBase, UUIDString
from cashup_kernel.domain.requests import TripStatus

if TYPE_CHECKING:
    from cashup_kernel.models.guide import Guide

ZERO = Decimal("0.00")


def _money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))


class Trip(TrackedBase):
    """One day's cash-up for one group."""

    __tablename__ = "trips"

    __table_args__ = (
        Index("idx_trip_date", "trip_date", "created_at"),
        Index("idx_trip_leader", "trip_leader_id"),
        Index("idx_trip_status", "status"),
    )

    trip_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Free-text name of the booking lead, not the trip leader guide
    lead_name: Mapped[str] = mapped_column(String(200), nullable=False)

    pax_guide_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_pax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    trip_leader_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("guides.id"),
        nullable=True,
    )

    status: Mapped[TripStatus] = mapped_column(
        SAEnum(TripStatus, native_enum=False, length=20),
        nullable=False,
        default=TripStatus.APPROVED,
    )

    payments_made: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pics_uploaded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trip_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    trip_report: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggestions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    guides: Mapped[list["TripGuide"]] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    payments: Mapped["PaymentBreakdown | None"] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )

    discounts: Mapped[list["DiscountLine"]] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DiscountLine.position",
    )

    trip_leader: Mapped["Guide | None"] = relationship(foreign_keys=[trip_leader_id])

    def __repr__(self) -> str:
        return f"<Trip {self.trip_date} {self.lead_name} status={TripStatus(self.status).value}>"

    @property
    def discount_total(self) -> Decimal:
        return sum((d.amount for d in self.discounts), ZERO)

    @property
    def gross_total(self) -> Decimal:
        if self.payments is None:
            return ZERO
        return self.payments.gross

    @property
    def net_total(self) -> Decimal:
        return self.gross_total - self.discount_total

    def roster_entry(self, guide_id: UUID) -> "TripGuide | None":
        return next((tg for tg in self.guides if tg.guide_id == guide_id), None)

    @property
    def leader_in_roster(self) -> bool:
        return self.trip_leader_id is None or self.roster_entry(self.trip_leader_id) is not None

    def to_snapshot(self) -> dict:
        """JSON-safe full state, used for audit before/after payloads."""
        return {
            "id": str(self.id),
            "trip_date": self.trip_date.isoformat(),
            "lead_name": self.lead_name,
            "pax_guide_note": self.pax_guide_note,
            "total_pax": self.total_pax,
            "trip_leader_id": str(self.trip_leader_id) if self.trip_leader_id else None,
            "status": TripStatus(self.status).value,
            "payments_made": self.payments_made,
            "pics_uploaded": self.pics_uploaded,
            "trip_email_sent": self.trip_email_sent,
            "trip_report": self.trip_report,
            "suggestions": self.suggestions,
            "created_by_id": str(self.created_by_id) if self.created_by_id else None,
            "guides": sorted(
                (tg.to_snapshot() for tg in self.guides),
                key=lambda g: (g["guide_name"] or "", g["guide_id"]),
            ),
            "payments": self.payments.to_snapshot() if self.payments else None,
            "discounts": [d.to_snapshot() for d in self.discounts],
        }


class TripGuide(Base):
    """A guide's participation in a trip and the fee earned for it."""

    __tablename__ = "trip_guides"

    __table_args__ = (
        UniqueConstraint("trip_id", "guide_id", name="uq_trip_guide"),
        CheckConstraint("fee_amount >= 0", name="ck_trip_guide_fee_non_negative"),
        Index("idx_trip_guide_guide", "guide_id"),
    )

    trip_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trips.id"),
        nullable=False,
    )

    guide_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("guides.id"),
        nullable=False,
    )

    fee_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Unused quota field, kept for compatibility with existing data
    pax_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    trip: Mapped["Trip"] = relationship(back_populates="guides")

    guide: Mapped["Guide"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<TripGuide trip={self.trip_id} guide={self.guide_id} fee={self.fee_amount}>"

    def to_snapshot(self) -> dict:
        return {
            "guide_id": str(self.guide_id),
            "guide_name": self.guide.name if self.guide is not None else None,
            "fee_amount": _money(self.fee_amount),
            "pax_count": self.pax_count,
        }


class PaymentBreakdown(Base):
    """Cash and ancillary sales collected on one trip."""

    __tablename__ = "payment_breakdowns"

    __table_args__ = (
        UniqueConstraint("trip_id", name="uq_payment_breakdown_trip"),
    )

    trip_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trips.id"),
        nullable=False,
    )

    cash_received: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    phone_pouches: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    water_sales: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    sunglasses_sales: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)

    trip: Mapped["Trip"] = relationship(back_populates="payments")

    @property
    def ancillary(self) -> Decimal:
        return self.phone_pouches + self.water_sales + self.sunglasses_sales

    @property
    def gross(self) -> Decimal:
        return self.cash_received + self.ancillary

    def to_snapshot(self) -> dict:
        return {
            "cash_received": _money(self.cash_received),
            "phone_pouches": _money(self.phone_pouches),
            "water_sales": _money(self.water_sales),
            "sunglasses_sales": _money(self.sunglasses_sales),
        }


class DiscountLine(Base):
    """Amount subtracted from a trip's gross receipts."""

    __tablename__ = "discount_lines"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_discount_amount_non_negative"),
    )

    trip_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trips.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    trip: Mapped["Trip"] = relationship(back_populates="discounts")

    def to_snapshot(self) -> dict:
        return {"amount": _money(self.amount), "reason": self.reason}
