"""
Module: cashup_kernel.models.payment_exception
Responsibility: ORM persistence for off-process payments (PaymentException)
    and their admin-confirmed resolution (CashHandover).
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one handover per exception (uq_handover_exception).
    - An exception is OPEN while resolved_at is NULL.  Creating the handover
      is the only path that sets it (ExceptionService).
    - Handovers are append-only and resolved exceptions are frozen
      (db/immutability.py).

Audit relevance:
    Open exceptions block invoice submission for their guide, so the
    resolution timestamp and the receiving admin are recorded on both rows.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cashup_kernel.db.base import Base, TrackedBase, UUIDString
from cashup_kernel.domain.requests import PaymentType

RESOLUTION_HANDOVER_CONFIRMED = "HANDOVER_CONFIRMED"


class PaymentException(TrackedBase):
    """A payment a guide had to accept personally, pending handover."""

    __tablename__ = "payment_exceptions"

    __table_args__ = (
        Index("idx_payment_exception_open", "guide_id", "resolved_at"),
    )

    type: Mapped[PaymentType] = mapped_column(
        SAEnum(PaymentType, native_enum=False, length=10),
        nullable=False,
    )

    # Card terminal or bank reference
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount_hint: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    guide_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("guides.id"),
        nullable=False,
    )

    trip_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("trips.id"),
        nullable=True,
    )

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resolution: Mapped[str | None] = mapped_column(String(50), nullable=True)

    handover: Mapped["CashHandover | None"] = relationship(
        back_populates="exception",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        state = "open" if self.is_open else self.resolution
        return f"<PaymentException {PaymentType(self.type).value} guide={self.guide_id} {state}>"

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "type": PaymentType(self.type).value,
            "reference": self.reference,
            "amount_hint": str(self.amount_hint) if self.amount_hint is not None else None,
            "note": self.note,
            "guide_id": str(self.guide_id),
            "trip_id": str(self.trip_id) if self.trip_id else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution": self.resolution,
        }


class CashHandover(Base):
    """Admin confirmation that an exception's money was handed over."""

    __tablename__ = "cash_handovers"

    __table_args__ = (
        UniqueConstraint("exception_id", name="uq_handover_exception"),
    )

    exception_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_exceptions.id"),
        nullable=False,
    )

    received_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    counted_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    exception: Mapped["PaymentException"] = relationship(back_populates="handover")

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "exception_id": str(self.exception_id),
            "received_by_id": str(self.received_by_id),
            "counted_amount": str(self.counted_amount) if self.counted_amount is not None else None,
            "comment": self.comment,
        }
