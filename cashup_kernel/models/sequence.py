"""
Module: cashup_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cashup_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Each row is a named sequence with its current value.  Row-level locking
    on this row keeps allocations strictly increasing under concurrency.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("name", name="uq_sequence_name"),
    )

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
