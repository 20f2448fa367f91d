"""
Module: cashup_kernel.models.audit_log
Responsibility: ORM persistence for the append-only, hash-chained audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py).
    - Hash chain: hash = H(entity_type | entity_id | action | payload_hash |
      prev_hash).  Validated by AuditorService.validate_chain().
    - seq is strictly increasing, allocated by SequenceService.

Audit relevance:
    Every mutation of a trip, roster fee, status, exception, guide or
    account link writes exactly one row here in the same transaction.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, Enum as SAEnum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cashup_kernel.db.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Accounts
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    SIGN_IN = "SIGN_IN"
    ACCOUNT_LINKED = "ACCOUNT_LINKED"

    # Trips
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    PATCH = "PATCH"
    DELETE = "DELETE"
    STATUS_CHANGED = "STATUS_CHANGED"

    # Fees
    FEE_ADJUSTED = "FEE_ADJUSTED"
    FEES_RECALCULATED = "FEES_RECALCULATED"
    ROSTER_BACKFILLED = "ROSTER_BACKFILLED"

    # Exceptions and invoices
    EXCEPTION_RAISED = "EXCEPTION_RAISED"
    EXCEPTION_RESOLVED = "EXCEPTION_RESOLVED"
    INVOICE_SUBMITTED = "INVOICE_SUBMITTED"

    # Guides
    GUIDE_CREATED = "GUIDE_CREATED"
    GUIDE_UPDATED = "GUIDE_UPDATED"
    GUIDE_DEACTIVATED = "GUIDE_DEACTIVATED"
    GUIDE_DELETED = "GUIDE_DELETED"


class AuditLog(Base):
    """
    Audit row with before/after snapshots and a hash chain.

    entity_id is stored as a string: most entities have UUID ids but the
    log does not depend on that.
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
        Index("idx_audit_seq", "seq", unique=True),
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    action: Mapped[AuditAction] = mapped_column(
        SAEnum(AuditAction, native_enum=False, length=30),
        nullable=False,
    )

    before_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the first row
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog #{self.seq} {AuditAction(self.action).value} {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
