"""
AuditorService -- append-only, hash-chained audit log.

Responsibility:
    Writes one immutable AuditLog row per mutation, in the caller's
    transaction, with before/after snapshots.  Provides chain validation for
    tamper detection and per-entity traces for review.

Architecture position:
    Kernel > Services -- imperative shell, called by every write service.

Invariants enforced:
    - Same transaction: the row is flushed into the caller's session.  If
      recording fails the exception propagates and the caller's unit of
      work rolls back, so a mutation is never committed without its entry.
    - seq comes from SequenceService (locked counter row).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      where payload_hash covers before, after and actor.
    - Append-only: AuditLog rows are protected by ORM listeners
      (db/immutability.py).

Failure modes:
    - AuditChainBrokenError from validate_chain() when a stored hash or
      payload no longer matches.
    - FeeAdjustmentReasonRequiredError when a manual fee override is
      recorded without a reason.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.exceptions import AuditChainBrokenError, FeeAdjustmentReasonRequiredError
from cashup_kernel.logging_config import get_logger
from cashup_kernel.models.audit_log import AuditAction, AuditLog
from cashup_kernel.services.sequence_service import SequenceService
from cashup_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")


def _json_safe(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Round-trip through canonical JSON so stored and hashed forms agree."""
    if data is None:
        return None
    return json.loads(canonicalize_json(data))


def _payload_hash(before: dict | None, after: dict | None, actor_id: str | None) -> str:
    return hash_payload({"before": before, "after": after, "actor_id": actor_id})


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: str | None
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit rows for one entity, oldest first."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> list[AuditAction]:
        return [entry.action for entry in self.entries]

    @property
    def first_action(self) -> AuditAction | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Creates and validates audit log rows.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditLog.hash).order_by(AuditLog.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        entity_type: str,
        entity_id: Any,
        action: AuditAction,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        actor_id: Any = None,
    ) -> AuditLog:
        """
        Append one audit row.

        Postconditions:
            - The row is flushed with the next seq and a valid chain link.
        """
        action = AuditAction(action)
        actor = str(actor_id) if actor_id is not None else None
        before_data = _json_safe(before)
        after_data = _json_safe(after)

        seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
        prev_hash = self._get_last_hash()
        payload_hash = _payload_hash(before_data, after_data, actor)
        row_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = AuditLog(
            seq=seq,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            before_json=before_data,
            after_json=after_data,
            actor_id=actor,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=row_hash,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return entry

    def record_fee_adjusted(
        self,
        trip_guide_id: Any,
        before: dict[str, Any],
        after: dict[str, Any],
        actor_id: Any,
    ) -> AuditLog:
        """Manual fee overrides are only recorded with a non-empty reason."""
        if not str(after.get("reason") or "").strip():
            raise FeeAdjustmentReasonRequiredError(str(trip_guide_id))
        return self.record(
            "TripGuide", trip_guide_id, AuditAction.FEE_ADJUSTED,
            before=before, after=after, actor_id=actor_id,
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If any payload, hash or link fails.
        """
        rows = self._session.execute(
            select(AuditLog).order_by(AuditLog.seq)
        ).scalars().all()

        previous: AuditLog | None = None
        for row in rows:
            expected_prev = previous.hash if previous is not None else None
            if row.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"seq": row.seq})
                raise AuditChainBrokenError(row.seq, str(expected_prev), str(row.prev_hash))

            expected_payload_hash = _payload_hash(row.before_json, row.after_json, row.actor_id)
            if row.payload_hash != expected_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": row.seq})
                raise AuditChainBrokenError(row.seq, expected_payload_hash, row.payload_hash)

            expected_hash = hash_audit_event(
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                action=AuditAction(row.action).value,
                payload_hash=row.payload_hash,
                prev_hash=row.prev_hash,
            )
            if row.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": row.seq})
                raise AuditChainBrokenError(row.seq, expected_hash, row.hash)
            previous = row

        logger.info("audit_chain_valid", extra={"event_count": len(rows)})
        return True

    # Trace and query methods

    def get_trace(self, entity_type: str, entity_id: Any) -> AuditTrace:
        rows = self._session.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == str(entity_id),
            )
            .order_by(AuditLog.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entries=tuple(
                AuditTraceEntry(
                    seq=row.seq,
                    action=AuditAction(row.action),
                    occurred_at=row.occurred_at,
                    actor_id=row.actor_id,
                    before=row.before_json,
                    after=row.after_json,
                    hash=row.hash,
                )
                for row in rows
            ),
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditLog]:
        """Most recent rows first."""
        result = self._session.execute(
            select(AuditLog).order_by(AuditLog.seq.desc()).limit(limit)
        )
        return list(result.scalars().all())
