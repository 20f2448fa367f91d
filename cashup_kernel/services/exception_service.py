"""
ExceptionService -- off-process payments and their handover resolution.

Responsibility:
    Records payments a guide had to accept personally (cash, card, EFT) and
    their admin-confirmed resolution.  Supplies the open-exception count that
    gates invoice submission.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - OPEN -> HANDOVER_CONFIRMED is the only transition, and creating the
      single CashHandover is the only way to make it.
    - Resolution takes a row lock on the owning Guide, the same lock the
      invoice gate takes, so a concurrent invoice submission observes a
      consistent open count.
    - Raising and resolving an exception each write one audit row in the
      same transaction.

Failure modes:
    - PaymentExceptionNotFoundError for an unknown exception id.
    - ExceptionAlreadyResolvedError when a handover already exists.
    - GuideNotFoundError / TripNotFoundError for unknown references.
    - AdminRequiredError when a non-admin resolves, or raises for another guide.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.domain.requests import ExceptionRequest, HandoverRequest
from cashup_kernel.exceptions import (
    ExceptionAlreadyResolvedError,
    GuideNotFoundError,
    PaymentExceptionNotFoundError,
    TripNotFoundError,
)
from cashup_kernel.logging_config import LogContext, get_logger
from cashup_kernel.models.audit_log import AuditAction
from cashup_kernel.models.guide import Guide
from cashup_kernel.models.payment_exception import (
    RESOLUTION_HANDOVER_CONFIRMED,
    CashHandover,
    PaymentException,
)
from cashup_kernel.models.trip import Trip
from cashup_kernel.services._access import require_admin, require_guide_link
from cashup_kernel.services.auditor_service import AuditorService

logger = get_logger("services.exceptions")


def lock_guide(session: Session, guide_id: UUID) -> Guide:
    """
    SELECT ... FOR UPDATE on the guide row.

    Serializes exception resolution and invoice submission per guide.
    """
    guide = session.execute(
        select(Guide)
        .where(Guide.id == guide_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if guide is None:
        raise GuideNotFoundError(str(guide_id))
    return guide


class ExceptionService:
    """Payment exception and handover workflow."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def create_exception(self, actor: Actor, request: ExceptionRequest) -> PaymentException:
        """
        Record an off-process payment in the OPEN state.

        Guides raise exceptions for themselves; admins may raise them for
        any guide.  Several open exceptions per guide are allowed.
        """
        guide_id = request.guide_id
        if guide_id is None:
            require_guide_link(actor)
            guide_id = actor.guide_id
        elif guide_id != actor.guide_id:
            require_admin(actor, "create_exception_for_other_guide")

        if self._session.get(Guide, guide_id) is None:
            raise GuideNotFoundError(str(guide_id))
        if request.trip_id is not None and self._session.get(Trip, request.trip_id) is None:
            raise TripNotFoundError(str(request.trip_id))

        exception = PaymentException(
            type=request.type,
            reference=request.reference,
            amount_hint=request.amount_hint,
            note=request.note,
            guide_id=guide_id,
            trip_id=request.trip_id,
            created_by_id=actor.account_id,
            created_at=self._clock.now(),
        )
        self._session.add(exception)
        self._session.flush()

        self._auditor.record(
            "PaymentException", exception.id, AuditAction.EXCEPTION_RAISED,
            after=exception.to_snapshot(), actor_id=actor.account_id,
        )

        logger.info(
            "exception_raised",
            extra={
                "exception_id": str(exception.id),
                "guide_id": str(guide_id),
                "payment_type": request.type.value,
            },
        )
        return exception

    def resolve_exception(
        self,
        actor: Actor,
        exception_id: UUID,
        request: HandoverRequest | None = None,
    ) -> CashHandover:
        """
        Confirm the handover for one exception.

        Creates the CashHandover and marks the exception resolved in one
        flush.  A second call for the same exception fails.
        """
        require_admin(actor, "resolve_exception")
        request = request or HandoverRequest()

        exception = self._session.get(PaymentException, exception_id)
        if exception is None:
            raise PaymentExceptionNotFoundError(str(exception_id))

        with LogContext.bind(guide_id=str(exception.guide_id)):
            lock_guide(self._session, exception.guide_id)
            exception = self._session.execute(
                select(PaymentException)
                .where(PaymentException.id == exception_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

            if not exception.is_open:
                logger.warning(
                    "exception_already_resolved",
                    extra={"exception_id": str(exception_id)},
                )
                raise ExceptionAlreadyResolvedError(str(exception_id))

            before = exception.to_snapshot()
            now = self._clock.now()
            handover = CashHandover(
                exception_id=exception.id,
                received_by_id=actor.account_id,
                counted_amount=request.counted_amount,
                comment=request.comment,
                created_at=now,
            )
            exception.handover = handover
            exception.resolved_at = now
            exception.resolution = RESOLUTION_HANDOVER_CONFIRMED
            self._session.add(handover)
            self._session.flush()

            after = exception.to_snapshot()
            after["handover"] = handover.to_snapshot()
            self._auditor.record(
                "PaymentException", exception.id, AuditAction.EXCEPTION_RESOLVED,
                before=before, after=after, actor_id=actor.account_id,
            )

            logger.info(
                "exception_resolved",
                extra={
                    "exception_id": str(exception.id),
                    "handover_id": str(handover.id),
                    "counted_amount": request.counted_amount,
                },
            )
        return handover

    def open_exception_count(self, guide_id: UUID) -> int:
        """Number of unresolved exceptions owned by the guide."""
        return self._session.execute(
            select(func.count())
            .select_from(PaymentException)
            .where(
                PaymentException.guide_id == guide_id,
                PaymentException.resolved_at.is_(None),
            )
        ).scalar_one()

    def list_exceptions(
        self,
        actor: Actor,
        guide_id: UUID | None = None,
        *,
        open_only: bool = False,
    ) -> list[PaymentException]:
        """
        Exceptions visible to the actor: unresolved first, newest first.

        Admins see every guide's exceptions (optionally filtered by guide);
        guides see only their own.
        """
        if not actor.is_admin:
            require_guide_link(actor)
            guide_id = actor.guide_id

        stmt = select(PaymentException)
        if guide_id is not None:
            stmt = stmt.where(PaymentException.guide_id == guide_id)
        if open_only:
            stmt = stmt.where(PaymentException.resolved_at.is_(None))
        stmt = stmt.order_by(
            case((PaymentException.resolved_at.is_(None), 0), else_=1),
            PaymentException.created_at.desc(),
        )
        return list(self._session.execute(stmt).scalars().all())
