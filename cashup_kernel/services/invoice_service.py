"""
InvoiceService -- guide invoice submission behind the exception gate.

Responsibility:
    Builds a guide's earnings statement for a month or a week and hands it
    to the invoice notifier, but only when the guide has no unresolved
    payment exceptions.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - Gate and act are one unit per guide: the Guide row is locked
      (SELECT ... FOR UPDATE) before the open-exception count is read, and
      exception resolution takes the same lock, so the count cannot change
      between the check and the submission.
    - Monthly invoices bucket earnings by week ("Week N"), weekly invoices
      by day, using the report week scheme.
    - Each submission writes one INVOICE_SUBMITTED audit row on the guide.

Failure modes:
    - GuideLinkRequiredError when the account has no guide profile.
    - OpenExceptionsBlockInvoiceError with the open count.
    - NoTripsInPeriodError when the guide has no trips in the period.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.aggregation import GuideStatement
from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.domain.periods import Granularity, Period, month_range, week_range
from cashup_kernel.domain.requests import InvoiceRequest, InvoiceType
from cashup_kernel.exceptions import NoTripsInPeriodError, OpenExceptionsBlockInvoiceError
from cashup_kernel.logging_config import LogContext, get_logger
from cashup_kernel.models.audit_log import AuditAction
from cashup_kernel.selectors.period_selector import PeriodSelector
from cashup_kernel.services._access import require_guide_link
from cashup_kernel.services.auditor_service import AuditorService
from cashup_kernel.services.exception_service import ExceptionService, lock_guide

logger = get_logger("services.invoices")


class InvoiceNotifier(Protocol):
    """Renders and delivers an invoice document (outside this package)."""

    def deliver_invoice(self, statement: GuideStatement, recipients: Sequence[str]) -> None:
        ...


@dataclass(frozen=True)
class InvoiceSubmission:
    statement: GuideStatement
    invoice_type: InvoiceType
    recipients: tuple[str, ...]
    submitted_at: datetime


def invoice_period(request: InvoiceRequest) -> tuple[Period, Granularity]:
    if request.invoice_type == InvoiceType.WEEKLY:
        return week_range(request.year, request.number), Granularity.DAY
    return month_range(request.year, request.number), Granularity.WEEK


class InvoiceService:
    """Guide invoice submission."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        notifier: InvoiceNotifier | None = None,
        admin_emails: Sequence[str] = (),
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._admin_emails = tuple(admin_emails)
        self._exceptions = ExceptionService(session, auditor, self._clock)

    def submit_invoice(self, actor: Actor, request: InvoiceRequest) -> InvoiceSubmission:
        require_guide_link(actor)

        with LogContext.bind(guide_id=str(actor.guide_id)):
            guide = lock_guide(self._session, actor.guide_id)

            open_count = self._exceptions.open_exception_count(guide.id)
            if open_count:
                logger.warning("invoice_blocked", extra={"open_exceptions": open_count})
                raise OpenExceptionsBlockInvoiceError(str(guide.id), open_count)

            period, granularity = invoice_period(request)
            statement = PeriodSelector(self._session).guide_statement(guide, period, granularity)
            if statement.trip_count == 0:
                raise NoTripsInPeriodError(str(guide.id), period.label)

            recipients = request.recipients or self._admin_emails
            submitted_at = self._clock.now()

            self._auditor.record(
                "Guide", guide.id, AuditAction.INVOICE_SUBMITTED,
                after={
                    "invoice_type": request.invoice_type.value,
                    "period": period.label,
                    "start": period.start,
                    "end": period.end,
                    "trip_count": statement.trip_count,
                    "total_earnings": statement.total_earnings,
                    "lines": [
                        {"key": line.key, "trips": line.trip_count, "earnings": line.earnings}
                        for line in statement.lines
                    ],
                    "recipients": list(recipients),
                },
                actor_id=actor.account_id,
            )

            if self._notifier is not None:
                self._notifier.deliver_invoice(statement, recipients)

            logger.info(
                "invoice_submitted",
                extra={
                    "period": period.label,
                    "trip_count": statement.trip_count,
                    "total_earnings": statement.total_earnings,
                    "recipient_count": len(recipients),
                },
            )

        return InvoiceSubmission(
            statement=statement,
            invoice_type=request.invoice_type,
            recipients=tuple(recipients),
            submitted_at=submitted_at,
        )
