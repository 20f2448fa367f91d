"""
ReportService -- period reports and their hand-off to the notifier.

Responsibility:
    Produces daily/weekly/monthly/yearly period reports for admins and
    decides when a period's data is final enough to hand to the external
    report notifier.  Rendering and delivery happen outside this package.

Architecture position:
    Kernel > Services.  Read-only over the ledger; writes nothing.

Failure modes:
    - AdminRequiredError for non-admin callers.
    - PeriodNotFinalError when handing off a period that has not ended.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol

from sqlalchemy.orm import Session

from cashup_kernel.domain.actor import Actor
from cashup_kernel.domain.aggregation import PeriodReport
from cashup_kernel.domain.clock import Clock, SystemClock
from cashup_kernel.domain.periods import (
    Granularity,
    Period,
    month_range,
    previous_week,
    week_range,
    year_range,
)
from cashup_kernel.exceptions import PeriodNotFinalError
from cashup_kernel.logging_config import get_logger
from cashup_kernel.selectors.period_selector import PeriodSelector
from cashup_kernel.services._access import require_admin

logger = get_logger("services.reports")


class ReportNotifier(Protocol):
    """Renders and delivers a period report (outside this package)."""

    def deliver(self, report: PeriodReport, recipients: Sequence[str]) -> None:
        ...


class ReportService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: ReportNotifier | None = None,
        recipients: Sequence[str] = (),
    ) -> None:
        self._selector = PeriodSelector(session)
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._recipients = tuple(recipients)

    def report(self, actor: Actor, period: Period, granularity: Granularity) -> PeriodReport:
        require_admin(actor, "period_report")
        report = self._selector.period_report(period, granularity, self._clock.today())
        logger.info(
            "period_report_built",
            extra={
                "period": period.label,
                "granularity": Granularity(granularity).value,
                "trip_count": report.totals.trip_count,
            },
        )
        return report

    def custom_report(self, actor: Actor, start: date, end: date) -> PeriodReport:
        return self.report(actor, Period(start, end, f"{start} to {end}"), Granularity.DAY)

    def weekly_report(self, actor: Actor, year: int, week: int) -> PeriodReport:
        return self.report(actor, week_range(year, week), Granularity.DAY)

    def monthly_report(self, actor: Actor, year: int, month: int) -> PeriodReport:
        return self.report(actor, month_range(year, month), Granularity.WEEK)

    def yearly_report(self, actor: Actor, year: int) -> PeriodReport:
        return self.report(actor, year_range(year), Granularity.MONTH)

    def previous_week_report(self, actor: Actor) -> PeriodReport:
        return self.report(actor, previous_week(self._clock.today()), Granularity.DAY)

    def hand_off(self, report: PeriodReport, recipients: Sequence[str] | None = None) -> bool:
        """
        Pass a final report to the notifier.

        Returns False when no notifier is configured.
        """
        today = self._clock.today()
        if not report.period.is_final(today):
            raise PeriodNotFinalError(report.period.end.isoformat(), today.isoformat())

        targets = tuple(recipients) if recipients is not None else self._recipients
        if self._notifier is None:
            logger.info("report_hand_off_skipped", extra={"period": report.period.label})
            return False

        self._notifier.deliver(report, targets)
        logger.info(
            "report_handed_off",
            extra={"period": report.period.label, "recipient_count": len(targets)},
        )
        return True
