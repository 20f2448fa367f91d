"""
PeriodSelector -- loads trip facts for a date range and aggregates them.

The aggregation itself is pure (domain/aggregation.py); this selector only
reads trips with their payments, discounts and roster and hands plain
values over.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from cashup_kernel.domain.aggregation import (
    GuideFact,
    GuideStatement,
    PeriodReport,
    TripFacts,
    aggregate,
    guide_statement,
)
from cashup_kernel.domain.periods import Granularity, Period
from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.domain.requests import TripStatus
from cashup_kernel.models.guide import Guide
from cashup_kernel.models.trip import Trip, TripGuide
from cashup_kernel.selectors.base import BaseSelector

# DRAFT trips are not counted in reports or statements
COUNTED_STATUSES = (
    TripStatus.SUBMITTED,
    TripStatus.APPROVED,
    TripStatus.REJECTED,
    TripStatus.LOCKED,
)


def _facts(trip: Trip) -> TripFacts:
    payments = trip.payments
    zero = Decimal("0.00")
    return TripFacts(
        trip_id=trip.id,
        trip_date=trip.trip_date,
        created_at=trip.created_at,
        lead_name=trip.lead_name,
        total_pax=trip.total_pax,
        status=TripStatus(trip.status).value,
        cash_received=payments.cash_received if payments else zero,
        phone_pouches=payments.phone_pouches if payments else zero,
        water_sales=payments.water_sales if payments else zero,
        sunglasses_sales=payments.sunglasses_sales if payments else zero,
        discount_total=trip.discount_total,
        guides=tuple(
            GuideFact(
                guide_id=tg.guide_id,
                name=tg.guide.name,
                rank=GuideRank(tg.guide.rank),
                fee_amount=tg.fee_amount,
                is_leader=tg.guide_id == trip.trip_leader_id,
            )
            for tg in trip.guides
        ),
    )


class PeriodSelector(BaseSelector):
    """Period queries."""

    def load_trip_facts(
        self,
        start: date,
        end: date,
        *,
        guide_id: UUID | None = None,
        statuses: tuple[TripStatus, ...] = COUNTED_STATUSES,
    ) -> list[TripFacts]:
        """Trips in [start, end] in (trip_date, created_at) order."""
        stmt = (
            select(Trip)
            .where(Trip.trip_date >= start, Trip.trip_date <= end)
            .where(Trip.status.in_(statuses))
        )
        if guide_id is not None:
            stmt = stmt.where(
                Trip.id.in_(select(TripGuide.trip_id).where(TripGuide.guide_id == guide_id))
            )
        stmt = stmt.order_by(Trip.trip_date, Trip.created_at)
        return [_facts(trip) for trip in self.session.execute(stmt).scalars()]

    def period_report(
        self,
        period: Period,
        granularity: Granularity,
        today: date,
        *,
        statuses: tuple[TripStatus, ...] = COUNTED_STATUSES,
    ) -> PeriodReport:
        facts = self.load_trip_facts(period.start, period.end, statuses=statuses)
        return aggregate(facts, period, Granularity(granularity), today)

    def guide_statement(
        self,
        guide: Guide,
        period: Period,
        granularity: Granularity,
    ) -> GuideStatement:
        facts = self.load_trip_facts(period.start, period.end, guide_id=guide.id)
        return guide_statement(
            facts,
            guide_id=guide.id,
            guide_name=guide.name,
            guide_rank=GuideRank(guide.rank),
            period=period,
            granularity=Granularity(granularity),
        )
