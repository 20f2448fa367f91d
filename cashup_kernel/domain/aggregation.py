"""
Period aggregation -- the pure core behind reports and statements.

Responsibility:
    Turns a list of trip facts (plain values read by the period selector)
    into per-trip rows, sub-period buckets, a running total, guide
    summaries and guide statements.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The selector loads
    ``TripFacts``; this module never sees ORM objects.

Invariants enforced:
    - Net total = cash + phone pouches + water + sunglasses - sum(discounts).
      A negative net is valid and is reported as-is.
    - Rows are in (trip_date, created_at) order and the running total
      accumulates in exactly that order.
    - Every elapsed date in range (date <= today) without a trip gets a
      zero row; empty future dates are omitted.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from cashup_kernel.domain.periods import Granularity, Period, bucket_key
from cashup_kernel.domain.rates import GuideRank

ZERO = Decimal("0.00")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GuideFact:
    guide_id: UUID
    name: str
    rank: GuideRank
    fee_amount: Decimal
    is_leader: bool = False


@dataclass(frozen=True)
class TripFacts:
    trip_id: UUID
    trip_date: date
    created_at: datetime
    lead_name: str
    total_pax: int
    status: str
    cash_received: Decimal = ZERO
    phone_pouches: Decimal = ZERO
    water_sales: Decimal = ZERO
    sunglasses_sales: Decimal = ZERO
    discount_total: Decimal = ZERO
    guides: tuple[GuideFact, ...] = ()

    @property
    def ancillary(self) -> Decimal:
        return self.phone_pouches + self.water_sales + self.sunglasses_sales

    @property
    def net_total(self) -> Decimal:
        return self.cash_received + self.ancillary - self.discount_total

    def rank_count(self, rank: GuideRank) -> int:
        return sum(1 for g in self.guides if g.rank == rank)


def trip_sort_key(facts: TripFacts) -> tuple:
    # Naive and aware datetimes both occur (SQLite drops tzinfo)
    created = facts.created_at.replace(tzinfo=None) if facts.created_at else datetime.min
    return facts.trip_date, created


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReportRow:
    trip_date: date
    bucket: str
    trip_id: UUID | None = None
    lead_name: str = ""
    total_pax: int = 0
    senior_count: int = 0
    intermediate_count: int = 0
    junior_count: int = 0
    trainee_count: int = 0
    cash_received: Decimal = ZERO
    ancillary: Decimal = ZERO
    discounts: Decimal = ZERO
    net_total: Decimal = ZERO
    running_total: Decimal = ZERO

    @property
    def is_zero_row(self) -> bool:
        return self.trip_id is None


@dataclass
class Bucket:
    key: str
    label: str
    trip_count: int = 0
    total_pax: int = 0
    cash_received: Decimal = ZERO
    net_total: Decimal = ZERO


@dataclass
class GuideSummary:
    guide_id: UUID
    name: str
    rank: GuideRank
    trip_count: int = 0
    leader_count: int = 0
    total_earnings: Decimal = ZERO


@dataclass(frozen=True)
class ReportTotals:
    trip_count: int
    total_pax: int
    cash_received: Decimal
    net_total: Decimal


@dataclass(frozen=True)
class PeriodReport:
    period: Period
    granularity: Granularity
    rows: tuple[ReportRow, ...]
    buckets: tuple[Bucket, ...]
    guide_summaries: tuple[GuideSummary, ...]
    totals: ReportTotals

    @property
    def trip_rows(self) -> tuple[ReportRow, ...]:
        return tuple(row for row in self.rows if not row.is_zero_row)

    def running_totals(self, *, include_zero_rows: bool = False) -> list[Decimal]:
        return [
            row.running_total
            for row in self.rows
            if include_zero_rows or not row.is_zero_row
        ]

    def as_rows(self) -> list[dict[str, Any]]:
        """Plain list-of-dicts for the external report renderer."""
        return [asdict(row) for row in self.rows]

    def guide_summary_rows(self) -> list[dict[str, Any]]:
        return [asdict(summary) for summary in self.guide_summaries]


@dataclass(frozen=True)
class StatementLine:
    key: str
    trip_count: int
    earnings: Decimal


@dataclass(frozen=True)
class GuideStatement:
    """One guide's earnings for an invoice period."""

    guide_id: UUID
    guide_name: str
    guide_rank: GuideRank
    period: Period
    lines: tuple[StatementLine, ...]
    trip_count: int
    total_earnings: Decimal
    trip_ids: tuple[UUID, ...] = field(default=())


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate(
    trips: list[TripFacts],
    period: Period,
    granularity: Granularity,
    today: date,
) -> PeriodReport:
    """
    Build the period report.

    Args:
        trips: Trip facts; trips outside ``period`` are ignored.
        period: Inclusive date range.
        granularity: Sub-period bucket size.
        today: Business date deciding which empty dates get a zero row.
    """
    in_range = sorted((t for t in trips if t.trip_date in period), key=trip_sort_key)

    by_date: dict[date, list[TripFacts]] = {}
    for facts in in_range:
        by_date.setdefault(facts.trip_date, []).append(facts)

    rows: list[ReportRow] = []
    buckets: OrderedDict[str, Bucket] = OrderedDict()
    summaries: dict[UUID, GuideSummary] = {}
    running = ZERO
    total_pax = 0
    total_cash = ZERO

    for day in period.days():
        day_trips = by_date.get(day, [])
        key, label = bucket_key(day, granularity)
        if not day_trips:
            if day <= today:
                buckets.setdefault(key, Bucket(key=key, label=label))
                rows.append(ReportRow(trip_date=day, bucket=key, running_total=running))
            continue

        bucket = buckets.setdefault(key, Bucket(key=key, label=label))
        for facts in day_trips:
            net = facts.net_total
            running += net
            total_pax += facts.total_pax
            total_cash += facts.cash_received

            bucket.trip_count += 1
            bucket.total_pax += facts.total_pax
            bucket.cash_received += facts.cash_received
            bucket.net_total += net

            rows.append(
                ReportRow(
                    trip_date=day,
                    bucket=key,
                    trip_id=facts.trip_id,
                    lead_name=facts.lead_name,
                    total_pax=facts.total_pax,
                    senior_count=facts.rank_count(GuideRank.SENIOR),
                    intermediate_count=facts.rank_count(GuideRank.INTERMEDIATE),
                    junior_count=facts.rank_count(GuideRank.JUNIOR),
                    trainee_count=facts.rank_count(GuideRank.TRAINEE),
                    cash_received=facts.cash_received,
                    ancillary=facts.ancillary,
                    discounts=facts.discount_total,
                    net_total=net,
                    running_total=running,
                )
            )

            for guide in facts.guides:
                summary = summaries.setdefault(
                    guide.guide_id,
                    GuideSummary(guide_id=guide.guide_id, name=guide.name, rank=guide.rank),
                )
                summary.trip_count += 1
                summary.total_earnings += guide.fee_amount
                if guide.is_leader:
                    summary.leader_count += 1

    return PeriodReport(
        period=period,
        granularity=granularity,
        rows=tuple(rows),
        buckets=tuple(buckets.values()),
        guide_summaries=tuple(sorted(summaries.values(), key=lambda s: s.name.lower())),
        totals=ReportTotals(
            trip_count=len(in_range),
            total_pax=total_pax,
            cash_received=total_cash,
            net_total=running,
        ),
    )


def guide_statement(
    trips: list[TripFacts],
    guide_id: UUID,
    guide_name: str,
    guide_rank: GuideRank,
    period: Period,
    granularity: Granularity,
) -> GuideStatement:
    """
    Bucket one guide's fees over ``period``.

    Monthly invoices bucket by week ("Week N"), weekly invoices by day.
    Trips the guide is not rostered on contribute nothing.
    """
    lines: OrderedDict[str, list] = OrderedDict()
    trip_ids: list[UUID] = []
    total = ZERO

    for facts in sorted(trips, key=trip_sort_key):
        if facts.trip_date not in period:
            continue
        fee = next((g.fee_amount for g in facts.guides if g.guide_id == guide_id), None)
        if fee is None:
            continue
        _, label = bucket_key(facts.trip_date, granularity)
        entry = lines.setdefault(label, [0, ZERO])
        entry[0] += 1
        entry[1] += fee
        total += fee
        trip_ids.append(facts.trip_id)

    return GuideStatement(
        guide_id=guide_id,
        guide_name=guide_name,
        guide_rank=guide_rank,
        period=period,
        lines=tuple(StatementLine(key=k, trip_count=v[0], earnings=v[1]) for k, v in lines.items()),
        trip_count=len(trip_ids),
        total_earnings=total,
        trip_ids=tuple(trip_ids),
    )
