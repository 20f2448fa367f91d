"""
Tests for period math and the period aggregator.

Covers:
- Week 1 starts on the first Monday strictly after 1 January
- Month/week/year ranges and previous_week
- Running totals in (date, created_at) order, negative nets included
- Zero rows only for elapsed empty dates
- Buckets, guide summaries and guide statements
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from cashup_kernel.domain.aggregation import GuideFact, TripFacts, aggregate, guide_statement
from cashup_kernel.domain.periods import (
    Granularity,
    Period,
    bucket_key,
    month_range,
    previous_week,
    week1_monday,
    week_number,
    week_range,
    year_range,
)
from cashup_kernel.domain.rates import GuideRank

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def facts(day, *, cash="0", water="0", discounts="0", created=T0, guides=(), pax=4, lead="Party"):
    return TripFacts(
        trip_id=uuid4(),
        trip_date=day,
        created_at=created,
        lead_name=lead,
        total_pax=pax,
        status="APPROVED",
        cash_received=Decimal(cash),
        water_sales=Decimal(water),
        discount_total=Decimal(discounts),
        guides=tuple(guides),
    )


class TestWeekNumbering:
    def test_week1_is_first_monday_after_jan1(self):
        # 2025-01-01 is a Wednesday
        assert week1_monday(2025) == date(2025, 1, 6)

    def test_jan1_on_monday_starts_week1_a_week_later(self):
        # 2024-01-01 is a Monday; week 1 starts strictly after it
        assert week1_monday(2024) == date(2024, 1, 8)

    def test_days_before_week1_are_week0(self):
        assert week_number(date(2025, 1, 5)) == 0
        assert week_number(date(2025, 1, 6)) == 1
        assert week_number(date(2025, 1, 12)) == 1
        assert week_number(date(2025, 1, 13)) == 2

    def test_week_range(self):
        period = week_range(2025, 11)
        assert period.start == date(2025, 3, 17)
        assert period.end == date(2025, 3, 23)
        assert period.label == "Week 11, 2025"

    def test_bucket_key_week(self):
        assert bucket_key(date(2025, 3, 19), Granularity.WEEK) == ("2025-W11", "Week 11")

    @given(st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)))
    def test_week_number_formula(self, day):
        week = week_number(day)
        start = week1_monday(day.year) + timedelta(weeks=week - 1)
        assert start <= day < start + timedelta(days=7)
        assert start.weekday() == 0

    @given(st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)))
    def test_week_key_is_constant_across_a_monday_to_sunday_week(self, day):
        monday = day - timedelta(days=day.weekday())
        if monday.year != day.year:
            return
        assert week_number(monday) == week_number(day)


class TestRanges:
    def test_month_range(self):
        period = month_range(2024, 2)
        assert (period.start, period.end, period.label) == (date(2024, 2, 1), date(2024, 2, 29), "2024-02")

    def test_year_range(self):
        assert year_range(2025) == Period(date(2025, 1, 1), date(2025, 12, 31), "2025")

    def test_previous_week(self):
        period = previous_week(date(2025, 3, 19))
        assert (period.start, period.end) == (date(2025, 3, 10), date(2025, 3, 16))

    def test_inverted_period_rejected(self):
        with pytest.raises(ValueError):
            Period(date(2025, 3, 2), date(2025, 3, 1), "bad")

    def test_is_final(self):
        period = week_range(2025, 10)
        assert not period.is_final(period.end)
        assert period.is_final(period.end + timedelta(days=1))


class TestAggregate:
    week = Period(date(2025, 3, 10), date(2025, 3, 16), "Week 10, 2025")

    def test_running_totals_with_negative_trip(self):
        monday = facts(date(2025, 3, 10), cash="100")
        wednesday = facts(date(2025, 3, 12), cash="30", discounts="50")

        report = aggregate([wednesday, monday], self.week, Granularity.DAY, today=date(2025, 3, 20))

        assert report.running_totals() == [Decimal("100"), Decimal("80")]
        assert [row.net_total for row in report.trip_rows] == [Decimal("100"), Decimal("-20")]
        assert report.totals.net_total == Decimal("80")

    def test_zero_row_for_elapsed_empty_day(self):
        monday = facts(date(2025, 3, 10), cash="100")
        wednesday = facts(date(2025, 3, 12), cash="30", discounts="50")

        report = aggregate([monday, wednesday], self.week, Granularity.DAY, today=date(2025, 3, 11))

        dates = [row.trip_date for row in report.rows]
        assert date(2025, 3, 11) in dates
        tuesday = next(row for row in report.rows if row.trip_date == date(2025, 3, 11))
        assert tuesday.is_zero_row
        assert tuesday.running_total == Decimal("100")
        # Thursday onwards is in the future and empty
        assert max(dates) == date(2025, 3, 12)

    def test_no_zero_row_for_future_empty_day(self):
        monday = facts(date(2025, 3, 10), cash="100")
        wednesday = facts(date(2025, 3, 12), cash="30", discounts="50")

        report = aggregate([monday, wednesday], self.week, Granularity.DAY, today=date(2025, 3, 10))

        assert [row.trip_date for row in report.rows] == [date(2025, 3, 10), date(2025, 3, 12)]

    def test_same_day_ordered_by_creation(self):
        later = facts(date(2025, 3, 10), cash="5", created=T0 + timedelta(hours=2), lead="Later")
        earlier = facts(date(2025, 3, 10), cash="7", created=T0, lead="Earlier")

        report = aggregate([later, earlier], self.week, Granularity.DAY, today=date(2025, 3, 9))

        assert [row.lead_name for row in report.trip_rows] == ["Earlier", "Later"]
        assert report.running_totals() == [Decimal("7"), Decimal("12")]

    def test_net_includes_ancillary_sales(self):
        trip = facts(date(2025, 3, 10), cash="100", water="15", discounts="5")
        report = aggregate([trip], self.week, Granularity.DAY, today=date(2025, 3, 9))
        row = report.trip_rows[0]
        assert row.ancillary == Decimal("15")
        assert row.net_total == Decimal("110")

    def test_trips_outside_period_ignored(self):
        inside = facts(date(2025, 3, 10), cash="10")
        outside = facts(date(2025, 3, 20), cash="999")
        report = aggregate([inside, outside], self.week, Granularity.DAY, today=date(2025, 3, 1))
        assert report.totals.trip_count == 1

    def test_week_buckets_and_guide_summary(self):
        senior = uuid4()
        junior = uuid4()
        month = month_range(2025, 3)
        trips = [
            facts(
                date(2025, 3, 10), cash="100", pax=5,
                guides=[
                    GuideFact(senior, "Sipho", GuideRank.SENIOR, Decimal("810"), is_leader=True),
                    GuideFact(junior, "Ben", GuideRank.JUNIOR, Decimal("350")),
                ],
            ),
            facts(
                date(2025, 3, 18), cash="50", pax=3,
                guides=[GuideFact(junior, "Ben", GuideRank.JUNIOR, Decimal("350"))],
            ),
        ]

        report = aggregate(trips, month, Granularity.WEEK, today=date(2025, 3, 1))

        by_key = {bucket.key: bucket for bucket in report.buckets}
        assert by_key["2025-W10"].net_total == Decimal("100")
        assert by_key["2025-W10"].total_pax == 5
        assert by_key["2025-W11"].net_total == Decimal("50")

        ben, sipho = report.guide_summaries
        assert (ben.name, ben.trip_count, ben.total_earnings) == ("Ben", 2, Decimal("700"))
        assert (sipho.leader_count, sipho.total_earnings) == (1, Decimal("810"))
        assert report.trip_rows[0].senior_count == 1
        assert report.trip_rows[0].junior_count == 1

    def test_as_rows_is_plain_data(self):
        report = aggregate([facts(date(2025, 3, 10), cash="1")], self.week, Granularity.DAY, today=date(2025, 3, 9))
        rows = report.as_rows()
        assert rows[0]["lead_name"] == "Party"
        assert rows[0]["running_total"] == Decimal("1")

    @given(
        st.lists(
            st.tuples(
                st.integers(min_value=0, max_value=6),
                st.decimals(min_value=0, max_value=1000, places=2),
                st.decimals(min_value=0, max_value=1000, places=2),
            ),
            max_size=12,
        )
    )
    def test_final_running_total_equals_sum_of_nets(self, entries):
        trips = [
            facts(self.week.start + timedelta(days=offset), cash=str(cash), discounts=str(discount))
            for offset, cash, discount in entries
        ]
        report = aggregate(trips, self.week, Granularity.DAY, today=date(2025, 3, 1))
        expected = sum((Decimal(str(c)) - Decimal(str(d)) for _, c, d in entries), Decimal("0"))
        assert report.totals.net_total == expected
        totals = report.running_totals()
        assert len(totals) == len(entries)
        if totals:
            assert totals[-1] == expected


class TestGuideStatement:
    def test_monthly_statement_buckets_by_week(self):
        guide = uuid4()
        other = uuid4()
        trips = [
            facts(date(2025, 3, 10), guides=[GuideFact(guide, "Ben", GuideRank.JUNIOR, Decimal("350"))]),
            facts(date(2025, 3, 12), guides=[GuideFact(guide, "Ben", GuideRank.JUNIOR, Decimal("400"))]),
            facts(date(2025, 3, 18), guides=[GuideFact(guide, "Ben", GuideRank.JUNIOR, Decimal("350"))]),
            facts(date(2025, 3, 19), guides=[GuideFact(other, "Tom", GuideRank.TRAINEE, Decimal("200"))]),
        ]

        statement = guide_statement(
            trips, guide, "Ben", GuideRank.JUNIOR, month_range(2025, 3), Granularity.WEEK,
        )

        assert [(line.key, line.trip_count, line.earnings) for line in statement.lines] == [
            ("Week 10", 2, Decimal("750")),
            ("Week 11", 1, Decimal("350")),
        ]
        assert statement.total_earnings == Decimal("1100")
        assert statement.trip_count == 3

    def test_weekly_statement_buckets_by_day(self):
        guide = uuid4()
        trips = [
            facts(date(2025, 3, 17), guides=[GuideFact(guide, "Ben", GuideRank.JUNIOR, Decimal("350"))]),
        ]
        statement = guide_statement(
            trips, guide, "Ben", GuideRank.JUNIOR, week_range(2025, 11), Granularity.DAY,
        )
        assert statement.lines[0].key == "2025-03-17"
