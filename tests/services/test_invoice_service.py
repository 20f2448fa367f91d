"""
Tests for InvoiceService -- the open-exception gate and invoice statements.

Covers:
- Open exceptions block submission with the open count; resolving them
  unblocks the same request
- Monthly invoices bucket by week, weekly invoices by day
- Empty periods, DRAFT trips, unlinked accounts
- INVOICE_SUBMITTED audit row and notifier hand-off
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.domain.requests import (
    ExceptionRequest,
    InvoiceRequest,
    InvoiceType,
    PaymentType,
    TripStatus,
)
from cashup_kernel.exceptions import (
    ConflictError,
    GuideLinkRequiredError,
    NoTripsInPeriodError,
    OpenExceptionsBlockInvoiceError,
)
from cashup_kernel.models.audit_log import AuditAction, AuditLog

MARCH = InvoiceRequest(InvoiceType.MONTHLY, 2025, 3)


@pytest.fixture
def junior(guides):
    return guides[GuideRank.JUNIOR]


@pytest.fixture
def junior_actor(actor_for_guide, junior):
    return actor_for_guide(junior)


@pytest.fixture
def march_trips(ledger_service, admin, junior, guides, trip_request):
    senior = guides[GuideRank.SENIOR]
    return [
        ledger_service.create_trip(admin, trip_request(date(2025, 3, 10), guides=[junior], leader=senior)),
        ledger_service.create_trip(admin, trip_request(date(2025, 3, 12), guides=[junior])),
        ledger_service.create_trip(admin, trip_request(date(2025, 3, 18), guides=[junior])),
        # Not on this guide's roster
        ledger_service.create_trip(admin, trip_request(date(2025, 3, 19), leader=senior)),
    ]


class TestInvoiceGate:
    def test_open_exception_blocks_until_resolved(
        self, invoice_service, exception_service, admin, junior_actor, march_trips, notifier, captured_logs,
    ):
        exception = exception_service.create_exception(
            junior_actor, ExceptionRequest(type=PaymentType.EFT, amount_hint=Decimal("120.00")),
        )

        with pytest.raises(OpenExceptionsBlockInvoiceError) as exc_info:
            invoice_service.submit_invoice(junior_actor, MARCH)

        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.open_count == 1
        assert "1 unresolved" in str(exc_info.value)
        assert notifier.invoices == []
        assert any(r["message"] == "invoice_blocked" for r in captured_logs())

        exception_service.resolve_exception(admin, exception.id)
        submission = invoice_service.submit_invoice(junior_actor, MARCH)

        assert submission.statement.trip_count == 3
        assert len(notifier.invoices) == 1

    def test_count_reflects_every_open_exception(self, invoice_service, exception_service, junior_actor, march_trips):
        for _ in range(3):
            exception_service.create_exception(junior_actor, ExceptionRequest(type=PaymentType.CASH))

        with pytest.raises(OpenExceptionsBlockInvoiceError) as exc_info:
            invoice_service.submit_invoice(junior_actor, MARCH)
        assert exc_info.value.open_count == 3

    def test_other_guides_exceptions_do_not_block(
        self, invoice_service, exception_service, guides, actor_for_guide, junior_actor, march_trips,
    ):
        senior_actor = actor_for_guide(guides[GuideRank.SENIOR])
        exception_service.create_exception(senior_actor, ExceptionRequest(type=PaymentType.CASH))

        submission = invoice_service.submit_invoice(junior_actor, MARCH)
        assert submission.statement.trip_count == 3


class TestInvoiceStatement:
    def test_monthly_buckets_by_week(self, invoice_service, junior, junior_actor, march_trips, notifier):
        submission = invoice_service.submit_invoice(junior_actor, MARCH)

        statement = submission.statement
        assert statement.guide_name == junior.name
        assert [(line.key, line.trip_count, line.earnings) for line in statement.lines] == [
            ("Week 10", 2, Decimal("700.00")),
            ("Week 11", 1, Decimal("350.00")),
        ]
        assert statement.total_earnings == Decimal("1050.00")
        assert notifier.invoices[0] == (statement, ("boss@example.com",))

    def test_weekly_buckets_by_day(self, invoice_service, junior_actor, march_trips):
        submission = invoice_service.submit_invoice(
            junior_actor, InvoiceRequest(InvoiceType.WEEKLY, 2025, 10),
        )
        assert [line.key for line in submission.statement.lines] == ["2025-03-10", "2025-03-12"]
        assert submission.invoice_type == InvoiceType.WEEKLY

    def test_explicit_recipients(self, invoice_service, junior_actor, march_trips, notifier):
        request = InvoiceRequest(InvoiceType.MONTHLY, 2025, 3, recipients=("payroll@example.com",))
        submission = invoice_service.submit_invoice(junior_actor, request)
        assert submission.recipients == ("payroll@example.com",)

    def test_empty_period(self, invoice_service, junior_actor, march_trips, notifier):
        with pytest.raises(NoTripsInPeriodError):
            invoice_service.submit_invoice(junior_actor, InvoiceRequest(InvoiceType.MONTHLY, 2025, 4))
        assert notifier.invoices == []

    def test_draft_trips_not_invoiced(self, ledger_service, invoice_service, admin, junior, junior_actor, trip_request):
        ledger_service.create_trip(admin, trip_request(date(2025, 3, 10), guides=[junior], status=TripStatus.DRAFT))
        with pytest.raises(NoTripsInPeriodError):
            invoice_service.submit_invoice(junior_actor, MARCH)

    def test_audit_row(self, session, invoice_service, junior, junior_actor, march_trips):
        invoice_service.submit_invoice(junior_actor, MARCH)

        row = session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.INVOICE_SUBMITTED)
        ).scalar_one()
        assert row.entity_type == "Guide"
        assert row.entity_id == str(junior.id)
        assert row.after_json["period"] == "2025-03"
        assert row.after_json["trip_count"] == 3
        assert row.after_json["total_earnings"] == "1050"

    def test_requires_guide_link(self, invoice_service, unlinked_user):
        with pytest.raises(GuideLinkRequiredError):
            invoice_service.submit_invoice(unlinked_user, MARCH)
