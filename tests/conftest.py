"""
Pytest fixtures for the cash-up kernel test suite.

Provides:
- A fresh database per test (in-memory SQLite by default)
- Deterministic clock and wired services
- Seeded guides, accounts and actors
- Captured structured logs

Environment Variables:
- CASHUP_TEST_DATABASE_URL: database URL for the suite.  Defaults to an
  in-memory SQLite database; point it at PostgreSQL to exercise row locks.
"""

import json
import logging
import os
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from cashup_kernel.db.engine import Database
from cashup_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from cashup_kernel.domain.actor import AccountRole, Actor
from cashup_kernel.domain.clock import DeterministicClock
from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.domain.requests import DiscountInput, PaymentInput, TripRequest
from cashup_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from cashup_kernel.models.account import Account
from cashup_kernel.models.guide import Guide
from cashup_kernel.services.account_service import AccountService
from cashup_kernel.services.auditor_service import AuditorService
from cashup_kernel.services.exception_service import ExceptionService
from cashup_kernel.services.guide_service import GuideService
from cashup_kernel.services.invoice_service import InvoiceService
from cashup_kernel.services.ledger_service import LedgerService
from cashup_kernel.services.report_service import ReportService

DEFAULT_TEST_DATABASE_URL = "sqlite://"

ADMIN_EMAILS = ("boss@example.com",)


def get_database_url() -> str:
    return os.environ.get("CASHUP_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture cashup_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger_service):
            ledger_service.create_trip(...)
            logs = captured_logs()
            assert any(r["message"] == "trip_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("cashup_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def database():
    db = Database(get_database_url())
    db.drop_tables()
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()


@pytest.fixture
def session(database):
    """A session the test drives directly; services only flush into it."""
    session = database.session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def deterministic_clock():
    """Monday 17 March 2025, 12:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Service fixtures
# =============================================================================


class RecordingNotifier:
    """Collects notifier calls instead of rendering and sending documents."""

    def __init__(self):
        self.invoices: list[tuple] = []
        self.reports: list[tuple] = []

    def deliver_invoice(self, statement, recipients: Sequence[str]) -> None:
        self.invoices.append((statement, tuple(recipients)))

    def deliver(self, report, recipients: Sequence[str]) -> None:
        self.reports.append((report, tuple(recipients)))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def auditor_service(session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def ledger_service(session, auditor_service, deterministic_clock):
    return LedgerService(session, auditor_service, clock=deterministic_clock)


@pytest.fixture
def exception_service(session, auditor_service, deterministic_clock):
    return ExceptionService(session, auditor_service, deterministic_clock)


@pytest.fixture
def invoice_service(session, auditor_service, deterministic_clock, notifier):
    return InvoiceService(
        session, auditor_service, deterministic_clock,
        notifier=notifier, admin_emails=ADMIN_EMAILS,
    )


@pytest.fixture
def report_service(session, deterministic_clock, notifier):
    return ReportService(
        session, deterministic_clock, notifier=notifier, recipients=ADMIN_EMAILS,
    )


@pytest.fixture
def guide_service(session, auditor_service, deterministic_clock):
    return GuideService(session, auditor_service, deterministic_clock)


@pytest.fixture
def account_service(session, auditor_service, deterministic_clock):
    return AccountService(
        session, auditor_service, deterministic_clock, admin_emails=ADMIN_EMAILS,
    )


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def make_guide(session, deterministic_clock):
    """Insert a guide directly, bypassing GuideService and its audit rows."""

    def _make(name: str, rank: GuideRank, email: str | None = None, active: bool = True) -> Guide:
        guide = Guide(
            name=name,
            rank=rank,
            email=email,
            active=active,
            created_at=deterministic_clock.now(),
        )
        session.add(guide)
        session.flush()
        return guide

    return _make


@pytest.fixture
def guides(make_guide):
    """One guide per rank."""
    return {
        GuideRank.SENIOR: make_guide("Sipho", GuideRank.SENIOR, "sipho@example.com"),
        GuideRank.INTERMEDIATE: make_guide("Anna", GuideRank.INTERMEDIATE, "anna@example.com"),
        GuideRank.JUNIOR: make_guide("Ben", GuideRank.JUNIOR),
        GuideRank.TRAINEE: make_guide("Tom", GuideRank.TRAINEE),
    }


@pytest.fixture
def make_account(session, deterministic_clock):
    def _make(email: str, role: AccountRole = AccountRole.USER, guide: Guide | None = None) -> Account:
        account = Account(
            email=email,
            name=guide.name if guide is not None else email.split("@")[0],
            role=role,
            active=True,
            guide_id=guide.id if guide is not None else None,
            created_at=deterministic_clock.now(),
        )
        session.add(account)
        session.flush()
        return account

    return _make


@pytest.fixture
def admin(make_account) -> Actor:
    account = make_account("boss@example.com", AccountRole.ADMIN)
    return Actor(account_id=account.id, role=AccountRole.ADMIN)


@pytest.fixture
def actor_for_guide(make_account):
    """Build a USER actor whose account is linked to the given guide."""

    def _make(guide: Guide) -> Actor:
        account = make_account(f"{guide.name.lower().replace(' ', '.')}@guides.example.com", guide=guide)
        return Actor(account_id=account.id, role=AccountRole.USER, guide_id=guide.id)

    return _make


@pytest.fixture
def unlinked_user(make_account) -> Actor:
    account = make_account("visitor@example.com")
    return Actor(account_id=account.id, role=AccountRole.USER)


def make_trip_request(
    trip_date: date = date(2025, 3, 10),
    lead_name: str = "Smith party",
    *,
    guides: Sequence[Guide] = (),
    leader: Guide | None = None,
    total_pax: int = 8,
    cash: str = "100.00",
    phone_pouches: str = "0.00",
    water: str = "0.00",
    sunglasses: str = "0.00",
    discounts: Sequence[tuple[str, str]] = (),
    **overrides,
) -> TripRequest:
    """TripRequest with sensible defaults for ledger tests."""
    return TripRequest(
        trip_date=trip_date,
        lead_name=lead_name,
        total_pax=total_pax,
        trip_leader_id=leader.id if leader is not None else None,
        guide_ids=tuple(g.id for g in guides),
        payments=PaymentInput(
            cash_received=Decimal(cash),
            phone_pouches=Decimal(phone_pouches),
            water_sales=Decimal(water),
            sunglasses_sales=Decimal(sunglasses),
        ),
        discounts=tuple(DiscountInput(Decimal(amount), reason) for amount, reason in discounts),
        **overrides,
    )


@pytest.fixture
def trip_request():
    return make_trip_request
