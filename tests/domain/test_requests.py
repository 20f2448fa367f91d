"""
Tests for request parsing at the boundary.

Unknown keys, missing keys and mistyped values are rejected; nothing is
coerced silently.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.domain.requests import (
    CashupRequest,
    ExceptionRequest,
    FeeAdjustmentRequest,
    GuideRequest,
    HandoverRequest,
    InvoiceRequest,
    InvoiceType,
    PaymentType,
    TripPatch,
    TripRequest,
    TripStatus,
    parse_amount,
)
from cashup_kernel.exceptions import (
    InvalidFieldError,
    MissingFieldError,
    UnknownFieldError,
    ValidationError,
)


def trip_payload(**overrides):
    payload = {
        "trip_date": "2025-03-10",
        "lead_name": "  Smith party ",
        "total_pax": 6,
        "guide_ids": [str(uuid4())],
        "payments": {"cash_received": 120, "water_sales": 5.5},
    }
    payload.update(overrides)
    return payload


class TestTripRequest:
    def test_parses_full_payload(self):
        leader = uuid4()
        payload = trip_payload(
            trip_leader_id=str(leader),
            status="SUBMITTED",
            payments={"cash_received": 120, "water_sales": Decimal("5.5")},
            discounts=[{"amount": 10, "reason": "kids"}],
            pics_uploaded=True,
        )
        request = TripRequest.from_payload(payload)

        assert request.trip_date == date(2025, 3, 10)
        assert request.lead_name == "Smith party"
        assert request.trip_leader_id == leader
        assert request.status == TripStatus.SUBMITTED
        assert request.payments.cash_received == Decimal("120.00")
        assert request.payments.water_sales == Decimal("5.50")
        assert request.payments.gross == Decimal("125.50")
        assert request.discounts[0].amount == Decimal("10.00")
        assert request.pics_uploaded is True

    def test_unknown_key_rejected(self):
        with pytest.raises(UnknownFieldError) as exc_info:
            TripRequest.from_payload(trip_payload(fee_amount=1))
        assert exc_info.value.fields == ["fee_amount"]

    def test_missing_lead_name(self):
        payload = trip_payload()
        del payload["lead_name"]
        with pytest.raises(MissingFieldError):
            TripRequest.from_payload(payload)

    def test_string_amount_rejected(self):
        with pytest.raises(InvalidFieldError):
            TripRequest.from_payload(trip_payload(payments={"cash_received": "120"}))

    def test_bool_amount_rejected(self):
        with pytest.raises(InvalidFieldError):
            parse_amount("cash_received", True)

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidFieldError):
            TripRequest.from_payload(trip_payload(payments={"cash_received": -5}))

    def test_bad_date_rejected(self):
        with pytest.raises(InvalidFieldError):
            TripRequest.from_payload(trip_payload(trip_date="10/03/2025"))

    @pytest.mark.parametrize("value", ["2025-03-10garbage", "2025-03-10 nonsense"])
    def test_trailing_text_after_date_rejected(self, value):
        with pytest.raises(InvalidFieldError):
            TripRequest.from_payload(trip_payload(trip_date=value))

    @pytest.mark.parametrize("value", ["2025-03-10", "2025-03-10T08:30:00", "2025-03-10T08:30:00+02:00"])
    def test_date_and_timestamp_accepted(self, value):
        request = TripRequest.from_payload(trip_payload(trip_date=value))
        assert request.trip_date == date(2025, 3, 10)

    def test_bad_status_rejected(self):
        with pytest.raises(InvalidFieldError):
            TripRequest.from_payload(trip_payload(status="DONE"))

    def test_pax_must_be_integer(self):
        with pytest.raises(InvalidFieldError):
            TripRequest.from_payload(trip_payload(total_pax="6"))

    def test_roster_forces_leader_in_without_duplicates(self):
        a, b = uuid4(), uuid4()
        request = TripRequest(trip_date=date(2025, 3, 10), lead_name="x", trip_leader_id=a, guide_ids=(b, a, b))
        assert request.roster() == [b, a]

    def test_validation_errors_share_a_category(self):
        with pytest.raises(ValidationError) as exc_info:
            TripRequest.from_payload("not a dict")
        assert exc_info.value.kind == "ValidationError"


class TestTripPatch:
    def test_only_set_fields_are_changes(self):
        patch = TripPatch.from_payload({"total_pax": 9, "status": "LOCKED"})
        assert patch.changes() == {"total_pax": 9, "status": TripStatus.LOCKED}

    def test_roster_not_patchable(self):
        with pytest.raises(UnknownFieldError):
            TripPatch.from_payload({"guide_ids": []})


class TestCashupRequest:
    def test_requires_guides_and_pax(self):
        with pytest.raises(MissingFieldError):
            CashupRequest.from_payload(trip_payload(guide_ids=[]))
        with pytest.raises(MissingFieldError):
            CashupRequest.from_payload(trip_payload(total_pax=0))

    def test_nested_exception(self):
        request = CashupRequest.from_payload(
            trip_payload(exception={"type": "CARD", "amount_hint": 80, "reference": "R1"})
        )
        assert request.exception.type == PaymentType.CARD
        assert request.exception.amount_hint == Decimal("80.00")


class TestOtherRequests:
    def test_exception_type_required(self):
        with pytest.raises(MissingFieldError):
            ExceptionRequest.from_payload({"reference": "x"})

    def test_handover_payload_optional(self):
        assert HandoverRequest.from_payload(None) == HandoverRequest()

    def test_fee_adjustment_strips_reason(self):
        request = FeeAdjustmentRequest.from_payload({"fee_amount": 900, "reason": "  extra hike "})
        assert request.fee_amount == Decimal("900.00")
        assert request.reason == "extra hike"

    def test_fee_adjustment_negative_rejected(self):
        with pytest.raises(InvalidFieldError):
            FeeAdjustmentRequest.from_payload({"fee_amount": -1, "reason": "x"})

    def test_monthly_invoice(self):
        request = InvoiceRequest.from_payload({"month": "2025-03"})
        assert (request.invoice_type, request.year, request.number) == (InvoiceType.MONTHLY, 2025, 3)

    def test_weekly_invoice(self):
        request = InvoiceRequest.from_payload({"invoice_type": "weekly", "week": "2025-W11"})
        assert (request.invoice_type, request.year, request.number) == (InvoiceType.WEEKLY, 2025, 11)

    @pytest.mark.parametrize("month", ["2025-13", "2025-3", "March"])
    def test_bad_month(self, month):
        with pytest.raises(InvalidFieldError):
            InvoiceRequest.from_payload({"month": month})

    def test_guide_request_normalizes_email(self):
        request = GuideRequest.from_payload({"name": " Lindiwe ", "rank": "JUNIOR", "email": " L@X.COM "})
        assert request == GuideRequest("Lindiwe", GuideRank.JUNIOR, "l@x.com")
