"""
Request shapes -- closed, typed inputs for every write operation.

Responsibility:
    Converts loosely-typed payloads (decoded JSON, form data) into frozen
    dataclasses at the boundary.  Unknown keys, missing required keys and
    mistyped values are rejected with a ValidationError subclass; nothing is
    coerced silently.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Services accept these objects, never
    raw dicts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from cashup_kernel.domain.rates import GuideRank
from cashup_kernel.exceptions import (
    InvalidFieldError,
    MissingFieldError,
    UnknownFieldError,
)


class TripStatus(str, Enum):
    """
    Trip status label.

    DRAFT -> SUBMITTED -> APPROVED | REJECTED | LOCKED.  Directly logged
    trips are APPROVED; guide cash-ups start SUBMITTED.  Admins may set any
    status at any time.
    """

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    LOCKED = "LOCKED"


class PaymentType(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    EFT = "EFT"


class InvoiceType(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _check_keys(request_type: str, payload: Any, allowed: set[str]) -> dict:
    if not isinstance(payload, dict):
        raise InvalidFieldError(request_type, "payload must be an object")
    unknown = [key for key in payload if key not in allowed]
    if unknown:
        raise UnknownFieldError(request_type, unknown)
    return payload


def _required(payload: dict, name: str) -> Any:
    value = payload.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingFieldError(name)
    return value


def parse_amount(name: str, value: Any, *, allow_negative: bool = False) -> Decimal:
    """Parse a money amount.  Booleans and strings are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidFieldError(name, "must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidFieldError(name, "must be a number") from exc
    if not amount.is_finite():
        raise InvalidFieldError(name, "must be a finite number")
    if amount < 0 and not allow_negative:
        raise InvalidFieldError(name, "must not be negative")
    return amount.quantize(Decimal("0.01"))


def _optional_amount(name: str, value: Any) -> Decimal | None:
    if value is None:
        return None
    return parse_amount(name, value)


def _int(name: str, value: Any, *, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidFieldError(name, "must be an integer")
    if value < minimum:
        raise InvalidFieldError(name, f"must be at least {minimum}")
    return value


def _bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidFieldError(name, "must be true or false")
    return value


def _text(name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFieldError(name, "must be a string")
    return value


def parse_date(name: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            if len(value) > 10:
                # Full timestamps are accepted; only their date part is kept.
                return datetime.fromisoformat(value).date()
            return date.fromisoformat(value)
        except ValueError as exc:
            raise InvalidFieldError(name, "must be an ISO date (YYYY-MM-DD)") from exc
    raise InvalidFieldError(name, "must be a date")


def parse_uuid(name: str, value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError as exc:
            raise InvalidFieldError(name, "must be a UUID") from exc
    raise InvalidFieldError(name, "must be a UUID")


def _optional_uuid(name: str, value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    return parse_uuid(name, value)


def _enum(name: str, enum_type: type[Enum], value: Any):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise InvalidFieldError(name, f"must be one of {allowed}") from exc


def _allowed(cls) -> set[str]:
    return {f.name for f in fields(cls)}


# ---------------------------------------------------------------------------
# Trip payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentInput:
    cash_received: Decimal = Decimal("0.00")
    phone_pouches: Decimal = Decimal("0.00")
    water_sales: Decimal = Decimal("0.00")
    sunglasses_sales: Decimal = Decimal("0.00")

    @classmethod
    def from_payload(cls, payload: Any) -> PaymentInput:
        payload = _check_keys("payments", payload, _allowed(cls))
        return cls(**{
            key: parse_amount(f"payments.{key}", value)
            for key, value in payload.items()
            if value is not None
        })

    @property
    def gross(self) -> Decimal:
        return self.cash_received + self.phone_pouches + self.water_sales + self.sunglasses_sales


@dataclass(frozen=True)
class DiscountInput:
    amount: Decimal
    reason: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> DiscountInput:
        payload = _check_keys("discount", payload, _allowed(cls))
        return cls(
            amount=parse_amount("discount.amount", _required(payload, "amount")),
            reason=_text("discount.reason", payload.get("reason")) or "",
        )


@dataclass(frozen=True)
class TripRequest:
    """Full trip body, used by create and full replace."""

    trip_date: date
    lead_name: str
    total_pax: int = 0
    pax_guide_note: str | None = None
    trip_leader_id: UUID | None = None
    guide_ids: tuple[UUID, ...] = ()
    status: TripStatus | None = None
    payments_made: bool = False
    pics_uploaded: bool = False
    trip_email_sent: bool = False
    trip_report: str | None = None
    suggestions: str | None = None
    payments: PaymentInput | None = None
    discounts: tuple[DiscountInput, ...] = ()

    @classmethod
    def from_payload(cls, payload: Any) -> TripRequest:
        payload = _check_keys("trip", payload, _allowed(cls))

        guide_ids = payload.get("guide_ids") or []
        if not isinstance(guide_ids, (list, tuple)):
            raise InvalidFieldError("guide_ids", "must be a list")
        discounts = payload.get("discounts") or []
        if not isinstance(discounts, (list, tuple)):
            raise InvalidFieldError("discounts", "must be a list")

        lead_name = _text("lead_name", _required(payload, "lead_name"))
        status = payload.get("status")
        payments = payload.get("payments")

        return cls(
            trip_date=parse_date("trip_date", _required(payload, "trip_date")),
            lead_name=lead_name.strip(),
            total_pax=_int("total_pax", payload.get("total_pax", 0)),
            pax_guide_note=_text("pax_guide_note", payload.get("pax_guide_note")),
            trip_leader_id=_optional_uuid("trip_leader_id", payload.get("trip_leader_id")),
            guide_ids=tuple(parse_uuid("guide_ids", g) for g in guide_ids),
            status=_enum("status", TripStatus, status) if status is not None else None,
            payments_made=_bool("payments_made", payload.get("payments_made", False)),
            pics_uploaded=_bool("pics_uploaded", payload.get("pics_uploaded", False)),
            trip_email_sent=_bool("trip_email_sent", payload.get("trip_email_sent", False)),
            trip_report=_text("trip_report", payload.get("trip_report")),
            suggestions=_text("suggestions", payload.get("suggestions")),
            payments=PaymentInput.from_payload(payments) if payments is not None else None,
            discounts=tuple(DiscountInput.from_payload(d) for d in discounts),
        )

    def roster(self) -> list[UUID]:
        """Guide ids with the trip leader forced in, order preserved, no repeats."""
        ordered = list(self.guide_ids)
        if self.trip_leader_id is not None:
            ordered.append(self.trip_leader_id)
        return list(dict.fromkeys(ordered))


@dataclass(frozen=True)
class TripPatch:
    """
    Admin partial update.  Fields left as None are not touched.
    """

    trip_date: date | None = None
    lead_name: str | None = None
    pax_guide_note: str | None = None
    total_pax: int | None = None
    payments_made: bool | None = None
    pics_uploaded: bool | None = None
    trip_email_sent: bool | None = None
    status: TripStatus | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> TripPatch:
        payload = _check_keys("trip patch", payload, _allowed(cls))
        parsed: dict[str, Any] = {}
        if payload.get("trip_date") is not None:
            parsed["trip_date"] = parse_date("trip_date", payload["trip_date"])
        if payload.get("lead_name") is not None:
            parsed["lead_name"] = _text("lead_name", _required(payload, "lead_name")).strip()
        if payload.get("pax_guide_note") is not None:
            parsed["pax_guide_note"] = _text("pax_guide_note", payload["pax_guide_note"])
        if payload.get("total_pax") is not None:
            parsed["total_pax"] = _int("total_pax", payload["total_pax"])
        for flag in ("payments_made", "pics_uploaded", "trip_email_sent"):
            if payload.get(flag) is not None:
                parsed[flag] = _bool(flag, payload[flag])
        if payload.get("status") is not None:
            parsed["status"] = _enum("status", TripStatus, payload["status"])
        return cls(**parsed)

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


# ---------------------------------------------------------------------------
# Exceptions, handovers, cash-ups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExceptionRequest:
    """Off-process payment a guide had to accept personally."""

    type: PaymentType
    guide_id: UUID | None = None
    reference: str | None = None
    amount_hint: Decimal | None = None
    note: str | None = None
    trip_id: UUID | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> ExceptionRequest:
        payload = _check_keys("exception", payload, _allowed(cls))
        return cls(
            type=_enum("type", PaymentType, _required(payload, "type")),
            guide_id=_optional_uuid("guide_id", payload.get("guide_id")),
            reference=_text("reference", payload.get("reference")) or None,
            amount_hint=_optional_amount("amount_hint", payload.get("amount_hint")),
            note=_text("note", payload.get("note")) or None,
            trip_id=_optional_uuid("trip_id", payload.get("trip_id")),
        )


@dataclass(frozen=True)
class HandoverRequest:
    counted_amount: Decimal | None = None
    comment: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> HandoverRequest:
        payload = _check_keys("handover", payload or {}, _allowed(cls))
        return cls(
            counted_amount=_optional_amount("counted_amount", payload.get("counted_amount")),
            comment=_text("comment", payload.get("comment")) or None,
        )


@dataclass(frozen=True)
class CashupRequest:
    """Guide-submitted cash-up: a trip plus an optional payment exception."""

    trip: TripRequest
    exception: ExceptionRequest | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> CashupRequest:
        payload = dict(_check_keys("cash-up", payload, _allowed(TripRequest) | {"exception"}))
        exception = payload.pop("exception", None)
        trip = TripRequest.from_payload(payload)
        if not trip.guide_ids:
            raise MissingFieldError("guide_ids")
        if trip.total_pax < 1:
            raise MissingFieldError("total_pax")
        return cls(
            trip=trip,
            exception=ExceptionRequest.from_payload(exception) if exception is not None else None,
        )


@dataclass(frozen=True)
class FeeAdjustmentRequest:
    fee_amount: Decimal
    reason: str

    @classmethod
    def from_payload(cls, payload: Any) -> FeeAdjustmentRequest:
        payload = _check_keys("fee adjustment", payload, _allowed(cls))
        if "fee_amount" not in payload or payload["fee_amount"] is None:
            raise MissingFieldError("fee_amount")
        reason = _text("reason", payload.get("reason")) or ""
        return cls(
            fee_amount=parse_amount("fee_amount", payload["fee_amount"]),
            reason=reason.strip(),
        )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_WEEK_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")


@dataclass(frozen=True)
class InvoiceRequest:
    """
    Guide invoice period.

    ``month`` is ``YYYY-MM`` for monthly invoices; ``week`` is ``YYYY-Wnn``
    for weekly invoices, numbered with the same week scheme as reports.
    """

    invoice_type: InvoiceType = InvoiceType.MONTHLY
    year: int = 0
    number: int = 0
    recipients: tuple[str, ...] = field(default=())

    @classmethod
    def from_payload(cls, payload: Any) -> InvoiceRequest:
        payload = _check_keys("invoice", payload, {"invoice_type", "month", "week", "recipients"})
        invoice_type = _enum("invoice_type", InvoiceType, payload.get("invoice_type", "monthly"))

        if invoice_type == InvoiceType.MONTHLY:
            raw = _text("month", _required(payload, "month"))
            match = _MONTH_RE.match(raw)
            if not match or not 1 <= int(match.group(2)) <= 12:
                raise InvalidFieldError("month", "must be YYYY-MM")
        else:
            raw = _text("week", _required(payload, "week"))
            match = _WEEK_RE.match(raw)
            if not match or not 1 <= int(match.group(2)) <= 53:
                raise InvalidFieldError("week", "must be YYYY-Wnn")

        recipients = payload.get("recipients") or []
        if not isinstance(recipients, (list, tuple)) or not all(isinstance(r, str) for r in recipients):
            raise InvalidFieldError("recipients", "must be a list of email addresses")

        return cls(
            invoice_type=invoice_type,
            year=int(match.group(1)),
            number=int(match.group(2)),
            recipients=tuple(recipients),
        )


# ---------------------------------------------------------------------------
# Guides
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GuideRequest:
    name: str
    rank: GuideRank
    email: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> GuideRequest:
        payload = _check_keys("guide", payload, _allowed(cls))
        return cls(
            name=_text("name", _required(payload, "name")).strip(),
            rank=_enum("rank", GuideRank, _required(payload, "rank")),
            email=(_text("email", payload.get("email")) or "").strip().lower() or None,
        )
