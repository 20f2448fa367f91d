"""ORM models for the cash-up kernel."""

from cashup_kernel.models.account import Account
from cashup_kernel.models.audit_log import AuditAction, AuditLog
from cashup_kernel.models.guide import Guide
from cashup_kernel.models.payment_exception import (
    RESOLUTION_HANDOVER_CONFIRMED,
    CashHandover,
    PaymentException,
)
from cashup_kernel.models.sequence import SequenceCounter
from cashup_kernel.models.trip import DiscountLine, PaymentBreakdown, Trip, TripGuide

__all__ = [
    "Account",
    "AuditAction",
    "AuditLog",
    "CashHandover",
    "DiscountLine",
    "Guide",
    "PaymentBreakdown",
    "PaymentException",
    "RESOLUTION_HANDOVER_CONFIRMED",
    "SequenceCounter",
    "Trip",
    "TripGuide",
]
