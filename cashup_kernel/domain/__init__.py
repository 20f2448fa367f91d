"""Pure domain layer: rates, fees, periods, aggregation, request shapes, clock."""

from cashup_kernel.domain.actor import AccountRole, Actor
from cashup_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from cashup_kernel.domain.fees import calculate_fee, name_override_fee
from cashup_kernel.domain.periods import Granularity, Period
from cashup_kernel.domain.rates import DEFAULT_RATE_TABLE, GuideRank, NameOverrideRule, RateTable
from cashup_kernel.domain.requests import PaymentType, TripStatus

__all__ = [
    "AccountRole",
    "Actor",
    "Clock",
    "DEFAULT_RATE_TABLE",
    "DeterministicClock",
    "Granularity",
    "GuideRank",
    "NameOverrideRule",
    "PaymentType",
    "Period",
    "RateTable",
    "SystemClock",
    "TripStatus",
    "calculate_fee",
    "name_override_fee",
]
