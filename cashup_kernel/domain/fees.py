"""
Fee engine -- per-trip guide earnings.

Pure functions over a ``RateTable``.  Rules, in priority order:

    1. Name override: the guide's display name contains the rate table's
       override keyword (case-insensitive) -> override leader/guide fee.
    2. Trip leader -> the rank's leader fee.
    3. Otherwise -> the rank's flat fee.

Fees are recomputed and persisted whenever a trip's leader, roster or pax
changes; callers never cache a result.
"""

from decimal import Decimal

from cashup_kernel.domain.rates import DEFAULT_RATE_TABLE, GuideRank, NameOverrideRule, RateTable

MONEY_QUANTUM = Decimal("0.01")


def name_override_fee(
    guide_name: str | None,
    is_trip_leader: bool,
    rule: NameOverrideRule | None,
) -> Decimal | None:
    """
    Apply the name-keyed override, or return None when it does not match.
    """
    if rule is None or not guide_name:
        return None
    if rule.keyword.lower() not in guide_name.lower():
        return None
    return rule.leader_fee if is_trip_leader else rule.guide_fee


def calculate_fee(
    rank: GuideRank | str,
    is_trip_leader: bool,
    guide_name: str | None = None,
    rates: RateTable = DEFAULT_RATE_TABLE,
) -> Decimal:
    """
    Compute one guide's fee for one trip.

    Args:
        rank: Guide rank (enum or its string value).
        is_trip_leader: Whether the guide leads this trip.
        guide_name: Display name, checked against the name override.
        rates: Rate table in force.

    Returns:
        Non-negative fee quantized to cents.
    """
    rank = GuideRank(rank)

    override = name_override_fee(guide_name, is_trip_leader, rates.name_override)
    if override is not None:
        fee = override
    elif is_trip_leader:
        fee = rates.leader_fee(rank)
    else:
        fee = rates.flat_fee(rank)

    return fee.quantize(MONEY_QUANTUM)


def to_money(value) -> Decimal:
    """Normalize an amount to a cent-quantized Decimal."""
    if isinstance(value, Decimal):
        return value.quantize(MONEY_QUANTUM)
    return Decimal(str(value)).quantize(MONEY_QUANTUM)
