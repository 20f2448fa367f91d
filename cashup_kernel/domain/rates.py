"""
Rate tables -- versioned rank-to-fee configuration.

Responsibility:
    Defines the immutable ``RateTable`` value consumed by the fee engine.
    Rate tables are configuration, not request input: they are loaded from
    ``cashup_config`` and injected into the services that compute fees.

Architecture position:
    Kernel > Domain -- pure value types, zero I/O.  MUST NOT import from
    cashup_config (the config package imports from here, not the reverse).

Invariants enforced:
    - Every rank has a flat rate and a leader rate (the fee engine is total).
    - Every rate is a non-negative Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum


class GuideRank(str, Enum):
    """Guide seniority.  Only SENIOR and INTERMEDIATE may lead a trip."""

    TRAINEE = "TRAINEE"
    JUNIOR = "JUNIOR"
    INTERMEDIATE = "INTERMEDIATE"
    SENIOR = "SENIOR"

    @property
    def can_lead(self) -> bool:
        return self in (GuideRank.SENIOR, GuideRank.INTERMEDIATE)


@dataclass(frozen=True)
class NameOverrideRule:
    """
    Fee override keyed on a substring of the guide's display name.

    Applies to the business's "leader" profiles.  One keyword, two fees.
    """

    keyword: str
    leader_fee: Decimal
    guide_fee: Decimal


@dataclass(frozen=True)
class RateTable:
    """One version of the guide fee schedule."""

    version: str
    effective_from: date
    flat_fees: dict[GuideRank, Decimal] = field(hash=False)
    leader_fees: dict[GuideRank, Decimal] = field(hash=False)
    name_override: NameOverrideRule | None = None
    description: str = ""

    def __post_init__(self) -> None:
        for label, table in (("flat_fees", self.flat_fees), ("leader_fees", self.leader_fees)):
            missing = [rank.value for rank in GuideRank if rank not in table]
            if missing:
                raise ValueError(f"Rate table {self.version}: {label} missing {missing}")
            negative = [rank.value for rank, fee in table.items() if fee < 0]
            if negative:
                raise ValueError(f"Rate table {self.version}: negative {label} for {negative}")
        if self.name_override is not None:
            rule = self.name_override
            if not rule.keyword:
                raise ValueError(f"Rate table {self.version}: empty name override keyword")
            if rule.leader_fee < 0 or rule.guide_fee < 0:
                raise ValueError(f"Rate table {self.version}: negative name override fee")

    def flat_fee(self, rank: GuideRank) -> Decimal:
        return self.flat_fees[rank]

    def leader_fee(self, rank: GuideRank) -> Decimal:
        return self.leader_fees[rank]

    def as_dict(self) -> dict:
        """JSON-safe form, used for checksums and audit payloads."""
        return {
            "version": self.version,
            "effective_from": self.effective_from.isoformat(),
            "flat_fees": {r.value: str(f) for r, f in self.flat_fees.items()},
            "leader_fees": {r.value: str(f) for r, f in self.leader_fees.items()},
            "name_override": (
                {
                    "keyword": self.name_override.keyword,
                    "leader_fee": str(self.name_override.leader_fee),
                    "guide_fee": str(self.name_override.guide_fee),
                }
                if self.name_override
                else None
            ),
        }


# The schedule in force since the system went live.  cashup_config ships the
# same values as rates_v1.yaml; this constant lets the kernel run without it.
DEFAULT_RATE_TABLE = RateTable(
    version="v1",
    effective_from=date(2024, 1, 1),
    flat_fees={
        GuideRank.TRAINEE: Decimal("200"),
        GuideRank.JUNIOR: Decimal("350"),
        GuideRank.INTERMEDIATE: Decimal("550"),
        GuideRank.SENIOR: Decimal("730"),
    },
    leader_fees={
        GuideRank.TRAINEE: Decimal("810"),
        GuideRank.JUNIOR: Decimal("810"),
        GuideRank.INTERMEDIATE: Decimal("700"),
        GuideRank.SENIOR: Decimal("810"),
    },
    name_override=NameOverrideRule(
        keyword="leader",
        leader_fee=Decimal("820"),
        guide_fee=Decimal("740"),
    ),
    description="Launch schedule",
)
