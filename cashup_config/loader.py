"""
Rate table loader (``cashup_config.loader``).

Responsibility
--------------
Reads versioned rate table YAML files and parses them into frozen
``RateTable`` values.  Callers go through ``cashup_config.get_active_rates``;
this module is the parsing layer underneath it.

Failure modes
-------------
* Missing directory or file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad dates, amounts or ranks  -> ``ValueError``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from cashup_kernel.domain.rates import GuideRank, NameOverrideRule, RateTable
from cashup_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_fee(value: Any, where: str) -> Decimal:
    try:
        fee = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{where}: not a decimal amount: {value!r}") from None
    if not fee.is_finite():
        raise ValueError(f"{where}: not a decimal amount: {value!r}")
    return fee


def _parse_fee_table(data: dict[str, Any], where: str) -> dict[GuideRank, Decimal]:
    return {
        GuideRank(str(rank).upper()): _parse_fee(fee, f"{where}.{rank}")
        for rank, fee in data.items()
    }


def parse_rate_table(data: dict[str, Any]) -> RateTable:
    """Parse one rate table mapping; RateTable validates completeness."""
    version = str(data["version"])
    override = data.get("name_override")
    return RateTable(
        version=version,
        effective_from=_parse_date(data["effective_from"]),
        flat_fees=_parse_fee_table(data["flat_fees"], f"{version}.flat_fees"),
        leader_fees=_parse_fee_table(data["leader_fees"], f"{version}.leader_fees"),
        name_override=(
            NameOverrideRule(
                keyword=str(override["keyword"]).lower(),
                leader_fee=_parse_fee(override["leader_fee"], f"{version}.name_override"),
                guide_fee=_parse_fee(override["guide_fee"], f"{version}.name_override"),
            )
            if override
            else None
        ),
        description=str(data.get("description", "")),
    )


def load_rate_tables(directory: Path) -> list[RateTable]:
    """
    Every ``*.yaml`` rate table in ``directory``, oldest first.

    Raises:
        FileNotFoundError: if ``directory`` does not exist.
        ValueError: if two files declare the same version or effective date.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"Rate table directory not found: {directory}")

    tables = [parse_rate_table(load_yaml_file(p)) for p in sorted(directory.glob("*.yaml"))]

    versions = [t.version for t in tables]
    dupes = sorted({v for v in versions if versions.count(v) > 1})
    if dupes:
        raise ValueError(f"Duplicate rate table versions: {dupes}")
    dates = [t.effective_from for t in tables]
    clashes = sorted({d.isoformat() for d in dates if dates.count(d) > 1})
    if clashes:
        raise ValueError(f"Rate tables share an effective date: {clashes}")

    return sorted(tables, key=lambda t: t.effective_from)


def compute_checksum(table: RateTable) -> str:
    """SHA-256 of the table's canonical JSON form."""
    return hash_payload(table.as_dict())
