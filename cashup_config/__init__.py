"""
cashup_config -- single public entrypoint for cash-up configuration.

Responsibility:
    ``get_active_rates()`` returns the guide fee schedule in force on a
    date; ``get_runtime_settings()`` returns environment-driven settings.
    No other component reads configuration files or environment variables.

Architecture position:
    Configuration.  Sits above ``cashup_kernel``: it builds kernel value
    types (``RateTable``) and the kernel never imports from here.

Failure modes:
    - ``FileNotFoundError`` -- missing directory, or no table effective on
      the requested date.
    - ``yaml.YAMLError`` / ``KeyError`` / ``ValueError`` -- malformed tables.

Audit relevance:
    Every ``get_active_rates()`` call emits a ``CASHUP_RATES_TRACE`` log
    entry with the version and checksum of the table handed out, tying
    computed fees back to the exact schedule that produced them.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from cashup_config.loader import compute_checksum, load_rate_tables
from cashup_config.settings import RuntimeSettings, get_runtime_settings
from cashup_kernel.domain.rates import RateTable

__all__ = [
    "RuntimeSettings",
    "get_active_rates",
    "get_runtime_settings",
]

_logger = logging.getLogger("cashup_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_rates(as_of: date, config_dir: Path | None = None) -> RateTable:
    """
    The rate table with the latest ``effective_from`` on or before ``as_of``.

    Args:
        as_of: Business date the fees are computed for.
        config_dir: Override for the configuration sets directory.
            Defaults to cashup_config/sets/.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    tables = load_rate_tables(sets_dir / "rates")

    effective = [t for t in tables if t.effective_from <= as_of]
    if not effective:
        raise FileNotFoundError(
            f"No rate table effective on {as_of.isoformat()} in {sets_dir}"
        )
    table = effective[-1]

    _logger.info(
        "CASHUP_RATES_TRACE",
        extra={
            "trace_type": "CASHUP_RATES_TRACE",
            "rate_version": table.version,
            "effective_from": table.effective_from.isoformat(),
            "checksum": compute_checksum(table),
            "as_of": as_of.isoformat(),
            "tables_available": len(tables),
        },
    )
    return table
