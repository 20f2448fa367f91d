"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///cashup.db"


@dataclass(frozen=True)
class RuntimeSettings:
    database_url: str = DEFAULT_DATABASE_URL
    admin_emails: tuple[str, ...] = ()
    log_level: str = "INFO"


def _split_emails(raw: str) -> tuple[str, ...]:
    return tuple(
        sorted({part.strip().lower() for part in raw.split(",") if part.strip()})
    )


def get_runtime_settings(environ: Mapping[str, str] | None = None) -> RuntimeSettings:
    """
    Build settings from ``CASHUP_*`` variables.

    CASHUP_ADMIN_EMAILS is a comma-separated list; CASHUP_LOG_LEVEL must be
    a standard logging level name.
    """
    env = os.environ if environ is None else environ

    log_level = env.get("CASHUP_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"CASHUP_LOG_LEVEL: unknown level {log_level!r}")

    return RuntimeSettings(
        database_url=env.get("CASHUP_DATABASE_URL", DEFAULT_DATABASE_URL).strip()
        or DEFAULT_DATABASE_URL,
        admin_emails=_split_emails(env.get("CASHUP_ADMIN_EMAILS", "")),
        log_level=log_level,
    )
