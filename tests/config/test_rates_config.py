"""
Tests for cashup_config -- rate table loading and runtime settings.
"""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from cashup_config import get_active_rates, get_runtime_settings
from cashup_config.loader import compute_checksum, load_rate_tables, parse_rate_table
from cashup_config.settings import DEFAULT_DATABASE_URL
from cashup_kernel.domain.fees import calculate_fee
from cashup_kernel.domain.rates import DEFAULT_RATE_TABLE, GuideRank


def table_data(version: str, effective_from: str, bump: int = 0) -> dict:
    return {
        "version": version,
        "effective_from": effective_from,
        "flat_fees": {"TRAINEE": 200 + bump, "JUNIOR": 350 + bump, "INTERMEDIATE": 550 + bump, "SENIOR": 730 + bump},
        "leader_fees": {"trainee": 810, "junior": 810, "intermediate": 700, "senior": 810},
    }


def write_sets(root: Path, *tables: dict) -> Path:
    rates = root / "rates"
    rates.mkdir(parents=True)
    for data in tables:
        (rates / f"rates_{data['version']}.yaml").write_text(yaml.safe_dump(data))
    return root


class TestShippedRates:
    def test_shipped_table_matches_default(self):
        table = get_active_rates(date(2025, 3, 10))

        assert table.version == DEFAULT_RATE_TABLE.version
        assert table.flat_fees == DEFAULT_RATE_TABLE.flat_fees
        assert table.leader_fees == DEFAULT_RATE_TABLE.leader_fees
        assert table.name_override.keyword == "leader"

    def test_shipped_table_feeds_fee_engine(self):
        table = get_active_rates(date(2025, 3, 10))
        assert calculate_fee(GuideRank.INTERMEDIATE, True, "Anna", table) == Decimal("700.00")

    def test_trace_log_carries_checksum(self, captured_logs):
        table = get_active_rates(date(2025, 3, 10))

        [record] = [r for r in captured_logs() if r["message"] == "CASHUP_RATES_TRACE"]
        assert record["rate_version"] == "v1"
        assert record["checksum"] == compute_checksum(table)
        assert record["as_of"] == "2025-03-10"


class TestVersionSelection:
    def test_picks_latest_effective(self, tmp_path):
        sets = write_sets(tmp_path, table_data("v1", "2024-01-01"), table_data("v2", "2025-06-01", bump=50))

        assert get_active_rates(date(2025, 5, 31), sets).version == "v1"
        june = get_active_rates(date(2025, 6, 1), sets)
        assert june.version == "v2"
        assert june.flat_fee(GuideRank.JUNIOR) == Decimal("400")

    def test_nothing_effective_yet(self, tmp_path):
        sets = write_sets(tmp_path, table_data("v1", "2024-01-01"))
        with pytest.raises(FileNotFoundError):
            get_active_rates(date(2023, 12, 31), sets)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_rates(date(2025, 1, 1), tmp_path)

    def test_duplicate_version(self, tmp_path):
        rates = tmp_path / "rates"
        rates.mkdir()
        (rates / "a.yaml").write_text(yaml.safe_dump(table_data("v1", "2024-01-01")))
        (rates / "b.yaml").write_text(yaml.safe_dump(table_data("v1", "2025-01-01")))

        with pytest.raises(ValueError, match="Duplicate"):
            load_rate_tables(rates)

    def test_shared_effective_date(self, tmp_path):
        write_sets(tmp_path, table_data("v1", "2024-01-01"), table_data("v2", "2024-01-01"))
        with pytest.raises(ValueError, match="effective date"):
            load_rate_tables(tmp_path / "rates")


class TestParse:
    def test_missing_rank(self):
        data = table_data("v1", "2024-01-01")
        del data["flat_fees"]["SENIOR"]
        with pytest.raises(ValueError, match="missing"):
            parse_rate_table(data)

    def test_bad_amount(self):
        data = table_data("v1", "2024-01-01")
        data["flat_fees"]["JUNIOR"] = "lots"
        with pytest.raises(ValueError):
            parse_rate_table(data)

    def test_unknown_rank(self):
        data = table_data("v1", "2024-01-01")
        data["flat_fees"]["CAPTAIN"] = 900
        with pytest.raises(ValueError):
            parse_rate_table(data)

    def test_missing_key(self):
        data = table_data("v1", "2024-01-01")
        del data["leader_fees"]
        with pytest.raises(KeyError):
            parse_rate_table(data)


class TestRuntimeSettings:
    def test_defaults(self):
        settings = get_runtime_settings({})
        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.admin_emails == ()
        assert settings.log_level == "INFO"

    def test_from_environment(self):
        settings = get_runtime_settings(
            {
                "CASHUP_DATABASE_URL": "postgresql://cashup@db/cashup",
                "CASHUP_ADMIN_EMAILS": " Boss@Example.com, ops@example.com,,boss@example.com",
                "CASHUP_LOG_LEVEL": "debug",
            }
        )
        assert settings.database_url == "postgresql://cashup@db/cashup"
        assert settings.admin_emails == ("boss@example.com", "ops@example.com")
        assert settings.log_level == "DEBUG"

    def test_bad_log_level(self):
        with pytest.raises(ValueError):
            get_runtime_settings({"CASHUP_LOG_LEVEL": "LOUD"})
