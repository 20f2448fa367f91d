"""
Tests for the fee engine.

Covers:
- Flat fees per rank and leader fees per rank
- Name override ahead of the rank tables, case-insensitive
- Injected rate tables and RateTable validation
- Totality: every (rank, leader, name) input yields a non-negative fee
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from cashup_kernel.domain.fees import calculate_fee, name_override_fee, to_money
from cashup_kernel.domain.rates import DEFAULT_RATE_TABLE, GuideRank, NameOverrideRule, RateTable


class TestRankTables:
    @pytest.mark.parametrize(
        "rank, expected",
        [
            (GuideRank.TRAINEE, "200.00"),
            (GuideRank.JUNIOR, "350.00"),
            (GuideRank.INTERMEDIATE, "550.00"),
            (GuideRank.SENIOR, "730.00"),
        ],
    )
    def test_flat_fee(self, rank, expected):
        assert calculate_fee(rank, False) == Decimal(expected)

    @pytest.mark.parametrize(
        "rank, expected",
        [
            (GuideRank.TRAINEE, "810.00"),
            (GuideRank.JUNIOR, "810.00"),
            (GuideRank.INTERMEDIATE, "700.00"),
            (GuideRank.SENIOR, "810.00"),
        ],
    )
    def test_leader_fee(self, rank, expected):
        assert calculate_fee(rank, True) == Decimal(expected)

    @pytest.mark.parametrize("rank", list(GuideRank))
    def test_ordinary_name_uses_rank_tables(self, rank):
        assert calculate_fee(rank, False, "Alice") == DEFAULT_RATE_TABLE.flat_fee(rank)
        assert calculate_fee(rank, True, "Alice") == DEFAULT_RATE_TABLE.leader_fee(rank)

    def test_rank_accepts_string_value(self):
        assert calculate_fee("SENIOR", False) == Decimal("730.00")

    def test_fee_is_quantized_to_cents(self):
        assert calculate_fee(GuideRank.JUNIOR, False).as_tuple().exponent == -2


class TestNameOverride:
    def test_override_beats_leader_table(self):
        assert calculate_fee(GuideRank.INTERMEDIATE, True, "Team Leader Sam") == Decimal("820.00")

    def test_override_beats_flat_table(self):
        assert calculate_fee(GuideRank.TRAINEE, False, "LEADER Jo") == Decimal("740.00")

    def test_override_is_case_insensitive_substring(self):
        assert calculate_fee(GuideRank.SENIOR, False, "cheerleader") == Decimal("740.00")

    def test_no_name_falls_through(self):
        assert name_override_fee(None, True, DEFAULT_RATE_TABLE.name_override) is None
        assert calculate_fee(GuideRank.SENIOR, True, None) == Decimal("810.00")

    def test_non_matching_name_falls_through(self):
        assert calculate_fee(GuideRank.SENIOR, True, "Sipho") == Decimal("810.00")

    def test_table_without_rule_ignores_names(self):
        table = RateTable(
            version="no-override",
            effective_from=date(2025, 1, 1),
            flat_fees=dict(DEFAULT_RATE_TABLE.flat_fees),
            leader_fees=dict(DEFAULT_RATE_TABLE.leader_fees),
        )
        assert calculate_fee(GuideRank.JUNIOR, False, "Leader Lee", table) == Decimal("350.00")


class TestInjectedRates:
    def test_custom_table_is_used(self):
        table = RateTable(
            version="v2",
            effective_from=date(2026, 1, 1),
            flat_fees={rank: Decimal("100") for rank in GuideRank},
            leader_fees={rank: Decimal("150") for rank in GuideRank},
            name_override=NameOverrideRule("boss", Decimal("999"), Decimal("500")),
        )
        assert calculate_fee(GuideRank.SENIOR, False, rates=table) == Decimal("100.00")
        assert calculate_fee(GuideRank.SENIOR, True, rates=table) == Decimal("150.00")
        assert calculate_fee(GuideRank.SENIOR, True, "The Boss", table) == Decimal("999.00")
        # The default keyword no longer applies
        assert calculate_fee(GuideRank.SENIOR, True, "Leader", table) == Decimal("150.00")

    def test_missing_rank_rejected(self):
        flat = dict(DEFAULT_RATE_TABLE.flat_fees)
        del flat[GuideRank.TRAINEE]
        with pytest.raises(ValueError, match="missing"):
            RateTable(
                version="broken",
                effective_from=date(2025, 1, 1),
                flat_fees=flat,
                leader_fees=dict(DEFAULT_RATE_TABLE.leader_fees),
            )

    def test_negative_fee_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            RateTable(
                version="broken",
                effective_from=date(2025, 1, 1),
                flat_fees={rank: Decimal("-1") for rank in GuideRank},
                leader_fees=dict(DEFAULT_RATE_TABLE.leader_fees),
            )

    def test_to_money(self):
        assert to_money(5) == Decimal("5.00")
        assert to_money(Decimal("1.005")) == Decimal("1.00")


class TestFeeEngineProperties:
    @given(
        rank=st.sampled_from(list(GuideRank)),
        is_leader=st.booleans(),
        name=st.one_of(st.none(), st.text(max_size=40)),
    )
    def test_total_and_non_negative(self, rank, is_leader, name):
        fee = calculate_fee(rank, is_leader, name)
        assert isinstance(fee, Decimal)
        assert fee >= 0

    @given(
        rank=st.sampled_from(list(GuideRank)),
        is_leader=st.booleans(),
        prefix=st.text(max_size=10),
        suffix=st.text(max_size=10),
    )
    def test_name_rule_has_priority(self, rank, is_leader, prefix, suffix):
        fee = calculate_fee(rank, is_leader, f"{prefix}LeAdEr{suffix}")
        assert fee == (Decimal("820.00") if is_leader else Decimal("740.00"))

    @given(rank=st.sampled_from(list(GuideRank)), is_leader=st.booleans())
    def test_deterministic(self, rank, is_leader):
        assert calculate_fee(rank, is_leader, "Sam") == calculate_fee(rank, is_leader, "Sam")
