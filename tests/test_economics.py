"""Tests for the economic primitives."""

from __future__ import annotations

import pytest

from idlarena.economics import (
    MAX_LOCK_DURATION,
    MAX_STAKE_BONUS_BPS,
    TOKEN_UNIT,
    U128_MAX,
    checked_add,
    checked_mul,
    checked_signed_add,
    checked_sub,
    effective_amount,
    fee_split,
    format_tokens,
    market_fee_revenue,
    parimutuel_payout,
    staking_bonus_bps,
    vote_escrow,
    yes_ratio_pct,
)
from idlarena.errors import ArithmeticOverflow, InvariantViolation


class TestCheckedArithmetic:
    """Checked 128-bit helpers."""

    def test_add_within_range(self) -> None:
        assert checked_add(2, 3) == 5

    def test_add_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_add(U128_MAX, 1)

    def test_sub_underflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_sub(1, 2)

    def test_mul_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_mul(2 ** 64, 2 ** 64)

    def test_signed_add_allows_negative(self) -> None:
        assert checked_signed_add(-5, 3) == -2

    def test_signed_add_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_signed_add(2 ** 127 - 1, 1)

    def test_overflow_is_an_invariant_violation(self) -> None:
        assert issubclass(ArithmeticOverflow, InvariantViolation)


class TestStakingBonus:
    """Bonus bps and effective amounts."""

    def test_no_stake_no_bonus(self) -> None:
        assert staking_bonus_bps(0) == 0

    def test_partial_unit_truncates(self) -> None:
        assert staking_bonus_bps(999_999) == 0

    def test_bonus_per_unit(self) -> None:
        assert staking_bonus_bps(3_000_000) == 300

    def test_bonus_caps_at_fifty_percent(self) -> None:
        assert staking_bonus_bps(10_000 * TOKEN_UNIT) == MAX_STAKE_BONUS_BPS

    def test_negative_stake_rejected(self) -> None:
        with pytest.raises(InvariantViolation):
            staking_bonus_bps(-1)

    def test_effective_amount_applies_bonus(self) -> None:
        assert effective_amount(100, 1_000) == 110

    def test_effective_amount_never_below_principal(self) -> None:
        for amount in (1, 7, 999, 123_456):
            assert effective_amount(amount, 0) == amount
            assert effective_amount(amount, MAX_STAKE_BONUS_BPS) >= amount


class TestVoteEscrow:
    """Linear vote-escrow accrual."""

    def test_max_lock_is_one_to_one(self) -> None:
        assert vote_escrow(1_000, MAX_LOCK_DURATION) == 1_000

    def test_half_lock(self) -> None:
        assert vote_escrow(1_000, MAX_LOCK_DURATION // 2) == 500

    def test_lock_is_clamped(self) -> None:
        assert vote_escrow(1_000, MAX_LOCK_DURATION * 3) == 1_000
        assert vote_escrow(1_000, -10) == 0

    def test_result_never_exceeds_amount(self) -> None:
        for seconds in (0, 1, 604_800, MAX_LOCK_DURATION - 1):
            assert 0 <= vote_escrow(12_345, seconds) <= 12_345


class TestParimutuelPayout:
    """Winning payout arithmetic."""

    def test_documented_example(self) -> None:
        payout = parimutuel_payout(100, 110, 1_000, 500, 300)
        assert payout.share == 55
        assert payout.gross == 155
        assert payout.fee == 4
        assert payout.net == 151

    def test_empty_losing_pool_returns_principal_less_fee(self) -> None:
        payout = parimutuel_payout(1_000, 1_000, 1_000, 0)
        assert payout.share == 0
        assert payout.gross == 1_000
        assert payout.net == 1_000 - payout.fee

    def test_empty_winning_pool_pays_no_share(self) -> None:
        payout = parimutuel_payout(100, 100, 0, 500)
        assert payout.share == 0

    def test_net_plus_fee_is_gross(self) -> None:
        payout = parimutuel_payout(777, 900, 10_000, 4_321)
        assert payout.net + payout.fee == payout.gross

    def test_negative_input_rejected(self) -> None:
        with pytest.raises(InvariantViolation):
            parimutuel_payout(-1, 0, 10, 10)


class TestFees:
    """Fee split and market revenue."""

    def test_split_sums_to_fee(self) -> None:
        for fee in (0, 1, 4, 99, 10_007):
            assert fee_split(fee).total == fee

    def test_split_ratios(self) -> None:
        split = fee_split(1_000)
        assert split.staker_share == 500
        assert split.creator_share == 250
        assert split.treasury_share == 150
        assert split.burn_share == 100

    def test_rounding_dust_goes_to_treasury(self) -> None:
        split = fee_split(4)
        assert split.staker_share == 2
        assert split.creator_share == 1
        assert split.burn_share == 0
        assert split.treasury_share == 1

    def test_market_fee_revenue(self) -> None:
        assert market_fee_revenue(6_000, 4_000) == 300


class TestHelpers:
    """Display helpers."""

    def test_yes_ratio_empty_market(self) -> None:
        assert yes_ratio_pct(0, 0) == 50

    def test_yes_ratio(self) -> None:
        assert yes_ratio_pct(5_000, 3_000) == 62

    def test_format_tokens(self) -> None:
        assert format_tokens(1_250 * TOKEN_UNIT) == "1.25K"
        assert format_tokens(-3_100_000 * TOKEN_UNIT) == "-3.10M"
        assert format_tokens(5 * TOKEN_UNIT) == "5.00"
