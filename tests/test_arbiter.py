"""Tests for the ActionArbiter state transitions."""

from __future__ import annotations

import copy
import random

import pytest

from idlarena.actions import (
    AnalyzeAction,
    ClaimWinningsAction,
    CreateMarketAction,
    LockVeAction,
    PlaceBetAction,
    StakeAction,
    UnlockVeAction,
    UnstakeAction,
    wait_action,
)
from idlarena.arbiter import ActionArbiter
from idlarena.economics import (
    MAX_LOCK_DURATION,
    MAX_TARGET_VALUE,
    MAX_TIMESTAMP,
    MIN_LOCK_DURATION,
    TOKEN_UNIT,
    vote_escrow,
)
from idlarena.errors import ActionRejected, InvariantViolation
from idlarena.models import FailureCode, MarketInfo, MetricType

from .conftest import DAY, NOW

WEEK = MIN_LOCK_DURATION


def bet(market: MarketInfo, amount: int, side: str) -> PlaceBetAction:
    return PlaceBetAction(market_id=market.market_id, amount=amount, side=side)


class TestConstruction:
    """Initial state."""

    def test_agents_start_liquid(self, arbiter: ActionArbiter) -> None:
        for state in arbiter.get_all_states():
            assert state.liquid_balance == 10_000 * TOKEN_UNIT
            assert state.staked_amount == 0
            assert state.open_bets == []

    def test_declaration_order_kept(self, arbiter: ActionArbiter) -> None:
        assert [s.name for s in arbiter.get_all_states()] == ["alice", "bob"]

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValueError):
            ActionArbiter(["a", "a"], 10)

    def test_negative_balance_rejected(self) -> None:
        with pytest.raises(InvariantViolation):
            ActionArbiter(["a"], -1)

    def test_unknown_agent(self, arbiter: ActionArbiter) -> None:
        outcome = arbiter.apply("mallory", StakeAction(amount=1), NOW)
        assert not outcome.success
        assert outcome.error_code is FailureCode.UNKNOWN_AGENT


class TestStaking:
    """STAKE and UNSTAKE."""

    def test_stake_moves_liquid_to_staked(self, arbiter: ActionArbiter) -> None:
        outcome = arbiter.apply("alice", StakeAction(amount=500), NOW)
        state = arbiter.get_state("alice")
        assert outcome.success
        assert state.staked_amount == 500
        assert state.liquid_balance == 10_000 * TOKEN_UNIT - 500
        assert arbiter.protocol.total_staked == 500

    def test_stake_more_than_liquid(self, arbiter: ActionArbiter) -> None:
        before = copy.deepcopy(arbiter.get_state("alice"))
        outcome = arbiter.apply("alice", StakeAction(amount=10_000 * TOKEN_UNIT + 1), NOW)
        assert outcome.error_code is FailureCode.INVALID_AMOUNT
        assert arbiter.get_state("alice") == before

    def test_unstake_more_than_staked(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=100), NOW)
        outcome = arbiter.apply("alice", UnstakeAction(amount=101), NOW)
        assert outcome.error_code is FailureCode.INSUFFICIENT_STAKE
        assert arbiter.get_state("alice").staked_amount == 100

    def test_stake_unstake_preserves_holdings(self, arbiter: ActionArbiter) -> None:
        state = arbiter.get_state("alice")
        holdings = state.holdings
        arbiter.apply("alice", StakeAction(amount=700), NOW)
        assert state.holdings == holdings
        arbiter.apply("alice", UnstakeAction(amount=300), NOW)
        assert state.holdings == holdings
        assert arbiter.protocol.total_staked == 400


class TestLocking:
    """LOCK_VE, UNLOCK_VE and locked-stake enforcement."""

    def test_lock_requires_stake(self, arbiter: ActionArbiter) -> None:
        outcome = arbiter.apply("alice", LockVeAction(duration=WEEK), NOW)
        assert outcome.error_code is FailureCode.INSUFFICIENT_STAKE

    @pytest.mark.parametrize("duration", [WEEK - 1, MAX_LOCK_DURATION + 1])
    def test_lock_duration_bounds(self, arbiter: ActionArbiter, duration: int) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000), NOW)
        outcome = arbiter.apply("alice", LockVeAction(duration=duration), NOW)
        assert outcome.error_code is FailureCode.INVALID_LOCK_DURATION

    def test_lock_grants_ve(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000 * TOKEN_UNIT), NOW)
        outcome = arbiter.apply("alice", LockVeAction(duration=MAX_LOCK_DURATION // 2), NOW)
        state = arbiter.get_state("alice")
        assert outcome.success
        assert state.ve_amount == 500 * TOKEN_UNIT
        assert state.lock_end_time == NOW + MAX_LOCK_DURATION // 2
        assert state.locked_stake == state.staked_amount
        assert arbiter.protocol.total_ve_supply == state.ve_amount

    def test_locked_stake_enforced(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=500), NOW)
        assert arbiter.apply("alice", LockVeAction(duration=WEEK), NOW).success
        arbiter.apply("alice", StakeAction(amount=500), NOW)

        outcome = arbiter.apply("alice", UnstakeAction(amount=600), NOW)
        assert outcome.error_code is FailureCode.TOKENS_LOCKED
        assert arbiter.get_state("alice").staked_amount == 1_000

        assert arbiter.apply("alice", UnstakeAction(amount=500), NOW).success
        assert arbiter.get_state("alice").staked_amount == 500

    def test_unstake_allowed_after_expiry(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=500), NOW)
        arbiter.apply("alice", LockVeAction(duration=WEEK), NOW)
        assert arbiter.apply("alice", UnstakeAction(amount=500), NOW + WEEK).success
        assert arbiter.get_state("alice").locked_stake == 0

    def test_relock_never_shortens(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000), NOW)
        arbiter.apply("alice", LockVeAction(duration=4 * WEEK), NOW)
        state = arbiter.get_state("alice")
        end, ve = state.lock_end_time, state.ve_amount

        assert arbiter.apply("alice", LockVeAction(duration=WEEK), NOW).success
        assert state.lock_end_time == end
        assert state.ve_amount == ve

    def test_relock_extends(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000 * TOKEN_UNIT), NOW)
        arbiter.apply("alice", LockVeAction(duration=WEEK), NOW)
        arbiter.apply("alice", LockVeAction(duration=52 * WEEK), NOW + DAY)
        state = arbiter.get_state("alice")
        assert state.lock_end_time == NOW + DAY + 52 * WEEK
        assert state.ve_amount == vote_escrow(1_000 * TOKEN_UNIT, 52 * WEEK)

    def test_unlock_without_lock(self, arbiter: ActionArbiter) -> None:
        outcome = arbiter.apply("alice", UnlockVeAction(), NOW)
        assert outcome.error_code is FailureCode.INVALID_INPUT

    def test_unlock_before_expiry(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000), NOW)
        arbiter.apply("alice", LockVeAction(duration=WEEK), NOW)
        outcome = arbiter.apply("alice", UnlockVeAction(), NOW + WEEK - 1)
        assert outcome.error_code is FailureCode.LOCK_NOT_EXPIRED

    def test_unlock_after_expiry(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000 * TOKEN_UNIT), NOW)
        arbiter.apply("alice", LockVeAction(duration=WEEK), NOW)
        outcome = arbiter.apply("alice", UnlockVeAction(), NOW + WEEK)
        state = arbiter.get_state("alice")
        assert outcome.success
        assert state.ve_amount == 0
        assert state.locked_stake == 0
        assert state.lock_end_time == 0
        assert state.staked_amount == 1_000 * TOKEN_UNIT
        assert arbiter.protocol.total_ve_supply == 0

    def test_unstake_after_expiry_caps_ve(self, arbiter: ActionArbiter) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000 * TOKEN_UNIT), NOW)
        arbiter.apply("alice", LockVeAction(duration=MAX_LOCK_DURATION // 2), NOW)
        expired = NOW + MAX_LOCK_DURATION // 2

        assert arbiter.apply("alice", UnstakeAction(amount=800 * TOKEN_UNIT), expired).success
        state = arbiter.get_state("alice")
        assert state.ve_amount == 200 * TOKEN_UNIT
        assert arbiter.protocol.total_ve_supply == 200 * TOKEN_UNIT

        assert arbiter.apply("alice", UnstakeAction(amount=200 * TOKEN_UNIT), expired).success
        assert state.ve_amount == 0
        assert arbiter.protocol.total_ve_supply == 0


class TestCreateMarket:
    """CREATE_MARKET."""

    def test_creates_market(self, arbiter: ActionArbiter) -> None:
        action = CreateMarketAction(
            protocol_id="orca",
            metric_type=MetricType.PRICE,
            target_value=42,
            resolution_offset=DAY,
        )
        outcome = arbiter.apply("bob", action, NOW)
        assert outcome.success
        market = arbiter.get_market(outcome.details["market_id"])
        assert market.creator == "bob"
        assert market.resolution_time == NOW + DAY
        assert market.yes_pool == market.no_pool == 0
        assert "orca" in market.description

    def test_resolution_too_soon(self, arbiter: ActionArbiter) -> None:
        action = CreateMarketAction(protocol_id="orca", target_value=1, resolution_offset=3_599)
        assert arbiter.apply("bob", action, NOW).error_code is FailureCode.INVALID_TIMESTAMP

    def test_blank_protocol(self, arbiter: ActionArbiter) -> None:
        action = CreateMarketAction(protocol_id="  ", target_value=1)
        assert arbiter.apply("bob", action, NOW).error_code is FailureCode.INVALID_INPUT
        assert arbiter.markets == {}

    def test_description_too_long(self, arbiter: ActionArbiter) -> None:
        action = CreateMarketAction(protocol_id="orca", target_value=1, description="x" * 201)
        assert arbiter.apply("bob", action, NOW).error_code is FailureCode.INVALID_INPUT

    @pytest.mark.parametrize("offset", [MAX_TIMESTAMP, 2**128])
    def test_resolution_out_of_range(self, arbiter: ActionArbiter, offset: int) -> None:
        action = CreateMarketAction(protocol_id="orca", target_value=1, resolution_offset=offset)
        outcome = arbiter.apply("bob", action, NOW)
        assert outcome.error_code is FailureCode.INVALID_TIMESTAMP
        assert arbiter.markets == {}

    @pytest.mark.parametrize("target", [MAX_TARGET_VALUE + 1, 2**200])
    def test_target_out_of_range(self, arbiter: ActionArbiter, target: int) -> None:
        action = CreateMarketAction(protocol_id="orca", target_value=target)
        outcome = arbiter.apply("bob", action, NOW)
        assert outcome.error_code is FailureCode.INVALID_INPUT
        assert arbiter.markets == {}

    def test_largest_target_accepted(self, arbiter: ActionArbiter) -> None:
        action = CreateMarketAction(protocol_id="orca", target_value=MAX_TARGET_VALUE)
        assert arbiter.apply("bob", action, NOW).success


class TestPlaceBet:
    """PLACE_BET."""

    def test_debits_principal_and_adds_effective(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        arbiter.apply("alice", StakeAction(amount=3_000_000), NOW)
        state = arbiter.get_state("alice")
        holdings = state.holdings

        outcome = arbiter.apply("alice", bet(market, 1_000, "yes"), NOW)

        assert outcome.success
        assert outcome.details["effective_amount"] == 1_030
        assert state.holdings == holdings - 1_000
        assert market.yes_pool == 1_030
        assert market.no_pool == 0
        assert state.open_bets[0].bet_id == f"{market.market_id}-0"
        assert state.total_bets == 1

    def test_bet_ids_unique(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        arbiter.apply("alice", bet(market, 10, "yes"), NOW)
        arbiter.apply("bob", bet(market, 10, "no"), NOW)
        arbiter.apply("alice", bet(market, 10, "no"), NOW)
        ids = [b.bet_id for s in arbiter.get_all_states() for b in s.open_bets]
        assert len(ids) == len(set(ids)) == 3

    def test_unknown_market(self, arbiter: ActionArbiter) -> None:
        action = PlaceBetAction(market_id="mkt-9999", amount=1, side="yes")
        assert arbiter.apply("alice", action, NOW).error_code is FailureCode.MARKET_NOT_FOUND

    def test_betting_closed(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        outcome = arbiter.apply("alice", bet(market, 1, "yes"), market.resolution_time)
        assert outcome.error_code is FailureCode.BETTING_CLOSED

    def test_resolved_market(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        arbiter.resolve_market(market.market_id, "no", 0)
        outcome = arbiter.apply("alice", bet(market, 1, "yes"), NOW)
        assert outcome.error_code is FailureCode.MARKET_RESOLVED

    def test_more_than_liquid(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        outcome = arbiter.apply("alice", bet(market, 10_000 * TOKEN_UNIT + 1, "yes"), NOW)
        assert outcome.error_code is FailureCode.INVALID_AMOUNT
        assert market.yes_pool == 0


class TestClaimWinnings:
    """CLAIM_WINNINGS and settlement."""

    @pytest.fixture
    def two_bets(self, arbiter: ActionArbiter, market: MarketInfo) -> MarketInfo:
        arbiter.apply("alice", bet(market, 100 * TOKEN_UNIT, "yes"), NOW)
        arbiter.apply("bob", bet(market, 50 * TOKEN_UNIT, "no"), NOW)
        return market

    def test_claim_before_resolution(self, arbiter: ActionArbiter, two_bets: MarketInfo) -> None:
        outcome = arbiter.apply("alice", ClaimWinningsAction(bet_id=f"{two_bets.market_id}-0"), NOW)
        assert outcome.error_code is FailureCode.MARKET_NOT_RESOLVED

    def test_winning_claim(self, arbiter: ActionArbiter, two_bets: MarketInfo) -> None:
        arbiter.resolve_market(two_bets.market_id, "yes", 2_000_000_000)
        state = arbiter.get_state("alice")
        holdings = state.holdings

        outcome = arbiter.apply("alice", ClaimWinningsAction(bet_id=f"{two_bets.market_id}-0"), NOW)

        assert outcome.success
        assert outcome.details["payout"] == 145_500_000
        assert outcome.details["fee"] == 4_500_000
        assert state.holdings == holdings + 145_500_000
        assert state.total_pnl == 45_500_000
        assert state.won_bets == state.settled_bets == 1
        assert state.open_bets == []
        assert arbiter.protocol.total_fees_collected == 4_500_000
        assert (
            arbiter.protocol.reward_pool + arbiter.protocol.treasury + arbiter.protocol.total_burned
            == 4_500_000
        )

    def test_double_claim(self, arbiter: ActionArbiter, two_bets: MarketInfo) -> None:
        arbiter.resolve_market(two_bets.market_id, "yes", 2_000_000_000)
        claim = ClaimWinningsAction(bet_id=f"{two_bets.market_id}-0")
        assert arbiter.apply("alice", claim, NOW).success
        second = arbiter.apply("alice", claim, NOW)
        assert second.error_code is FailureCode.BET_NOT_FOUND

    def test_losing_claim(self, arbiter: ActionArbiter, two_bets: MarketInfo) -> None:
        arbiter.resolve_market(two_bets.market_id, "yes", 2_000_000_000)
        outcome = arbiter.apply("bob", ClaimWinningsAction(bet_id=f"{two_bets.market_id}-1"), NOW)
        assert outcome.error_code is FailureCode.BET_LOST
        assert len(arbiter.get_state("bob").open_bets) == 1

    def test_settle_market(self, arbiter: ActionArbiter, two_bets: MarketInfo) -> None:
        arbiter.resolve_market(two_bets.market_id, "no", 0)
        records = arbiter.settle_market(two_bets.market_id)

        assert [(r.agent_name, r.won) for r in records] == [("alice", False), ("bob", True)]
        assert arbiter.get_state("alice").total_pnl == -100 * TOKEN_UNIT
        assert arbiter.get_state("bob").total_pnl > 0
        assert all(not s.open_bets for s in arbiter.get_all_states())
        assert arbiter.settle_market(two_bets.market_id) == []

    def test_settle_unresolved(self, arbiter: ActionArbiter, two_bets: MarketInfo) -> None:
        with pytest.raises(ActionRejected) as exc:
            arbiter.settle_market(two_bets.market_id)
        assert exc.value.code is FailureCode.MARKET_NOT_RESOLVED


class TestResolution:
    """Forced resolution and creator fees."""

    def test_resolution_is_immutable(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        arbiter.apply("alice", bet(market, 100, "yes"), NOW)
        arbiter.resolve_market(market.market_id, "yes", 5)
        pools = (market.yes_pool, market.no_pool)

        with pytest.raises(ActionRejected) as exc:
            arbiter.resolve_market(market.market_id, "no", 0)

        assert exc.value.code is FailureCode.MARKET_RESOLVED
        assert market.outcome == "yes"
        assert market.actual_value == 5
        assert (market.yes_pool, market.no_pool) == pools
        arbiter.settle_market(market.market_id)
        assert (market.yes_pool, market.no_pool) == pools

    def test_resolve_unknown_market(self, arbiter: ActionArbiter) -> None:
        with pytest.raises(ActionRejected) as exc:
            arbiter.resolve_market("mkt-4242", "yes", 1)
        assert exc.value.code is FailureCode.MARKET_NOT_FOUND

    def test_creator_fee_paid_once(self, arbiter: ActionArbiter) -> None:
        created = arbiter.apply(
            "bob",
            CreateMarketAction(protocol_id="drift", target_value=10),
            NOW,
        )
        market = arbiter.get_market(created.details["market_id"])
        arbiter.apply("alice", bet(market, 600 * TOKEN_UNIT, "yes"), NOW)
        arbiter.apply("alice", bet(market, 400 * TOKEN_UNIT, "no"), NOW)
        arbiter.resolve_market(market.market_id, "yes", 11)

        creator, fee = arbiter.pay_creator_fee(market.market_id)

        # 3% of 1,000 tokens volume, creator gets a quarter
        assert creator == "bob"
        assert fee == 7_500_000
        bob = arbiter.get_state("bob")
        assert bob.total_pnl == fee
        assert bob.liquid_balance == 10_000 * TOKEN_UNIT + fee
        assert arbiter.protocol.creator_fees_paid == fee

        with pytest.raises(ActionRejected) as exc:
            arbiter.pay_creator_fee(market.market_id)
        assert exc.value.code is FailureCode.INVALID_INPUT

    def test_seeded_market_has_no_creator_fee(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        arbiter.resolve_market(market.market_id, "yes", 1)
        assert arbiter.pay_creator_fee(market.market_id) == (None, 0)


class TestNoOps:
    """WAIT and ANALYZE never mutate anything."""

    @pytest.mark.parametrize("action", [wait_action(), wait_action("bad json"), AnalyzeAction()])
    def test_no_op(self, arbiter: ActionArbiter, market: MarketInfo, action) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000), NOW)
        arbiter.apply("alice", bet(market, 10, "yes"), NOW)
        states = copy.deepcopy(arbiter.states)
        markets = copy.deepcopy(arbiter.markets)
        protocol = copy.deepcopy(arbiter.protocol)

        outcome = arbiter.apply("alice", action, NOW)

        assert outcome.success
        assert outcome.details == {}
        assert arbiter.states == states
        assert arbiter.markets == markets
        assert arbiter.protocol == protocol


class TestPoolsAndContext:
    """Exogenous flow and agent snapshots."""

    def test_perturb_pools_bounds(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        rng = random.Random(1)
        for _ in range(50):
            before = market.total_pool
            changes = arbiter.perturb_pools(rng)
            assert len(changes) == 1
            assert 0 <= market.total_pool - before <= 99 * TOKEN_UNIT

    def test_perturb_skips_resolved(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        arbiter.resolve_market(market.market_id, "yes", 1)
        assert arbiter.perturb_pools(random.Random(1)) == []

    def test_context_is_a_snapshot(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        context = arbiter.build_context(1, NOW)
        arbiter.apply("alice", bet(market, 10, "yes"), NOW)
        assert context.markets[0].yes_pool == 0
        assert market.yes_pool == 10
        assert [c.name for c in context.competitors] == ["alice", "bob"]


class TestDeterminism:
    """Replaying the same transitions gives the same PnL."""

    def _replay(self) -> dict[str, int]:
        arbiter = ActionArbiter(["alice", "bob", "carol"], 1_000 * TOKEN_UNIT)
        market = arbiter.seed_market("pyth", MetricType.PRICE, 10, NOW + DAY, "", NOW, 7 * TOKEN_UNIT, 3 * TOKEN_UNIT)
        script = [
            ("alice", StakeAction(amount=200 * TOKEN_UNIT)),
            ("bob", bet(market, 50 * TOKEN_UNIT, "no")),
            ("alice", bet(market, 80 * TOKEN_UNIT, "yes")),
            ("carol", bet(market, 10 * TOKEN_UNIT, "yes")),
        ]
        for name, action in script:
            arbiter.apply(name, action, NOW)
        arbiter.resolve_market(market.market_id, "yes", 12)
        arbiter.settle_market(market.market_id)
        return {s.name: s.total_pnl for s in arbiter.get_all_states()}

    def test_replay_is_deterministic(self) -> None:
        first = self._replay()
        assert first == self._replay()
        assert first["bob"] == -50 * TOKEN_UNIT
        assert first["alice"] > 0
