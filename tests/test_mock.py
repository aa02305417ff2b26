"""Tests for the heuristic mock decision engine."""

from __future__ import annotations

import pytest

from idlarena.actions import LockVeAction, PlaceBetAction, StakeAction, WaitAction
from idlarena.agents import AGENT_CONFIGS, get_agent_config
from idlarena.arbiter import ActionArbiter
from idlarena.economics import TOKEN_UNIT
from idlarena.mock import CONSERVATIVE_LOCK_SECONDS, MockDecisionEngine
from idlarena.models import AgentConfig, MarketInfo

from .conftest import NOW


class TestRoster:
    """The built-in agent roster."""

    def test_five_unique_agents(self) -> None:
        names = [a.name for a in AGENT_CONFIGS]
        assert len(names) == 5
        assert len(set(names)) == 5

    def test_every_style_has_a_policy(self) -> None:
        engine = MockDecisionEngine(seed=1)
        for config in AGENT_CONFIGS:
            assert config.style in engine._policies
            assert config.model.startswith("openrouter/")

    def test_lookup(self) -> None:
        assert get_agent_config("Value Victor").style == "value"
        assert get_agent_config("Nobody") is None


class TestPolicies:
    """Persona heuristics."""

    @pytest.mark.asyncio
    async def test_aggressive_stakes_first(
        self, agent_configs: list[AgentConfig], arbiter: ActionArbiter, market: MarketInfo
    ) -> None:
        engine = MockDecisionEngine(seed=3)
        state = arbiter.get_state("alice")
        result = await engine.decide(agent_configs[0], arbiter.build_context(1, NOW), state)
        assert result.success
        assert isinstance(result.action, StakeAction)
        assert result.action.amount == state.liquid_balance * 7 // 10

    @pytest.mark.asyncio
    async def test_aggressive_bets_once_staked(
        self, agent_configs: list[AgentConfig], arbiter: ActionArbiter, market: MarketInfo
    ) -> None:
        arbiter.apply("alice", StakeAction(amount=1_000 * TOKEN_UNIT), NOW)
        engine = MockDecisionEngine(seed=3)
        result = await engine.decide(agent_configs[0], arbiter.build_context(1, NOW), arbiter.get_state("alice"))
        assert isinstance(result.action, PlaceBetAction)
        assert result.action.market_id == market.market_id
        assert 0 < result.action.amount <= arbiter.get_state("alice").liquid_balance

    @pytest.mark.asyncio
    async def test_conservative_locks_after_staking(
        self, agent_configs: list[AgentConfig], arbiter: ActionArbiter, market: MarketInfo
    ) -> None:
        engine = MockDecisionEngine(seed=3)
        carl = agent_configs[1]

        first = await engine.decide(carl, arbiter.build_context(1, NOW), arbiter.get_state("alice"))
        assert isinstance(first.action, StakeAction)
        assert arbiter.apply("alice", first.action, NOW).success

        second = await engine.decide(carl, arbiter.build_context(2, NOW), arbiter.get_state("alice"))
        assert isinstance(second.action, LockVeAction)
        assert second.action.duration == CONSERVATIVE_LOCK_SECONDS
        assert arbiter.apply("alice", second.action, NOW).success

    @pytest.mark.asyncio
    async def test_unknown_style_waits(self, arbiter: ActionArbiter) -> None:
        config = AgentConfig(name="x", model="m", personality="", strategy="", style="chaotic")
        result = await MockDecisionEngine(seed=1).decide(config, arbiter.build_context(1, NOW), arbiter.get_state("alice"))
        assert isinstance(result.action, WaitAction)

    @pytest.mark.asyncio
    async def test_actions_always_validate(self, arbiter: ActionArbiter, market: MarketInfo) -> None:
        engine = MockDecisionEngine(seed=11)
        for round_num in range(1, 8):
            context = arbiter.build_context(round_num, NOW)
            for config in AGENT_CONFIGS[:2]:
                name = "alice" if config is AGENT_CONFIGS[0] else "bob"
                result = await engine.decide(config, context, arbiter.get_state(name))
                assert not (isinstance(result.action, WaitAction) and result.action.diagnostic)
                arbiter.apply(name, result.action, NOW)

    @pytest.mark.asyncio
    async def test_seeded_engines_agree(
        self, agent_configs: list[AgentConfig], arbiter: ActionArbiter, market: MarketInfo
    ) -> None:
        arbiter.apply("alice", StakeAction(amount=100 * TOKEN_UNIT), NOW)
        context = arbiter.build_context(1, NOW)
        state = arbiter.get_state("alice")
        a = await MockDecisionEngine(seed=5).decide(agent_configs[0], context, state)
        b = await MockDecisionEngine(seed=5).decide(agent_configs[0], context, state)
        assert a.action == b.action
