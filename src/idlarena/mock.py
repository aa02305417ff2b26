"""Mock decision engine for running the arena without an LLM backend.

Each persona style maps to a simple heuristic policy. Actions are emitted
as the same loosely-typed payloads an LLM would return and go through the
same validation, so mock runs exercise the full action pipeline.
"""

import logging
import random

from .actions import parse_action
from .decision import DecisionResult
from .models import AgentConfig, AgentMemory, AgentState, MarketInfo, SimulationContext
from .economics import yes_ratio_pct

logger = logging.getLogger(__name__)

CONSERVATIVE_LOCK_SECONDS = 30 * 24 * 60 * 60


def _response(thought: str, action_type: str, params: dict, reasoning: str, confidence: float, analysis: str = "") -> dict:
    return {
        "thought": thought,
        "marketAnalysis": analysis,
        "action": {
            "type": action_type,
            "params": params,
            "reasoning": reasoning,
            "confidence": confidence,
        },
    }


def _bet(market: MarketInfo, amount: int, bet_yes: bool) -> dict:
    return {"marketId": market.market_id, "amount": str(amount), "betYes": bet_yes}


class MockDecisionEngine:
    """Seeded heuristic policies keyed on AgentConfig.style."""

    def __init__(self, seed: int | None = None, rng: random.Random | None = None):
        self.rng = rng or random.Random(seed)
        self._policies = {
            "aggressive": self._aggressive,
            "conservative": self._conservative,
            "contrarian": self._contrarian,
            "momentum": self._momentum,
            "value": self._value,
        }
        logger.info("MockDecisionEngine initialized", extra={"seed": seed})

    async def decide(
        self,
        config: AgentConfig,
        context: SimulationContext,
        state: AgentState,
        memory: AgentMemory | None = None,
    ) -> DecisionResult:
        policy = self._policies.get(config.style, self._fallback)
        markets = [m for m in context.markets if not m.resolved]
        response = policy(markets, state)
        action = parse_action(response["action"])
        return DecisionResult(
            success=True,
            action=action,
            thought=response["thought"],
            market_analysis=response["marketAnalysis"],
            attempts=1,
        )

    def _fallback(self, markets: list[MarketInfo], state: AgentState) -> dict:
        return _response("Evaluating options...", "WAIT", {}, "Strategic pause", 0.5)

    def _aggressive(self, markets: list[MarketInfo], state: AgentState) -> dict:
        rand = self.rng.random()
        if state.staked_amount == 0 and state.liquid_balance > 0:
            return _response(
                "Need staking bonus for maximum betting power",
                "STAKE",
                {"amount": str(state.liquid_balance * 7 // 10)},
                "Maximize staking bonus before betting",
                0.9,
            )
        amount = state.liquid_balance * int(rand * 30 + 20) // 100
        if markets and amount > 0:
            market = markets[int(rand * len(markets))]
            ratio = yes_ratio_pct(market.yes_pool, market.no_pool)
            # Bet against a lopsided crowd
            bet_yes = False if ratio > 60 else True if ratio < 40 else rand > 0.5
            return _response(
                f"Market {market.protocol_id} looks imbalanced, going contrarian",
                "PLACE_BET",
                _bet(market, amount, bet_yes),
                "High conviction contrarian play",
                0.85,
                analysis=f"YES: {ratio}%, betting {'YES' if bet_yes else 'NO'}",
            )
        return self._fallback(markets, state)

    def _conservative(self, markets: list[MarketInfo], state: AgentState) -> dict:
        rand = self.rng.random()
        if state.staked_amount < state.liquid_balance * 4:
            amount = state.liquid_balance * 8 // 10
            if amount > 0:
                return _response(
                    "Building staking position for passive income",
                    "STAKE",
                    {"amount": str(amount)},
                    "Maximize staking rewards",
                    0.95,
                )
        if state.staked_amount > 0 and state.ve_amount == 0:
            return _response(
                "Lock staked tokens for veIDL",
                "LOCK_VE",
                {"duration": CONSERVATIVE_LOCK_SECONDS},
                "Secure long-term staking benefits",
                0.9,
            )
        amount = state.liquid_balance // 10
        if markets and amount > 0 and rand > 0.6:
            return _response(
                "Small position in established market",
                "PLACE_BET",
                _bet(markets[0], amount, True),
                "Conservative YES bet on stable protocol",
                0.7,
            )
        return _response("Market conditions uncertain, staying patient", "WAIT", {}, "Patience is key", 0.8)

    def _contrarian(self, markets: list[MarketInfo], state: AgentState) -> dict:
        rand = self.rng.random()
        if state.staked_amount == 0 and state.liquid_balance > 0:
            return _response(
                "Building modest stake for betting bonus",
                "STAKE",
                {"amount": str(state.liquid_balance // 2)},
                "Moderate staking for flexibility",
                0.8,
            )
        skewed = next(
            (
                m for m in markets
                if m.total_pool > 0 and not 25 <= yes_ratio_pct(m.yes_pool, m.no_pool) <= 75
            ),
            None,
        )
        amount = state.liquid_balance * int(rand * 10 + 15) // 100
        if skewed is not None and amount > 0:
            ratio = yes_ratio_pct(skewed.yes_pool, skewed.no_pool)
            return _response(
                f"Found heavily skewed market {skewed.protocol_id} - fading crowd",
                "PLACE_BET",
                _bet(skewed, amount, ratio <= 75),
                "Extreme sentiment = fade opportunity",
                0.85,
                analysis=f"Market at {ratio}% YES - classic contrarian setup",
            )
        return _response(
            "No extreme imbalances found, waiting for setup",
            "ANALYZE",
            {},
            "Patience for right opportunity",
            0.7,
        )

    def _momentum(self, markets: list[MarketInfo], state: AgentState) -> dict:
        rand = self.rng.random()
        if state.staked_amount == 0 and state.liquid_balance > 0:
            return _response(
                "Light stake to stay nimble",
                "STAKE",
                {"amount": str(state.liquid_balance * 3 // 10)},
                "Keep capital liquid for momentum plays",
                0.75,
            )
        amount = state.liquid_balance * int(rand * 15 + 10) // 100
        if markets and amount > 0:
            market = markets[int(rand * len(markets))]
            ratio = yes_ratio_pct(market.yes_pool, market.no_pool)
            bet_yes = True if ratio > 55 else False if ratio < 45 else rand > 0.5
            return _response(
                f"Riding momentum on {market.protocol_id}",
                "PLACE_BET",
                _bet(market, amount, bet_yes),
                "Trend is your friend",
                0.7,
                analysis=f"Trend: {'YES' if ratio > 50 else 'NO'} at {ratio}%",
            )
        return self._fallback(markets, state)

    def _value(self, markets: list[MarketInfo], state: AgentState) -> dict:
        rand = self.rng.random()
        if state.staked_amount == 0 and state.liquid_balance > 0:
            return _response(
                "Stake 50% for balanced approach",
                "STAKE",
                {"amount": str(state.liquid_balance // 2)},
                "Balanced staking for bonus + liquidity",
                0.85,
            )
        balanced = next(
            (
                m for m in markets
                if m.total_pool > 0 and 40 <= yes_ratio_pct(m.yes_pool, m.no_pool) <= 60
            ),
            None,
        )
        amount = state.liquid_balance * int(rand * 15 + 10) // 100
        if balanced is not None and amount > 0 and rand > 0.4:
            return _response(
                f"{balanced.protocol_id} shows value at current odds",
                "PLACE_BET",
                _bet(balanced, amount, rand > 0.5),
                "+EV play based on fundamentals",
                0.75,
                analysis="Balanced market with potential edge",
            )
        return _response(
            "No clear +EV opportunities, analyzing further",
            "ANALYZE",
            {},
            "Waiting for mispriced markets",
            0.6,
        )
