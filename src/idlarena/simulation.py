"""Main IDL Arena Simulation Orchestrator.

This module ties together all components to run a complete arena:
agents decide through the decision engine, the arbiter applies their
actions, markets drift and are periodically force-resolved, and the
leaderboard is recomputed after every round.
"""

import asyncio
import copy
import logging
import random
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .actions import Action, wait_action
from .agents import AGENT_CONFIGS
from .arbiter import ActionArbiter
from .decision import AgentDecisionEngine, DecisionResult
from .economics import TOKEN_UNIT, yes_ratio_pct
from .errors import InvariantViolation
from .ledger import LedgerClient, SimulatedLedger
from .mock import MockDecisionEngine
from .models import (
    STATE_CHANGING_ACTIONS,
    AgentActionRecord,
    AgentConfig,
    AgentMemory,
    FailureCode,
    MarketInfo,
    MetricType,
    ResolutionRecord,
    RoundResult,
    SimulationConfig,
    SimulationContext,
    SimulationResult,
    SimulationStatus,
)
from .reporting import (
    build_final_standings,
    calculate_leaderboard,
    generate_report,
    get_winner,
    to_dict,
)
from .tracing import SimulationTracer

logger = logging.getLogger(__name__)

DAY_SECONDS = 86_400
REPLACEMENT_RESOLUTION_SECONDS = 3 * DAY_SECONDS
REPLACEMENT_MAX_POOL_TOKENS = 5_000
REPLACEMENT_MAX_TARGET = 10_000_000_000
ACTUAL_VALUE_SPREAD = 1_000_000
RECENT_ACTIONS_LIMIT = 50

# Sample protocol ids from the IDLHub registry
PROTOCOL_IDS = [
    "jupiter", "orca", "raydium", "marinade", "solend",
    "drift", "mango", "serum", "phoenix", "tensor",
    "magic-eden", "metaplex", "jito", "pyth", "switchboard",
]

# (protocol, metric, target, days to resolution, description, yes tokens, no tokens, first agent creates)
SEED_MARKETS = [
    ("jupiter", MetricType.TVL, 1_000_000_000, 2, "Will Jupiter TVL exceed $1B?", 5_000, 3_000, True),
    ("raydium", MetricType.VOLUME_24H, 500_000_000, 3, "Will Raydium 24h volume exceed $500M?", 2_000, 4_000, False),
    ("marinade", MetricType.USERS, 100_000, 4, "Will Marinade reach 100k unique users?", 1_500, 1_500, False),
]


def yes_win_probability(yes_pool: int, no_pool: int, underdog_bias: float) -> float:
    """Probability that a forced resolution comes out YES.

    The minority side gets a boost proportional to how lopsided the
    market is: 0.5 +/- underdog_bias * |50 - yes%| / 100.
    """
    ratio = yes_ratio_pct(yes_pool, no_pool)
    bonus = underdog_bias * abs(50 - ratio) / 100
    if ratio < 50:
        return 0.5 + bonus
    return 0.5 - bonus


class ArenaSimulation:
    """Main orchestrator for IDL Arena simulations.

    Runs a single round-robin loop:
    1. Reset round PnL and snapshot a shared context
    2. Ask each agent for an action and apply it
    3. Perturb market pools with exogenous flow
    4. Periodically resolve a market, settle bets and pay the creator
    5. Publish the leaderboard
    """

    def __init__(
        self,
        config: SimulationConfig,
        agents: list[AgentConfig] | None = None,
        decision_engine: Any = None,
        llm_client: Any = None,
        ledger: LedgerClient | None = None,
        clock: Callable[[], int] | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize the simulation.

        Args:
            config: Simulation configuration
            agents: Competing agents (default: the built-in roster)
            decision_engine: Anything exposing ``async decide(config, context, state, memory)``
            llm_client: LLM client used to build an AgentDecisionEngine when no engine is given
            ledger: Ledger boundary for applied actions (default: SimulatedLedger)
            clock: Returns the current unix timestamp (default: wall clock)
            rng: Random source for pool noise and resolutions (default: seeded from config)

        Raises:
            ValueError: If no decision source is available
        """
        self.simulation_id = str(uuid.uuid4())[:8]
        self.config = config
        self.agents = list(agents) if agents is not None else list(AGENT_CONFIGS)
        self.rng = rng or random.Random(config.seed)
        self.clock = clock or (lambda: int(time.time()))
        self.ledger = ledger or SimulatedLedger()

        if decision_engine is not None:
            self.decision_engine = decision_engine
        elif config.mock:
            self.decision_engine = MockDecisionEngine(seed=config.seed)
        elif llm_client is not None:
            self.decision_engine = AgentDecisionEngine(
                llm_client,
                timeout=config.decision_timeout,
                max_retries=config.decision_max_retries,
                retry_backoff=config.decision_retry_backoff,
            )
        else:
            raise ValueError("An llm_client or decision_engine is required unless mock mode is enabled")

        self.arbiter = ActionArbiter(
            agent_names=[a.name for a in self.agents],
            initial_balance=config.initial_balance,
        )
        self.memories: dict[str, AgentMemory] = {a.name: AgentMemory() for a in self.agents}

        # State tracking
        self._status = "initializing"
        self._current_round = 0
        self._current_agent: str | None = None
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._rounds: list[RoundResult] = []
        self._recent_actions: deque[AgentActionRecord] = deque(maxlen=RECENT_ACTIONS_LIMIT)
        self._error_message: str | None = None
        self._stop_requested = False

        self.tracer = SimulationTracer(
            simulation_id=self.simulation_id,
            config=asdict(config),
            agents=[asdict(a) for a in self.agents],
            output_dir=Path(config.output_dir) if config.output_dir else None,
        )

        self._seed_markets()

        logger.info(
            f"ArenaSimulation {self.simulation_id} initialized",
            extra={
                "agents": [a.name for a in self.agents],
                "rounds": config.rounds,
                "mock": config.mock,
            },
        )

    def _seed_markets(self) -> None:
        now = self.clock()
        first_agent = self.agents[0].name if self.agents else None
        for protocol_id, metric, target, days, description, yes_tokens, no_tokens, owned in SEED_MARKETS:
            self.arbiter.seed_market(
                protocol_id=protocol_id,
                metric_type=metric,
                target_value=target,
                resolution_time=now + days * DAY_SECONDS,
                description=description,
                now=now,
                yes_pool=yes_tokens * TOKEN_UNIT,
                no_pool=no_tokens * TOKEN_UNIT,
                creator=first_agent if owned else None,
            )
        logger.info(f"Seeded {len(SEED_MARKETS)} initial markets")

    @property
    def rounds(self) -> list[RoundResult]:
        return list(self._rounds)

    def get_status(self) -> SimulationStatus:
        """Get current simulation status."""
        elapsed = 0.0
        if self._start_time:
            end = self._end_time or datetime.now(timezone.utc)
            elapsed = (end - self._start_time).total_seconds()

        return SimulationStatus(
            simulation_id=self.simulation_id,
            status=self._status,
            current_round=self._current_round,
            total_rounds=self.config.rounds,
            current_agent=self._current_agent,
            leaderboard=calculate_leaderboard(self.arbiter.get_all_states()),
            recent_actions=list(self._recent_actions)[-10:],
            elapsed_time=elapsed,
            error_message=self._error_message,
        )

    def stop(self) -> None:
        """Request the simulation to stop after the current round."""
        logger.info(f"Stop requested for simulation {self.simulation_id}")
        self._stop_requested = True

    async def run(self) -> SimulationResult:
        """Run the complete simulation.

        Returns:
            SimulationResult with every round and the final standings

        Raises:
            InvariantViolation: If the economic state became inconsistent
        """
        self._start_time = datetime.now(timezone.utc)
        self._status = "running"

        try:
            for round_num in range(1, self.config.rounds + 1):
                if self._stop_requested:
                    logger.info("Simulation stopped by user request")
                    self._status = "stopped"
                    break

                round_result = await self._play_round(round_num)
                self._rounds.append(round_result)
                self.tracer.record_round(round_result)

                if round_num < self.config.rounds and self.config.round_delay > 0:
                    await asyncio.sleep(self.config.round_delay)

            if self._status == "running":
                self._status = "completed"
            self._current_agent = None
            self._end_time = datetime.now(timezone.utc)

            standings = build_final_standings(self.arbiter.get_all_states(), self.agents)
            winner = get_winner(standings)

            report = generate_report(standings, rounds_played=len(self._rounds))
            logger.info(f"\n{report}")

            self.tracer.set_final_results(
                standings=to_dict(standings),
                winner=winner,
                status=self._status,
            )
            artifact_path = self._save_artifact()

            summary = self.tracer.get_summary()
            logger.info(
                f"Trace summary: {summary['total_decisions']} decisions, "
                f"{summary['failed_decisions']} failed, "
                f"{summary['avg_latency_ms']:.0f}ms avg latency"
            )

            return SimulationResult(
                simulation_id=self.simulation_id,
                config=self.config,
                agents=list(self.agents),
                start_time=self._start_time,
                end_time=self._end_time,
                rounds=list(self._rounds),
                final_standings=standings,
                winner=winner,
                artifact_path=str(artifact_path) if artifact_path else None,
            )

        except Exception as e:
            logger.error(f"Simulation error: {e}", exc_info=True)
            self._status = "error"
            self._error_message = str(e)
            self._end_time = datetime.now(timezone.utc)

            self.tracer.set_error(str(e))
            self._save_artifact()
            raise

    def _save_artifact(self) -> Path | None:
        if not self.config.output_dir:
            return None
        try:
            return self.tracer.save()
        except OSError as e:
            logger.error(f"Failed to save simulation artifact: {e}")
            return None

    async def _play_round(self, round_num: int) -> RoundResult:
        """Play one round and return its result."""
        self._current_round = round_num
        self.arbiter.begin_round()
        now = self.clock()

        logger.info(f"Round {round_num}/{self.config.rounds} starting")

        # Every agent sees the same snapshot, taken before anyone acts
        context = self.arbiter.build_context(round_num, now)
        result = RoundResult(round=round_num, timestamp=now)

        for index, agent in enumerate(self.agents):
            self._current_agent = agent.name
            record = await self._agent_turn(agent, context, round_num, now)
            result.actions.append(record)
            self._recent_actions.append(record)

            if index < len(self.agents) - 1 and self.config.agent_delay > 0:
                await asyncio.sleep(self.config.agent_delay)
        self._current_agent = None

        self.arbiter.perturb_pools(self.rng, self.config.max_perturbation)

        if (
            self.config.resolution_interval > 0
            and round_num % self.config.resolution_interval == 0
            and self.arbiter.unresolved_markets()
        ):
            result.resolution = self._resolve_random_market(round_num, now)

        result.leaderboard = calculate_leaderboard(self.arbiter.get_all_states())

        leader = result.leaderboard[0] if result.leaderboard else None
        logger.info(
            f"Round {round_num} complete"
            + (f", leader: {leader.name} ({leader.total_pnl})" if leader else ""),
            extra={"round": round_num, "actions": len(result.actions)},
        )
        return result

    async def _agent_turn(
        self,
        agent: AgentConfig,
        context: SimulationContext,
        round_num: int,
        now: int,
    ) -> AgentActionRecord:
        """Decide and apply one agent's action.

        Any failure other than an invariant violation becomes a failed WAIT
        for this agent only.
        """
        state = self.arbiter.get_state(agent.name)
        memory = self.memories[agent.name]
        holdings_before = state.holdings

        try:
            decision: DecisionResult = await self.decision_engine.decide(
                agent,
                context,
                copy.deepcopy(state),
                memory,
            )
            action: Action = decision.action
            outcome = self.arbiter.apply(agent.name, action, now)
        except InvariantViolation:
            raise
        except Exception as e:
            logger.error(
                f"{agent.name} turn failed: {e}",
                exc_info=True,
                extra={"agent": agent.name, "round": round_num},
            )
            action = wait_action(f"{type(e).__name__}: {e}")
            memory.record_action(round_num, action.action_type, False, str(e))
            self.tracer.trace_decision(
                round_num=round_num,
                agent_name=agent.name,
                model=agent.model,
                action_type=action.type,
                success=False,
                error=str(e),
            )
            return AgentActionRecord(
                agent_name=agent.name,
                model=agent.model,
                action_type=action.action_type,
                params={},
                reasoning="",
                thought="",
                confidence=0.0,
                success=False,
                error_code=FailureCode.DECISION_FAILED,
                error=str(e),
                decision_error=str(e),
            )

        self.tracer.trace_decision(
            round_num=round_num,
            agent_name=agent.name,
            model=agent.model,
            action_type=action.type,
            success=decision.success,
            attempts=decision.attempts,
            latency_ms=decision.latency_ms,
            error=decision.error,
            thought=decision.thought,
            raw_response=decision.raw_response,
        )

        params = action.params()
        signature = None
        if outcome.success and outcome.action_type in STATE_CHANGING_ACTIONS:
            signature = await self._submit_to_ledger(agent.name, outcome.action_type.value, params)

        memory.record_action(
            round_num,
            outcome.action_type,
            outcome.success,
            outcome.error or action.reasoning,
        )

        self.tracer.trace_action(
            round_num=round_num,
            agent_name=agent.name,
            action_type=outcome.action_type.value,
            params=params,
            success=outcome.success,
            error_code=outcome.error_code.value if outcome.error_code else None,
            error=outcome.error,
            holdings_before=holdings_before,
            holdings_after=state.holdings,
            signature=signature,
        )

        return AgentActionRecord(
            agent_name=agent.name,
            model=agent.model,
            action_type=outcome.action_type,
            params=params,
            reasoning=action.reasoning,
            thought=decision.thought,
            confidence=action.confidence,
            success=outcome.success,
            error_code=outcome.error_code,
            error=outcome.error,
            details=outcome.details,
            signature=signature,
            decision_error=decision.error,
            attempts=decision.attempts,
            latency_ms=decision.latency_ms,
        )

    async def _submit_to_ledger(self, agent_name: str, action_type: str, params: dict) -> str | None:
        """Mirror an applied action to the ledger; failures never touch simulated state."""
        try:
            return await self.ledger.submit(agent_name, action_type, params)
        except Exception as e:
            logger.warning(
                f"Ledger submission failed for {agent_name} {action_type}: {e}",
                extra={"agent": agent_name, "action": action_type},
            )
            return None

    def _resolve_random_market(self, round_num: int, now: int) -> ResolutionRecord:
        """Force-resolve one unresolved market, settle it and seed a replacement."""
        candidates = self.arbiter.unresolved_markets()
        market = candidates[self.rng.randrange(len(candidates))]

        p_yes = yes_win_probability(market.yes_pool, market.no_pool, self.config.underdog_bias)
        outcome = "yes" if self.rng.random() < p_yes else "no"
        spread = max(1, min(market.target_value, ACTUAL_VALUE_SPREAD))
        if outcome == "yes":
            actual_value = market.target_value + self.rng.randrange(spread)
        else:
            actual_value = max(0, market.target_value - self.rng.randint(1, spread))

        logger.info(
            f"Resolving {market.market_id} ({market.protocol_id}): "
            f"{outcome.upper()} at {yes_ratio_pct(market.yes_pool, market.no_pool)}% YES",
            extra={"market": market.market_id, "p_yes": round(p_yes, 4)},
        )

        self.arbiter.resolve_market(market.market_id, outcome, actual_value)
        settlements = self.arbiter.settle_market(market.market_id)
        creator, creator_fee = self.arbiter.pay_creator_fee(market.market_id)

        for record in settlements:
            self.memories[record.agent_name].record_settlement(
                record.market_id, record.side, record.won, record.pnl
            )

        replacement = self._seed_replacement_market(now)

        self.tracer.trace_settlement(
            round_num=round_num,
            market_id=market.market_id,
            outcome=outcome,
            yes_probability=p_yes,
            settlements=[asdict(s) for s in settlements],
            creator=creator,
            creator_fee=creator_fee,
        )

        return ResolutionRecord(
            market_id=market.market_id,
            description=market.description,
            outcome=outcome,
            actual_value=actual_value,
            yes_pool=market.yes_pool,
            no_pool=market.no_pool,
            yes_probability=p_yes,
            settlements=settlements,
            creator=creator,
            creator_fee=creator_fee,
            replacement_market_id=replacement.market_id,
        )

    def _seed_replacement_market(self, now: int) -> MarketInfo:
        protocol_id = PROTOCOL_IDS[self.rng.randrange(len(PROTOCOL_IDS))]
        metrics = list(MetricType)[:5]
        return self.arbiter.seed_market(
            protocol_id=protocol_id,
            metric_type=metrics[self.rng.randrange(len(metrics))],
            target_value=self.rng.randrange(1, REPLACEMENT_MAX_TARGET),
            resolution_time=now + REPLACEMENT_RESOLUTION_SECONDS,
            description=f"New market for {protocol_id}",
            now=now,
            yes_pool=self.rng.randrange(REPLACEMENT_MAX_POOL_TOKENS) * TOKEN_UNIT,
            no_pool=self.rng.randrange(REPLACEMENT_MAX_POOL_TOKENS) * TOKEN_UNIT,
        )
