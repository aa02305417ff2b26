"""Data models for the IDL Arena simulation.

This module defines the core data structures used throughout the simulation:
- AgentConfig: A competing agent's model and persona
- AgentState: An agent's balances, stake, lock and open bets
- MarketInfo: A parimutuel prediction market
- SimulationContext: Read-only snapshot handed to agents each round
- RoundResult: What happened in one round
- SimulationConfig: Configuration for running a simulation
- SimulationStatus: Real-time status of a running simulation
- SimulationResult: Final results and standings

All token amounts are integers in base units (6 decimals).
"""

import copy
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

Side = Literal["yes", "no"]
RiskTolerance = Literal["low", "medium", "high", "extreme"]


class ActionType(str, Enum):
    """Actions an agent can propose."""
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    LOCK_VE = "LOCK_VE"
    UNLOCK_VE = "UNLOCK_VE"
    CREATE_MARKET = "CREATE_MARKET"
    PLACE_BET = "PLACE_BET"
    CLAIM_WINNINGS = "CLAIM_WINNINGS"
    WAIT = "WAIT"
    ANALYZE = "ANALYZE"


# Actions that change ledger state and are forwarded to the ledger boundary
STATE_CHANGING_ACTIONS = frozenset({
    ActionType.STAKE,
    ActionType.UNSTAKE,
    ActionType.LOCK_VE,
    ActionType.UNLOCK_VE,
    ActionType.CREATE_MARKET,
    ActionType.PLACE_BET,
    ActionType.CLAIM_WINNINGS,
})


class FailureCode(str, Enum):
    """Tagged reasons an action was rejected."""
    INVALID_AMOUNT = "InvalidAmount"
    INSUFFICIENT_STAKE = "InsufficientStake"
    TOKENS_LOCKED = "TokensLocked"
    INVALID_LOCK_DURATION = "InvalidLockDuration"
    LOCK_NOT_EXPIRED = "LockNotExpired"
    INVALID_TIMESTAMP = "InvalidTimestamp"
    INVALID_INPUT = "InvalidInput"
    MARKET_NOT_FOUND = "MarketNotFound"
    MARKET_RESOLVED = "MarketResolved"
    MARKET_NOT_RESOLVED = "MarketNotResolved"
    BETTING_CLOSED = "BettingClosed"
    BET_NOT_FOUND = "BetNotFound"
    BET_LOST = "BetLost"
    UNKNOWN_AGENT = "UnknownAgent"
    DECISION_FAILED = "DecisionFailed"


class MetricType(str, Enum):
    """Protocol metric a market predicts."""
    TVL = "TVL"
    VOLUME_24H = "VOLUME_24H"
    USERS = "USERS"
    TRANSACTIONS = "TRANSACTIONS"
    PRICE = "PRICE"
    MARKET_CAP = "MARKET_CAP"
    CUSTOM = "CUSTOM"


@dataclass
class AgentConfig:
    """A competing agent.

    Attributes:
        name: Display name, unique within a simulation
        model: OpenRouter model identifier
        personality: Persona description included in the prompt
        strategy: Strategy text included in the prompt
        risk_tolerance: Drives sampling temperature and mock sizing
        style: Heuristic used in mock mode
    """
    name: str
    model: str
    personality: str
    strategy: str
    risk_tolerance: RiskTolerance = "medium"
    style: str = "value"


@dataclass
class BetPosition:
    """An open bet held by one agent.

    Attributes:
        bet_id: Unique id, "<market_id>-<nonce>"
        market_id: Market the bet is placed on
        amount: Principal debited from the agent
        effective_amount: Principal plus staking bonus, added to the pool
        side: "yes" or "no"
        nonce: Uniqueness salt within the market
        placed_at: Simulation timestamp of placement
    """
    bet_id: str
    market_id: str
    amount: int
    effective_amount: int
    side: Side
    nonce: int
    placed_at: int = 0


@dataclass
class AgentState:
    """An agent's complete economic state.

    Attributes:
        name: Agent name
        initial_balance: Starting liquid balance for ROI calculation
        liquid_balance: Spendable tokens
        staked_amount: Tokens staked in the protocol
        locked_stake: Portion of the stake locked for vote-escrow
        ve_amount: Vote-escrow power
        lock_end_time: Unix timestamp the lock expires (0 = never locked)
        open_bets: Open positions in placement order
        total_pnl: Realized profit/loss over the run
        round_pnl: Realized profit/loss in the current round
        total_bets: Bets placed
        won_bets: Bets settled as winners
        settled_bets: Bets settled either way
        total_bet_amount: Sum of principals wagered
    """
    name: str
    initial_balance: int
    liquid_balance: int
    staked_amount: int = 0
    locked_stake: int = 0
    ve_amount: int = 0
    lock_end_time: int = 0
    open_bets: list[BetPosition] = field(default_factory=list)
    total_pnl: int = 0
    round_pnl: int = 0
    total_bets: int = 0
    won_bets: int = 0
    settled_bets: int = 0
    total_bet_amount: int = 0

    @property
    def holdings(self) -> int:
        """Liquid plus staked tokens."""
        return self.liquid_balance + self.staked_amount

    def find_bet(self, bet_id: str) -> BetPosition | None:
        for bet in self.open_bets:
            if bet.bet_id == bet_id:
                return bet
        return None


@dataclass
class AgentMemory:
    """Bounded history fed back into an agent's prompt."""
    recent_actions: deque = field(default_factory=lambda: deque(maxlen=20))
    market_history: deque = field(default_factory=lambda: deque(maxlen=30))
    winning_strategies: deque = field(default_factory=lambda: deque(maxlen=10))
    losing_strategies: deque = field(default_factory=lambda: deque(maxlen=10))

    def record_action(self, round_num: int, action_type: ActionType, success: bool, note: str = "") -> None:
        self.recent_actions.append({
            "round": round_num,
            "action": action_type.value,
            "success": success,
            "note": note,
        })

    def record_settlement(self, market_id: str, side: Side, won: bool, pnl: int) -> None:
        self.market_history.append({
            "market_id": market_id,
            "side": side,
            "won": won,
            "pnl": pnl,
        })
        label = f"bet {side.upper()} on {market_id}"
        if won:
            self.winning_strategies.append(label)
        else:
            self.losing_strategies.append(label)


@dataclass
class MarketInfo:
    """A parimutuel prediction market on a protocol metric.

    Attributes:
        market_id: Unique market id
        protocol_id: Protocol the market is about (1-32 chars)
        metric_type: Metric being predicted
        target_value: Threshold the metric must reach for YES
        resolution_time: Unix timestamp betting closes and resolution is due
        description: Question text (<=200 chars)
        yes_pool: Effective amount staked on YES
        no_pool: Effective amount staked on NO
        creator: Creating agent, None for seeded markets
        resolved: Whether the market is resolved
        outcome: Winning side once resolved
        actual_value: Observed metric value at resolution
        created_at: Unix timestamp of creation
        bet_count: Bets placed, also the next bet nonce
    """
    market_id: str
    protocol_id: str
    metric_type: MetricType
    target_value: int
    resolution_time: int
    description: str
    yes_pool: int = 0
    no_pool: int = 0
    creator: str | None = None
    resolved: bool = False
    outcome: Side | None = None
    actual_value: int | None = None
    created_at: int = 0
    bet_count: int = 0

    @property
    def total_pool(self) -> int:
        return self.yes_pool + self.no_pool


@dataclass
class ProtocolTotals:
    """Protocol-wide bookkeeping.

    Attributes:
        total_staked: Sum of all agents' stakes
        total_ve_supply: Sum of all agents' vote-escrow power
        reward_pool: Staker share of collected fees
        treasury: Treasury share of collected fees
        total_burned: Burned share of collected fees
        creator_fees_paid: Fees paid out to market creators
        total_fees_collected: All fees taken on winning claims
    """
    total_staked: int = 0
    total_ve_supply: int = 0
    reward_pool: int = 0
    treasury: int = 0
    total_burned: int = 0
    creator_fees_paid: int = 0
    total_fees_collected: int = 0


@dataclass
class CompetitorSummary:
    """What an agent can see about another agent."""
    name: str
    total_pnl: int
    staked_amount: int
    open_bets: int


@dataclass
class SimulationContext:
    """Snapshot shared by all agents within a round.

    Built once per round from deep copies, so no agent observes another
    agent's in-round actions.
    """
    round: int
    timestamp: int
    markets: list[MarketInfo]
    protocol: ProtocolTotals
    competitors: list[CompetitorSummary]

    @classmethod
    def snapshot(
        cls,
        round_num: int,
        timestamp: int,
        markets: list[MarketInfo],
        protocol: ProtocolTotals,
        competitors: list[CompetitorSummary],
    ) -> "SimulationContext":
        return cls(
            round=round_num,
            timestamp=timestamp,
            markets=copy.deepcopy(markets),
            protocol=copy.deepcopy(protocol),
            competitors=copy.deepcopy(competitors),
        )


@dataclass
class ActionOutcome:
    """Result of applying one action.

    Attributes:
        success: Whether the transition was applied
        action_type: The action attempted
        error_code: Tagged failure reason
        error: Human-readable failure message
        details: Transition details (amounts credited, ids created)
    """
    success: bool
    action_type: ActionType
    error_code: FailureCode | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentActionRecord:
    """One agent's turn within a round."""
    agent_name: str
    model: str
    action_type: ActionType
    params: dict[str, Any]
    reasoning: str
    thought: str
    confidence: float
    success: bool
    error_code: FailureCode | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    signature: str | None = None
    decision_error: str | None = None
    attempts: int = 0
    latency_ms: int = 0


@dataclass
class SettlementRecord:
    """A bet settled at market resolution."""
    agent_name: str
    bet_id: str
    market_id: str
    side: Side
    amount: int
    won: bool
    payout: int
    fee: int
    pnl: int


@dataclass
class ResolutionRecord:
    """A forced market resolution and its consequences."""
    market_id: str
    description: str
    outcome: Side
    actual_value: int
    yes_pool: int
    no_pool: int
    yes_probability: float
    settlements: list[SettlementRecord] = field(default_factory=list)
    creator: str | None = None
    creator_fee: int = 0
    replacement_market_id: str | None = None


@dataclass
class LeaderboardEntry:
    """An agent's ranking at a point in time."""
    rank: int
    name: str
    total_pnl: int
    round_pnl: int
    liquid_balance: int
    staked_amount: int
    ve_amount: int
    open_bets: int


@dataclass
class RoundResult:
    """Everything that happened in one round."""
    round: int
    timestamp: int
    actions: list[AgentActionRecord] = field(default_factory=list)
    leaderboard: list[LeaderboardEntry] = field(default_factory=list)
    resolution: ResolutionRecord | None = None


@dataclass
class FinalStanding:
    """An agent's final ranked summary.

    Attributes:
        rank: 1-based rank by total PnL
        name: Agent name
        model: Model identifier
        total_pnl: Realized profit/loss
        roi: total_pnl / initial_balance
        win_rate: won_bets / settled_bets
        total_bets: Bets placed
        won_bets: Bets won
        settled_bets: Bets settled
        avg_bet_size: total_bet_amount // total_bets
        final_holdings: Liquid plus staked at the end of the run
    """
    rank: int
    name: str
    model: str
    total_pnl: int
    roi: float
    win_rate: float
    total_bets: int
    won_bets: int
    settled_bets: int
    avg_bet_size: int
    final_holdings: int


@dataclass
class SimulationConfig:
    """Configuration for running an arena simulation.

    Attributes:
        rounds: Number of rounds to play
        round_delay: Seconds to sleep between rounds
        agent_delay: Seconds to sleep between agents within a round
        initial_balance: Starting liquid balance per agent (base units)
        resolution_interval: Force-resolve a market every N rounds
        underdog_bias: Weight favoring the minority side at resolution
        max_perturbation: Upper bound (exclusive, whole tokens) of per-round pool noise
        seed: Seed for the simulation RNG (None = nondeterministic)
        mock: Use heuristic policies instead of the LLM service
        decision_timeout: Seconds allowed per decision call
        decision_max_retries: Attempts per decision
        decision_retry_backoff: Initial backoff seconds, doubled per retry
        output_dir: Directory for the result artifact (None = don't save)
    """
    rounds: int = 10
    round_delay: float = 2.0
    agent_delay: float = 0.5
    initial_balance: int = 10_000_000_000  # 10,000 tokens
    resolution_interval: int = 3
    underdog_bias: float = 0.3
    max_perturbation: int = 100
    seed: int | None = None
    mock: bool = False
    decision_timeout: float = 5.0
    decision_max_retries: int = 3
    decision_retry_backoff: float = 1.0
    output_dir: str | None = "results"


@dataclass
class SimulationStatus:
    """Real-time status of a running simulation.

    Attributes:
        simulation_id: Unique simulation identifier
        status: Current state
        current_round: Round being played (0 before the first round)
        total_rounds: Rounds configured
        current_agent: Agent currently deciding
        leaderboard: Latest leaderboard
        recent_actions: Last N agent turns
        elapsed_time: Seconds since start
        error_message: Set when status is "error"
    """
    simulation_id: str
    status: Literal["initializing", "running", "stopped", "completed", "error"]
    current_round: int
    total_rounds: int
    current_agent: str | None
    leaderboard: list[LeaderboardEntry]
    recent_actions: list[AgentActionRecord]
    elapsed_time: float
    error_message: str | None = None


@dataclass
class SimulationResult:
    """Final results of a completed simulation.

    Attributes:
        simulation_id: Unique simulation identifier
        config: The configuration used
        agents: Competing agents in declaration order
        start_time: When simulation started
        end_time: When simulation completed
        rounds: Every round's result
        final_standings: Ranked summary
        winner: Name of the top-ranked agent
        artifact_path: Where the result artifact was written, if it was
    """
    simulation_id: str
    config: SimulationConfig
    agents: list[AgentConfig]
    start_time: datetime
    end_time: datetime
    rounds: list[RoundResult]
    final_standings: list[FinalStanding]
    winner: str | None
    artifact_path: str | None = None
