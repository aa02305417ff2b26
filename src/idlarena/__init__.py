"""IDL Arena - Multi-agent staking and prediction-market simulator.

LLM-driven agents compete over a fixed number of rounds by staking,
locking for vote-escrow, creating parimutuel markets, betting and claiming
winnings. The simulator owns the full economic model.
"""

from .actions import Action, parse_action
from .agents import AGENT_CONFIGS
from .arbiter import ActionArbiter
from .decision import AgentDecisionEngine, DecisionResult
from .errors import ActionRejected, ArenaError, ArithmeticOverflow, InvariantViolation
from .ledger import LedgerClient, SimulatedLedger
from .mock import MockDecisionEngine
from .models import (
    ActionType,
    AgentConfig,
    AgentState,
    FailureCode,
    MarketInfo,
    MetricType,
    RoundResult,
    SimulationConfig,
    SimulationContext,
    SimulationResult,
    SimulationStatus,
)
from .simulation import ArenaSimulation
from .tracing import SimulationTrace, SimulationTracer

__all__ = [
    # Models
    "ActionType",
    "AgentConfig",
    "AgentState",
    "FailureCode",
    "MarketInfo",
    "MetricType",
    "RoundResult",
    "SimulationConfig",
    "SimulationContext",
    "SimulationResult",
    "SimulationStatus",
    # Actions
    "Action",
    "parse_action",
    # Errors
    "ArenaError",
    "ActionRejected",
    "InvariantViolation",
    "ArithmeticOverflow",
    # Engines
    "ActionArbiter",
    "AgentDecisionEngine",
    "DecisionResult",
    "MockDecisionEngine",
    "ArenaSimulation",
    "AGENT_CONFIGS",
    # Ledger
    "LedgerClient",
    "SimulatedLedger",
    # Tracing
    "SimulationTracer",
    "SimulationTrace",
]
