"""Tracing and the result artifact for the IDL Arena.

This module captures every event of a run:
- Decision calls (attempts, latency, raw responses)
- Applied actions and their effect on the agent's holdings
- Market resolutions and settlements

At the end of a run the trace, every round's result and the final
standings are written as a single JSON artifact. Token amounts are written
as decimal strings.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .reporting import to_jsonable

logger = logging.getLogger(__name__)


@dataclass
class DecisionTrace:
    """Trace of a single agent decision."""
    trace_id: str
    timestamp: str
    round: int
    agent_name: str
    model: str
    action_type: str
    success: bool
    attempts: int
    latency_ms: int
    error: str | None
    thought: str
    raw_response: str


@dataclass
class ActionTrace:
    """Trace of an action applied by the arbiter."""
    trace_id: str
    timestamp: str
    round: int
    agent_name: str
    action_type: str
    params: dict
    success: bool
    error_code: str | None
    error: str | None
    holdings_before: int
    holdings_after: int
    signature: str | None


@dataclass
class SettlementTrace:
    """Trace of a forced market resolution."""
    trace_id: str
    timestamp: str
    round: int
    market_id: str
    outcome: str
    yes_probability: float
    settlements: list[dict]
    creator: str | None
    creator_fee: int


@dataclass
class SimulationTrace:
    """Complete trace of a simulation run."""
    simulation_id: str
    start_time: str
    end_time: str | None
    status: str

    config: dict
    agents: list[dict] = field(default_factory=list)

    decisions: list[DecisionTrace] = field(default_factory=list)
    actions: list[ActionTrace] = field(default_factory=list)
    settlements: list[SettlementTrace] = field(default_factory=list)
    rounds: list[Any] = field(default_factory=list)

    total_decisions: int = 0
    failed_decisions: int = 0
    total_latency_ms: int = 0

    final_standings: list[dict] = field(default_factory=list)
    winner: str | None = None
    error: str | None = None


class SimulationTracer:
    """Tracer for capturing all simulation events and writing the artifact."""

    def __init__(
        self,
        simulation_id: str,
        config: dict,
        agents: list[dict] | None = None,
        output_dir: Path | None = None,
    ):
        """Initialize the tracer.

        Args:
            simulation_id: Unique simulation identifier
            config: Simulation configuration dict
            agents: Agent configuration dicts
            output_dir: Directory to save the artifact (default: ./results)
        """
        self.simulation_id = simulation_id
        self.output_dir = output_dir or Path("results")

        self._trace_counter = 0

        self.trace = SimulationTrace(
            simulation_id=simulation_id,
            start_time=datetime.now(timezone.utc).isoformat(),
            end_time=None,
            status="running",
            config=config,
            agents=agents or [],
        )

    def _next_trace_id(self) -> str:
        self._trace_counter += 1
        return f"{self.simulation_id}-{self._trace_counter:06d}"

    def trace_decision(
        self,
        round_num: int,
        agent_name: str,
        model: str,
        action_type: str,
        success: bool,
        attempts: int = 0,
        latency_ms: int = 0,
        error: str | None = None,
        thought: str = "",
        raw_response: str = "",
    ) -> DecisionTrace:
        """Record a decision."""
        trace = DecisionTrace(
            trace_id=self._next_trace_id(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            round=round_num,
            agent_name=agent_name,
            model=model,
            action_type=action_type,
            success=success,
            attempts=attempts,
            latency_ms=latency_ms,
            error=error,
            thought=thought,
            raw_response=raw_response,
        )

        self.trace.decisions.append(trace)
        self.trace.total_decisions += 1
        self.trace.total_latency_ms += latency_ms
        if not success:
            self.trace.failed_decisions += 1

        logger.debug(
            f"Traced decision: {agent_name} -> {action_type}",
            extra={"trace_id": trace.trace_id},
        )

        return trace

    def trace_action(
        self,
        round_num: int,
        agent_name: str,
        action_type: str,
        params: dict,
        success: bool,
        error_code: str | None,
        error: str | None,
        holdings_before: int,
        holdings_after: int,
        signature: str | None = None,
    ) -> ActionTrace:
        """Record an applied (or rejected) action."""
        trace = ActionTrace(
            trace_id=self._next_trace_id(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            round=round_num,
            agent_name=agent_name,
            action_type=action_type,
            params=params,
            success=success,
            error_code=error_code,
            error=error,
            holdings_before=holdings_before,
            holdings_after=holdings_after,
            signature=signature,
        )

        self.trace.actions.append(trace)

        logger.debug(
            f"Traced action: {agent_name} {action_type} success={success}",
            extra={"trace_id": trace.trace_id},
        )

        return trace

    def trace_settlement(
        self,
        round_num: int,
        market_id: str,
        outcome: str,
        yes_probability: float,
        settlements: list[dict],
        creator: str | None,
        creator_fee: int,
    ) -> SettlementTrace:
        """Record a market resolution and its settlements."""
        trace = SettlementTrace(
            trace_id=self._next_trace_id(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            round=round_num,
            market_id=market_id,
            outcome=outcome,
            yes_probability=yes_probability,
            settlements=settlements,
            creator=creator,
            creator_fee=creator_fee,
        )

        self.trace.settlements.append(trace)

        logger.debug(
            f"Traced settlement: {market_id} -> {outcome}",
            extra={"trace_id": trace.trace_id},
        )

        return trace

    def record_round(self, round_result: Any) -> None:
        """Append a RoundResult to the artifact."""
        self.trace.rounds.append(round_result)

    def set_final_results(
        self,
        standings: list[dict],
        winner: str | None,
        status: str = "completed",
    ) -> None:
        """Set final simulation results."""
        self.trace.final_standings = standings
        self.trace.winner = winner
        self.trace.status = status
        self.trace.end_time = datetime.now(timezone.utc).isoformat()

    def set_error(self, error_message: str) -> None:
        """Mark simulation as errored."""
        self.trace.status = "error"
        self.trace.error = error_message
        self.trace.end_time = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return to_jsonable(self.trace)

    def save(self) -> Path:
        """Save the artifact to a JSON file.

        Returns:
            Path to saved file

        Raises:
            OSError: If the directory or file cannot be written
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = self.output_dir / f"run_{self.simulation_id}_{timestamp}.json"

        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(
            f"Saved simulation results to {filepath}",
            extra={
                "filepath": str(filepath),
                "rounds": len(self.trace.rounds),
                "decisions": self.trace.total_decisions,
            },
        )

        return filepath

    def get_summary(self) -> dict:
        """Get a summary of the trace."""
        return {
            "simulation_id": self.simulation_id,
            "status": self.trace.status,
            "start_time": self.trace.start_time,
            "end_time": self.trace.end_time,
            "rounds": len(self.trace.rounds),
            "total_decisions": self.trace.total_decisions,
            "failed_decisions": self.trace.failed_decisions,
            "avg_latency_ms": round(
                self.trace.total_latency_ms / max(1, self.trace.total_decisions), 2
            ),
            "actions_applied": len([a for a in self.trace.actions if a.success]),
            "markets_resolved": len(self.trace.settlements),
        }
