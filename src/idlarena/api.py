"""IDL Arena API Endpoints.

This module provides FastAPI endpoints for the arena simulation:
- POST /api/arena/start - Start a new simulation
- GET /api/arena/status - Get current simulation status
- POST /api/arena/stop - Stop a running simulation
- GET /api/arena/results - Get final results
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .economics import TOKEN_UNIT
from .models import SimulationConfig, SimulationResult
from .reporting import build_final_standings, get_winner, to_dict, to_jsonable
from .simulation import ArenaSimulation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/arena", tags=["Arena"])

# Global simulation state
_current_simulation: ArenaSimulation | None = None
_simulation_task: asyncio.Task | None = None
_simulation_result: SimulationResult | None = None
_llm_client: Any = None
_results_dir: str | None = "results"


def set_llm_client(client: Any) -> None:
    """Set the LLM client for simulations."""
    global _llm_client
    _llm_client = client


def set_results_dir(results_dir: str | None) -> None:
    """Set where simulation artifacts are written."""
    global _results_dir
    _results_dir = results_dir


class StartSimulationRequest(BaseModel):
    """Request to start a new simulation."""
    rounds: int = Field(default=10, ge=1, description="Number of rounds to play")
    round_delay: float = Field(default=2.0, ge=0, description="Seconds between rounds")
    agent_delay: float = Field(default=0.5, ge=0, description="Seconds between agents")
    initial_balance: int = Field(
        default=10_000,
        ge=0,
        description="Starting balance per agent in whole IDL tokens",
    )
    resolution_interval: int = Field(
        default=3,
        ge=1,
        description="Force-resolve a market every N rounds",
    )
    underdog_bias: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Weight favoring the minority side at resolution",
    )
    seed: int | None = Field(default=None, description="Seed for reproducible runs")
    mock: bool = Field(default=False, description="Use heuristic agents instead of LLMs")
    save_results: bool = Field(default=True, description="Write the JSON artifact")


class SimulationStatusResponse(BaseModel):
    """Response containing simulation status."""
    simulation_id: str
    status: str
    current_round: int
    total_rounds: int
    current_agent: str | None
    elapsed_time: float
    leaderboard: list[dict]
    recent_actions: list[dict]
    error_message: str | None


class SimulationResultsResponse(BaseModel):
    """Response containing simulation results."""
    simulation_id: str
    status: str
    rounds_played: int
    final_standings: list[dict]
    winner: str | None
    start_time: str | None
    end_time: str | None
    artifact_path: str | None = None


@router.post("/start", response_model=dict)
async def start_simulation(request: StartSimulationRequest):
    """Start a new arena simulation.

    The simulation runs in the background; poll /status for progress.
    """
    global _current_simulation, _simulation_task, _simulation_result

    if _simulation_task is not None and not _simulation_task.done():
        raise HTTPException(
            status_code=400,
            detail="A simulation is already running. Stop it first.",
        )

    if not request.mock and _llm_client is None:
        raise HTTPException(
            status_code=500,
            detail="LLM client not initialized",
        )

    config = SimulationConfig(
        rounds=request.rounds,
        round_delay=request.round_delay,
        agent_delay=request.agent_delay,
        initial_balance=request.initial_balance * TOKEN_UNIT,
        resolution_interval=request.resolution_interval,
        underdog_bias=request.underdog_bias,
        seed=request.seed,
        mock=request.mock,
        output_dir=_results_dir if request.save_results else None,
    )

    simulation = ArenaSimulation(config=config, llm_client=_llm_client)
    _current_simulation = simulation
    _simulation_result = None

    async def run_simulation():
        global _simulation_result
        try:
            result = await simulation.run()
            _simulation_result = result
            logger.info(f"Simulation {result.simulation_id} finished")
        except Exception as e:
            logger.error(f"Simulation failed: {e}", exc_info=True)

    _simulation_task = asyncio.create_task(run_simulation())

    logger.info(
        f"Simulation {simulation.simulation_id} started",
        extra={"rounds": request.rounds, "mock": request.mock},
    )

    return {
        "simulation_id": simulation.simulation_id,
        "status": "started",
        "message": "Simulation started in background",
    }


@router.get("/status", response_model=SimulationStatusResponse)
async def get_status():
    """Get the current simulation status."""
    if _current_simulation is None:
        return SimulationStatusResponse(
            simulation_id="none",
            status="no_simulation",
            current_round=0,
            total_rounds=0,
            current_agent=None,
            elapsed_time=0,
            leaderboard=[],
            recent_actions=[],
            error_message=None,
        )

    status = _current_simulation.get_status()

    return SimulationStatusResponse(
        simulation_id=status.simulation_id,
        status=status.status,
        current_round=status.current_round,
        total_rounds=status.total_rounds,
        current_agent=status.current_agent,
        elapsed_time=status.elapsed_time,
        leaderboard=to_jsonable(status.leaderboard),
        recent_actions=[
            {
                "agent_name": a.agent_name,
                "action_type": a.action_type.value,
                "success": a.success,
                "error_code": a.error_code.value if a.error_code else None,
                "confidence": a.confidence,
                "reasoning": a.reasoning[:100] + "..." if len(a.reasoning) > 100 else a.reasoning,
            }
            for a in status.recent_actions
        ],
        error_message=status.error_message,
    )


@router.post("/stop")
async def stop_simulation():
    """Stop a running simulation after its current round."""
    if _current_simulation is None:
        raise HTTPException(
            status_code=400,
            detail="No simulation is running",
        )

    _current_simulation.stop()

    # Wait briefly for the task to acknowledge the stop
    if _simulation_task and not _simulation_task.done():
        try:
            await asyncio.wait_for(asyncio.shield(_simulation_task), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Simulation did not stop within timeout")

    return {
        "status": "stopped",
        "message": "Simulation stop requested",
    }


@router.get("/results", response_model=SimulationResultsResponse)
async def get_results():
    """Get the final results of a finished simulation."""
    if _current_simulation is None:
        raise HTTPException(
            status_code=400,
            detail="No simulation has been run",
        )

    status = _current_simulation.get_status()

    if status.status not in ("completed", "stopped", "error"):
        return SimulationResultsResponse(
            simulation_id=status.simulation_id,
            status=status.status,
            rounds_played=len(_current_simulation.rounds),
            final_standings=[],
            winner=None,
            start_time=None,
            end_time=None,
        )

    if _simulation_result is None:
        # Errored runs have no result object; rank the state as it stands
        standings = build_final_standings(
            _current_simulation.arbiter.get_all_states(),
            _current_simulation.agents,
        )
        return SimulationResultsResponse(
            simulation_id=status.simulation_id,
            status=status.status,
            rounds_played=len(_current_simulation.rounds),
            final_standings=to_dict(standings),
            winner=get_winner(standings),
            start_time=None,
            end_time=None,
        )

    return SimulationResultsResponse(
        simulation_id=_simulation_result.simulation_id,
        status=status.status,
        rounds_played=len(_simulation_result.rounds),
        final_standings=to_dict(_simulation_result.final_standings),
        winner=_simulation_result.winner,
        start_time=_simulation_result.start_time.isoformat(),
        end_time=_simulation_result.end_time.isoformat(),
        artifact_path=_simulation_result.artifact_path,
    )
