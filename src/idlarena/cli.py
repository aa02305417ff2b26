"""Command line entry point.

    idl-arena run --rounds 10 --mock --seed 7
    idl-arena serve
"""

import argparse
import asyncio
import logging
import sys

from llm_service.config import configure_logging, get_settings

from .economics import TOKEN_UNIT
from .errors import ArenaError
from .models import SimulationConfig
from .reporting import generate_report
from .simulation import ArenaSimulation

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idl-arena",
        description="Multi-agent staking and prediction-market arena",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a simulation to completion")
    run.add_argument("--rounds", type=int, default=10, help="Number of rounds to play")
    run.add_argument("--delay", type=float, default=2.0, help="Delay between rounds in seconds")
    run.add_argument("--balance", type=int, default=10_000, help="Starting balance per agent in IDL tokens")
    run.add_argument("--mock", action="store_true", help="Use heuristic agents instead of LLM calls")
    run.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs")
    run.add_argument("--debug", action="store_true", help="Enable debug logging")
    run.add_argument("--output", type=str, default=None, help="Directory for the result artifact")
    run.add_argument("--no-save", action="store_true", help="Skip writing the result artifact")

    subparsers.add_parser("serve", help="Run the HTTP API")

    return parser


def run_simulation(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings, level="DEBUG" if args.debug else None)

    if args.rounds < 1:
        print("--rounds must be at least 1", file=sys.stderr)
        return 2
    if args.balance < 0:
        print("--balance must be non-negative", file=sys.stderr)
        return 2

    llm_client = None
    if not args.mock:
        if not settings.openrouter_api_key:
            print("OPENROUTER_API_KEY is not set; use --mock to run without an LLM backend", file=sys.stderr)
            return 1
        from llm_service.llm.client import LLMClient
        llm_client = LLMClient(settings)

    config = SimulationConfig(
        rounds=args.rounds,
        round_delay=args.delay,
        agent_delay=0.0 if args.mock else settings.agent_delay_seconds,
        initial_balance=args.balance * TOKEN_UNIT,
        seed=args.seed,
        mock=args.mock,
        decision_timeout=settings.decision_timeout_seconds,
        decision_max_retries=settings.decision_max_retries,
        decision_retry_backoff=settings.decision_retry_backoff_seconds,
        output_dir=None if args.no_save else (args.output or settings.results_dir),
    )

    simulation = ArenaSimulation(config=config, llm_client=llm_client)
    try:
        result = asyncio.run(simulation.run())
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except ArenaError as e:
        print(f"Simulation aborted: {e}", file=sys.stderr)
        return 1

    print(generate_report(result.final_standings, rounds_played=len(result.rounds)))
    if result.artifact_path:
        print(f"Results saved to {result.artifact_path}")
    return 0


def serve(args: argparse.Namespace) -> int:
    from llm_service.main import main as serve_main

    serve_main()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "run":
        return run_simulation(args)
    return serve(args)
