"""Reporting for the IDL Arena.

Pure functions over agent state and round results:
- Leaderboard (total PnL descending, ties by declaration order)
- Final standings (ROI, win rate, average bet size)
- Winner selection and a text report
- JSON-ready serialization with token amounts as decimal strings
"""

from collections import deque
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .economics import format_tokens
from .models import AgentConfig, AgentState, FinalStanding, LeaderboardEntry

# Keys holding token amounts; serialized as strings to survive JSON consumers
AMOUNT_KEYS = frozenset({
    "liquid_balance",
    "staked_amount",
    "locked_stake",
    "ve_amount",
    "total_pnl",
    "round_pnl",
    "initial_balance",
    "amount",
    "effective_amount",
    "yes_pool",
    "no_pool",
    "target_value",
    "actual_value",
    "payout",
    "fee",
    "pnl",
    "total_bet_amount",
    "avg_bet_size",
    "final_holdings",
    "holdings_before",
    "holdings_after",
    "creator_fee",
    "total_staked",
    "total_ve_supply",
    "reward_pool",
    "treasury",
    "total_burned",
    "creator_fees_paid",
    "total_fees_collected",
    "released_ve",
})


def calculate_leaderboard(states: list[AgentState]) -> list[LeaderboardEntry]:
    """Rank agents by total PnL.

    Args:
        states: Agent states in declaration order

    Returns:
        Leaderboard, best first; sorted() is stable so ties keep declaration order
    """
    ranked = sorted(states, key=lambda s: -s.total_pnl)
    return [
        LeaderboardEntry(
            rank=rank,
            name=s.name,
            total_pnl=s.total_pnl,
            round_pnl=s.round_pnl,
            liquid_balance=s.liquid_balance,
            staked_amount=s.staked_amount,
            ve_amount=s.ve_amount,
            open_bets=len(s.open_bets),
        )
        for rank, s in enumerate(ranked, 1)
    ]


def calculate_roi(state: AgentState) -> float:
    """ROI = total PnL / initial balance."""
    if state.initial_balance == 0:
        return 0.0
    return state.total_pnl / state.initial_balance


def calculate_win_rate(state: AgentState) -> float:
    """Won bets over settled bets; open bets don't count against the agent."""
    if state.settled_bets == 0:
        return 0.0
    return state.won_bets / state.settled_bets


def calculate_avg_bet_size(state: AgentState) -> int:
    if state.total_bets == 0:
        return 0
    return state.total_bet_amount // state.total_bets


def build_final_standings(
    states: list[AgentState],
    agents: list[AgentConfig],
) -> list[FinalStanding]:
    """Build the final ranked summary.

    Args:
        states: Agent states in declaration order
        agents: Agent configs, for model names

    Returns:
        Standings sorted by total PnL (best first)
    """
    models = {a.name: a.model for a in agents}
    by_name = {s.name: s for s in states}

    standings = []
    for entry in calculate_leaderboard(states):
        state = by_name[entry.name]
        standings.append(FinalStanding(
            rank=entry.rank,
            name=state.name,
            model=models.get(state.name, ""),
            total_pnl=state.total_pnl,
            roi=calculate_roi(state),
            win_rate=calculate_win_rate(state),
            total_bets=state.total_bets,
            won_bets=state.won_bets,
            settled_bets=state.settled_bets,
            avg_bet_size=calculate_avg_bet_size(state),
            final_holdings=state.holdings,
        ))
    return standings


def get_winner(standings: list[FinalStanding]) -> str | None:
    """Name of the top-ranked agent, None when nobody competed."""
    return standings[0].name if standings else None


def generate_report(standings: list[FinalStanding], rounds_played: int | None = None) -> str:
    """Generate a text report of final standings.

    Args:
        standings: Final standings (sorted)
        rounds_played: Rounds completed, shown in the header when given

    Returns:
        Formatted report string
    """
    lines = [
        "=" * 60,
        "IDL ARENA RESULTS",
        "=" * 60,
    ]
    if rounds_played is not None:
        lines.append(f"Rounds played: {rounds_played}")
    lines.append("")

    for s in standings:
        lines.extend([
            f"#{s.rank} {s.name} ({s.model})",
            f"  Total PnL: {format_tokens(s.total_pnl)} IDL",
            f"  ROI: {s.roi:+.2%}",
            f"  Win Rate: {s.win_rate:.1%} ({s.won_bets}/{s.settled_bets} settled)",
            f"  Total Bets: {s.total_bets}",
            f"  Avg Bet Size: {format_tokens(s.avg_bet_size)} IDL",
            f"  Final Holdings: {format_tokens(s.final_holdings)} IDL",
            "",
        ])

    winner = get_winner(standings)
    if winner:
        lines.append(f"WINNER: {winner}")
    lines.append("=" * 60)

    return "\n".join(lines)


def to_jsonable(obj: Any, key: str | None = None) -> Any:
    """Recursively convert dataclasses, enums and datetimes for JSON.

    Integer values under a token-amount key become decimal strings.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name), f.name) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v, str(k)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, deque)):
        return [to_jsonable(item, key) for item in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, bool) or obj is None:
        return obj
    if isinstance(obj, int) and key in AMOUNT_KEYS:
        return str(obj)
    return obj


def to_dict(standings: list[FinalStanding]) -> list[dict]:
    """Convert standings to list of dicts for JSON serialization."""
    return [to_jsonable(s) for s in standings]
