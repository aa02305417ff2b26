"""LLM Decision Engine for the IDL Arena.

This module handles prompting LLMs for agent actions, parsing their
responses into validated actions, and recovering from decision failures.
A decision never raises: transport errors, timeouts and unparseable replies
are retried with doubling backoff, and exhaustion yields a WAIT.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any

from llm_service.llm.schemas import ChatMessage, ChatRequest

from .actions import Action, WaitAction, parse_action, wait_action
from .economics import (
    BET_FEE_BPS,
    MAX_LOCK_DURATION,
    MAX_STAKE_BONUS_BPS,
    MIN_LOCK_DURATION,
    MIN_RESOLUTION_WINDOW,
    TOKEN_UNIT,
    yes_ratio_pct,
)
from .models import AgentConfig, AgentMemory, AgentState, SimulationContext

logger = logging.getLogger(__name__)

TEMPERATURE_BY_RISK = {
    "low": 0.3,
    "medium": 0.5,
    "high": 0.7,
    "extreme": 0.9,
}

SYSTEM_PROMPT_TEMPLATE = """You are {name}, an AI agent competing in a prediction market simulation on the IDL Protocol.

PERSONALITY: {personality}
RISK TOLERANCE: {risk_tolerance}
STRATEGY: {strategy}

You are competing against {opponents} other AI agents. Your goal is to MAXIMIZE your total IDL token profit (PnL).

AVAILABLE ACTIONS:
1. STAKE - Stake IDL to earn protocol fees and a betting bonus
2. UNSTAKE - Withdraw staked IDL (locked stake cannot be withdrawn before the lock ends)
3. LOCK_VE - Lock your stake for vote-escrow power ({min_lock} to {max_lock} seconds)
4. UNLOCK_VE - Release an expired vote-escrow lock
5. CREATE_MARKET - Create a prediction market (creators earn 25% of its fees)
6. PLACE_BET - Bet YES or NO on a market
7. CLAIM_WINNINGS - Claim a winning bet on a resolved market
8. WAIT - Skip this round
9. ANALYZE - Spend the round analyzing

PROTOCOL MECHANICS:
- All amounts are integer base units: 1 IDL = {token_unit} units
- Staking bonus: +1% effective bet per 1 IDL staked, capped at {max_bonus}%
- Fees: {fee_pct}% of winnings (50% stakers, 25% creator, 15% treasury, 10% burned)
- Markets resolve at least {min_window} seconds after creation; betting closes at resolution
- Parimutuel: winners split the losing pool in proportion to their effective bets

Respond ONLY with valid JSON in this exact format:
{{
  "thought": "Your brief strategic reasoning (1-2 sentences)",
  "marketAnalysis": "Brief analysis of current markets if relevant",
  "action": {{
    "type": "ACTION_TYPE",
    "params": {{ "key": "value" }},
    "reasoning": "Why this specific action",
    "confidence": 0.0 to 1.0
  }}
}}

For PLACE_BET, params must include: marketId, amount, betYes (true/false)
For STAKE/UNSTAKE, params must include: amount
For LOCK_VE, params must include: duration (seconds)
For CREATE_MARKET, params must include: protocolId, metricType (0-6), targetValue, resolutionOffset (seconds), description
For CLAIM_WINNINGS, params must include: betId"""


def build_system_prompt(config: AgentConfig, opponents: int) -> str:
    """Build the persona and protocol-rules prompt for an agent."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        name=config.name,
        personality=config.personality,
        risk_tolerance=config.risk_tolerance.upper(),
        strategy=config.strategy,
        opponents=opponents,
        min_lock=MIN_LOCK_DURATION,
        max_lock=MAX_LOCK_DURATION,
        token_unit=f"{TOKEN_UNIT:,}",
        max_bonus=MAX_STAKE_BONUS_BPS // 100,
        fee_pct=BET_FEE_BPS // 100,
        min_window=MIN_RESOLUTION_WINDOW,
    )


def _memory_section(memory: AgentMemory) -> str:
    lines = ["", "YOUR MEMORY (Learn from this!):"]
    if memory.recent_actions:
        failures = sum(1 for a in memory.recent_actions if not a["success"])
        lines.append(f"- Recent actions: {len(memory.recent_actions)} ({failures} failed)")
        for entry in list(memory.recent_actions)[-3:]:
            status = "ok" if entry["success"] else f"failed: {entry['note']}"
            lines.append(f"  R{entry['round']}: {entry['action']} -> {status}")
    if memory.market_history:
        wins = sum(1 for m in memory.market_history if m["won"])
        lines.append(f"- Settled bets: {wins}W / {len(memory.market_history) - wins}L")
    if memory.winning_strategies:
        lines.append(f"- What worked: {', '.join(list(memory.winning_strategies)[-3:])}")
    if memory.losing_strategies:
        lines.append(f"- What failed: {', '.join(list(memory.losing_strategies)[-3:])}")
    if len(lines) == 2:
        return ""
    return "\n".join(lines) + "\n"


def build_agent_prompt(
    context: SimulationContext,
    state: AgentState,
    memory: AgentMemory | None = None,
) -> str:
    """Build a prompt describing the round from one agent's point of view.

    Args:
        context: Shared round snapshot
        state: The agent's own state
        memory: The agent's bounded history

    Returns:
        Formatted prompt string
    """
    markets = "\n".join(
        f"  - {m.market_id} [{m.protocol_id} {m.metric_type.value}]: {m.description} "
        f"Target={m.target_value}, YES={yes_ratio_pct(m.yes_pool, m.no_pool)}% "
        f"NO={100 - yes_ratio_pct(m.yes_pool, m.no_pool)}%, Pool={m.total_pool}, "
        f"Resolves={m.resolution_time}"
        for m in context.markets
    ) or "  No markets available"

    competitors = "\n".join(
        f"  - {c.name}: PnL={c.total_pnl}, Staked={c.staked_amount}, Bets={c.open_bets}"
        for c in context.competitors
        if c.name != state.name
    ) or "  None"

    bets = "\n".join(
        f"  - {b.bet_id}: {b.amount} on {b.side.upper()} (effective {b.effective_amount})"
        for b in state.open_bets
    ) or "  None"

    lock = f"{state.lock_end_time}" if state.lock_end_time else "Not locked"
    memory_text = _memory_section(memory) if memory else ""

    prompt = f"""
ROUND {context.round} - Current Timestamp: {context.timestamp}

YOUR STATE:
- Liquid Balance: {state.liquid_balance}
- Staked Amount: {state.staked_amount} (locked: {state.locked_stake})
- veIDL Amount: {state.ve_amount}
- Lock End: {lock}
- Total PnL: {state.total_pnl}
- Round PnL: {state.round_pnl}
- Your Open Bets:
{bets}

PROTOCOL STATE:
- Total Staked: {context.protocol.total_staked}
- Total veIDL: {context.protocol.total_ve_supply}
- Reward Pool: {context.protocol.reward_pool}

AVAILABLE MARKETS:
{markets}

COMPETITOR STANDINGS:
{competitors}
{memory_text}
What is your next action? Remember to respond with valid JSON only.
"""
    return prompt.strip()


@dataclass
class DecisionResult:
    """Result of a decision query.

    Attributes:
        success: Whether a valid action came back from the backend
        action: The action to apply (WAIT on any failure)
        thought: Agent's free-text reasoning
        market_analysis: Agent's market commentary
        raw_response: Last raw backend response
        attempts: Backend calls made
        error: Diagnostic when success is False
        latency_ms: Wall time spent deciding
    """
    success: bool
    action: Action
    thought: str = ""
    market_analysis: str = ""
    raw_response: str = ""
    attempts: int = 0
    error: str | None = None
    latency_ms: int = 0


class AgentDecisionEngine:
    """Engine for getting actions from LLM-backed agents.

    Handles prompt construction, LLM querying under a timeout, response
    parsing and retry with backoff.
    """

    def __init__(
        self,
        llm_client: Any,  # LLMClient from llm_service
        timeout: float = 5.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        max_tokens: int = 1000,
    ):
        """Initialize the decision engine.

        Args:
            llm_client: Client exposing ``achat_completion(ChatRequest)``
            timeout: Seconds allowed per backend call
            max_retries: Backend calls per decision
            retry_backoff: Seconds before the first retry, doubled each time
            max_tokens: Completion token cap
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.llm_client = llm_client
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.max_tokens = max_tokens

        logger.info(
            "AgentDecisionEngine initialized",
            extra={"timeout": timeout, "max_retries": max_retries},
        )

    def _parse_json_response(self, response: str) -> dict | None:
        """Extract and parse a JSON object from an LLM response.

        Args:
            response: Raw LLM response text

        Returns:
            Parsed JSON dict or None if parsing fails
        """
        try:
            parsed = json.loads(response)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

        # Reasoning models wrap JSON in prose or markdown fences
        json_patterns = [
            r'```json\s*([\s\S]*?)\s*```',
            r'```\s*([\s\S]*?)\s*```',
            r'\{[\s\S]*\}',
        ]

        for pattern in json_patterns:
            match = re.search(pattern, response)
            if match:
                try:
                    json_str = match.group(1) if '```' in pattern else match.group(0)
                    parsed = json.loads(json_str)
                except (json.JSONDecodeError, IndexError):
                    continue
                if isinstance(parsed, dict):
                    return parsed

        return None

    def _parse_decision(self, parsed: dict, response: str) -> DecisionResult:
        """Turn a decoded response into a DecisionResult.

        Accepts the nested ``{"thought", "action": {...}}`` envelope or a bare
        action object. Schema-invalid actions are coerced to WAIT.
        """
        payload = parsed.get("action")
        if not isinstance(payload, dict):
            payload = parsed

        action = parse_action(payload)
        error = None
        if isinstance(action, WaitAction) and action.diagnostic:
            error = action.diagnostic

        return DecisionResult(
            success=error is None,
            action=action,
            thought=str(parsed.get("thought") or action.reasoning),
            market_analysis=str(parsed.get("marketAnalysis") or parsed.get("market_analysis") or ""),
            raw_response=response,
            error=error,
        )

    def build_request(
        self,
        config: AgentConfig,
        context: SimulationContext,
        state: AgentState,
        memory: AgentMemory | None = None,
    ) -> ChatRequest:
        opponents = max(len(context.competitors) - 1, 0)
        return ChatRequest(
            model=config.model,
            messages=[
                ChatMessage(role="system", content=build_system_prompt(config, opponents)),
                ChatMessage(role="user", content=build_agent_prompt(context, state, memory)),
            ],
            temperature=TEMPERATURE_BY_RISK.get(config.risk_tolerance, 0.5),
            max_tokens=self.max_tokens,
        )

    async def decide(
        self,
        config: AgentConfig,
        context: SimulationContext,
        state: AgentState,
        memory: AgentMemory | None = None,
    ) -> DecisionResult:
        """Get the next action for an agent.

        Args:
            config: The agent's persona and model
            context: Shared round snapshot
            state: The agent's own state
            memory: The agent's bounded history

        Returns:
            DecisionResult; its action is WAIT whenever the decision failed
        """
        request = self.build_request(config, context, state, memory)
        started = time.monotonic()
        backoff = self.retry_backoff
        last_error = "no attempts made"
        response_text = ""

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.llm_client.achat_completion(request),
                    timeout=self.timeout,
                )
                response_text = response.message.content or ""
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.timeout}s"
            except Exception as e:  # LiteLLM surfaces provider/transport failures as many types; malformed replies too
                last_error = f"{type(e).__name__}: {e}"
            else:
                parsed = self._parse_json_response(response_text) if response_text.strip() else None
                if parsed is not None:
                    result = self._parse_decision(parsed, response_text)
                    result.attempts = attempt
                    result.latency_ms = int((time.monotonic() - started) * 1000)
                    if result.success:
                        logger.info(
                            f"{config.name} decided {result.action.type}",
                            extra={
                                "agent": config.name,
                                "model": config.model,
                                "action": result.action.type,
                                "attempts": attempt,
                            },
                        )
                    else:
                        logger.warning(
                            f"{config.name} proposed an invalid action: {result.error}",
                            extra={"agent": config.name, "raw_response": response_text[:200]},
                        )
                    return result
                last_error = "empty response" if not response_text.strip() else "unparseable response"

            logger.warning(
                f"{config.name} decision attempt {attempt}/{self.max_retries} failed: {last_error}",
                extra={"agent": config.name, "model": config.model, "attempt": attempt},
            )
            if attempt < self.max_retries and backoff > 0:
                await asyncio.sleep(backoff)
                backoff *= 2

        diagnostic = f"decision failed after {self.max_retries} attempts: {last_error}"
        logger.error(f"{config.name}: {diagnostic}", extra={"agent": config.name})
        return DecisionResult(
            success=False,
            action=wait_action(diagnostic),
            raw_response=response_text,
            attempts=self.max_retries,
            error=diagnostic,
            latency_ms=int((time.monotonic() - started) * 1000),
        )
