"""Shared fixtures for the IDL Arena test suite."""

from __future__ import annotations

import json
from typing import Any

import pytest

from idlarena.arbiter import ActionArbiter
from idlarena.economics import TOKEN_UNIT
from idlarena.models import AgentConfig, MarketInfo, MetricType, SimulationConfig
from llm_service.llm.schemas import ChatRequest, ChatResponse, ResponseMessage

NOW = 1_700_000_000
DAY = 86_400


# ---------------------------------------------------------------------------
# Fake LLM backend
# ---------------------------------------------------------------------------


class FakeLLMClient:
    """Scripted stand-in for LLMClient.

    Each call pops the next scripted item: a string is returned as the
    message content, a dict is JSON-encoded first, an exception is raised.
    Once the script runs out the last item repeats.
    """

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.requests: list[ChatRequest] = []

    async def achat_completion(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        content = json.dumps(item) if isinstance(item, dict) else item
        return ChatResponse(
            id=f"fake-{len(self.requests)}",
            model=request.model,
            message=ResponseMessage(content=content),
            finish_reason="stop",
        )


def decision_payload(action_type: str, params: dict | None = None, **extra: Any) -> dict:
    """The envelope agents are asked to respond with."""
    return {
        "thought": extra.pop("thought", "thinking"),
        "marketAnalysis": extra.pop("analysis", ""),
        "action": {
            "type": action_type,
            "params": params or {},
            "reasoning": extra.pop("reasoning", "because"),
            "confidence": extra.pop("confidence", 0.8),
        },
    }


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def arbiter() -> ActionArbiter:
    """Two agents with 10,000 tokens each."""
    return ActionArbiter(["alice", "bob"], initial_balance=10_000 * TOKEN_UNIT)


@pytest.fixture
def market(arbiter: ActionArbiter) -> MarketInfo:
    """An empty seeded market resolving in one day."""
    return arbiter.seed_market(
        protocol_id="jupiter",
        metric_type=MetricType.TVL,
        target_value=1_000_000_000,
        resolution_time=NOW + DAY,
        description="Will Jupiter TVL exceed $1B?",
        now=NOW,
    )


@pytest.fixture
def agent_configs() -> list[AgentConfig]:
    return [
        AgentConfig(
            name="Alpha",
            model="openrouter/test/alpha",
            personality="bold",
            strategy="bet big",
            risk_tolerance="high",
            style="aggressive",
        ),
        AgentConfig(
            name="Carl",
            model="openrouter/test/carl",
            personality="careful",
            strategy="stake and wait",
            risk_tolerance="low",
            style="conservative",
        ),
        AgentConfig(
            name="Victor",
            model="openrouter/test/victor",
            personality="patient",
            strategy="find value",
            style="value",
        ),
    ]


@pytest.fixture
def mock_config() -> SimulationConfig:
    """Fast, seeded, mock-mode config that writes no artifact."""
    return SimulationConfig(
        rounds=6,
        round_delay=0.0,
        agent_delay=0.0,
        seed=7,
        mock=True,
        output_dir=None,
    )


@pytest.fixture
def fake_llm() -> type[FakeLLMClient]:
    return FakeLLMClient
