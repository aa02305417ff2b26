"""Ledger submission boundary.

In simulated mode every successful state-changing action is mirrored to a
ledger client, which only records it. The arbiter stays the source of truth:
a ledger failure is logged and never alters simulated state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class LedgerClient(Protocol):
    """Something that can submit an applied action and return a signature."""

    async def submit(self, agent_name: str, action_type: str, params: dict[str, Any]) -> str:
        ...


@dataclass
class LedgerSubmission:
    """A recorded submission."""
    signature: str
    agent_name: str
    action_type: str
    params: dict[str, Any]


class SimulatedLedger:
    """In-memory ledger returning synthetic signatures (sim_<kind>_<n>)."""

    def __init__(self):
        self.submissions: list[LedgerSubmission] = []

    async def submit(self, agent_name: str, action_type: str, params: dict[str, Any]) -> str:
        signature = f"sim_{action_type.lower()}_{len(self.submissions) + 1}"
        self.submissions.append(LedgerSubmission(
            signature=signature,
            agent_name=agent_name,
            action_type=action_type,
            params=dict(params),
        ))
        logger.debug(
            f"Recorded {action_type} for {agent_name}",
            extra={"signature": signature},
        )
        return signature
