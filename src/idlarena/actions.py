"""
Typed agent actions.

Decision backends return loosely-typed JSON. These pydantic models form a
closed tagged union (discriminated on ``type``) with per-variant required
fields, so only well-formed actions reach the arbiter. Anything that fails
validation is coerced to a WAIT carrying the validation diagnostic.
"""

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from .models import ActionType, MetricType

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION_OFFSET = 3 * 24 * 60 * 60

# Loose spellings seen from models, mapped to canonical action types
_TYPE_ALIASES = {
    "BET": "PLACE_BET",
    "CLAIM": "CLAIM_WINNINGS",
    "LOCK": "LOCK_VE",
    "UNLOCK": "UNLOCK_VE",
    "HOLD": "WAIT",
    "NONE": "WAIT",
}

_METRIC_ALIASES = {
    "tvl": MetricType.TVL,
    "volume24h": MetricType.VOLUME_24H,
    "volume": MetricType.VOLUME_24H,
    "users": MetricType.USERS,
    "transactions": MetricType.TRANSACTIONS,
    "price": MetricType.PRICE,
    "marketcap": MetricType.MARKET_CAP,
    "custom": MetricType.CUSTOM,
}
_METRIC_BY_INDEX = list(MetricType)


class BaseAction(BaseModel):
    """Fields shared by every action."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reasoning: str = Field(default="", description="Agent's rationale")
    confidence: float = Field(default=0.5, description="Confidence 0-1")

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value: Any) -> float:
        try:
            conf = float(value)
        except (TypeError, ValueError):
            return 0.5
        if conf > 1.0:
            conf = conf / 100.0
        return min(max(conf, 0.0), 1.0)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def action_type(self) -> ActionType:
        return ActionType(self.type)

    def params(self) -> dict[str, Any]:
        """Action parameters without type/reasoning/confidence."""
        return self.model_dump(mode="json", exclude={"type", "reasoning", "confidence"})


class StakeAction(BaseAction):
    type: Literal["STAKE"] = "STAKE"
    amount: int = Field(gt=0, description="Base units to stake")


class UnstakeAction(BaseAction):
    type: Literal["UNSTAKE"] = "UNSTAKE"
    amount: int = Field(gt=0, description="Base units to withdraw")


class LockVeAction(BaseAction):
    type: Literal["LOCK_VE"] = "LOCK_VE"
    duration: int = Field(
        gt=0,
        validation_alias=AliasChoices("duration", "durationSeconds", "lock_seconds", "lockDuration"),
        description="Lock duration in seconds",
    )


class UnlockVeAction(BaseAction):
    type: Literal["UNLOCK_VE"] = "UNLOCK_VE"


class CreateMarketAction(BaseAction):
    type: Literal["CREATE_MARKET"] = "CREATE_MARKET"
    protocol_id: str = Field(validation_alias=AliasChoices("protocol_id", "protocolId", "protocol"))
    metric_type: MetricType = Field(
        default=MetricType.TVL,
        validation_alias=AliasChoices("metric_type", "metricType", "metric"),
    )
    target_value: int = Field(gt=0, validation_alias=AliasChoices("target_value", "targetValue", "target"))
    resolution_offset: int = Field(
        default=DEFAULT_RESOLUTION_OFFSET,
        validation_alias=AliasChoices("resolution_offset", "resolutionOffset", "resolutionOffsetSeconds"),
        description="Seconds from now until resolution",
    )
    description: str = ""

    @field_validator("metric_type", mode="before")
    @classmethod
    def _normalize_metric(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.replace("_", "").replace(" ", "").lower()
            if not key.isdigit():
                return _METRIC_ALIASES.get(key, value)
            value = int(key)
        # metricType may arrive as the program's enum index (0-6)
        if isinstance(value, int) and not isinstance(value, bool):
            if 0 <= value < len(_METRIC_BY_INDEX):
                return _METRIC_BY_INDEX[value]
        return value


class PlaceBetAction(BaseAction):
    type: Literal["PLACE_BET"] = "PLACE_BET"
    market_id: str = Field(validation_alias=AliasChoices("market_id", "marketId", "marketPDA", "market"))
    amount: int = Field(gt=0, description="Principal in base units")
    side: Literal["yes", "no"]

    @model_validator(mode="before")
    @classmethod
    def _side_from_bet_yes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        side = data.get("side")
        if isinstance(side, str):
            data["side"] = side.strip().lower()
        elif side is None:
            for key in ("betYes", "bet_yes"):
                if key in data:
                    flag = data[key]
                    if isinstance(flag, str):
                        flag = flag.strip().lower() in ("true", "yes", "1")
                    data["side"] = "yes" if flag else "no"
                    break
        return data


class ClaimWinningsAction(BaseAction):
    type: Literal["CLAIM_WINNINGS"] = "CLAIM_WINNINGS"
    bet_id: str = Field(validation_alias=AliasChoices("bet_id", "betId", "betPDA", "bet"))


class WaitAction(BaseAction):
    type: Literal["WAIT"] = "WAIT"
    diagnostic: str | None = Field(
        default=None, description="Why a proposed action was replaced by WAIT"
    )


class AnalyzeAction(BaseAction):
    type: Literal["ANALYZE"] = "ANALYZE"


Action = Annotated[
    Union[
        StakeAction,
        UnstakeAction,
        LockVeAction,
        UnlockVeAction,
        CreateMarketAction,
        PlaceBetAction,
        ClaimWinningsAction,
        WaitAction,
        AnalyzeAction,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def wait_action(diagnostic: str | None = None, reasoning: str = "") -> WaitAction:
    """Canonical safe no-op."""
    return WaitAction(reasoning=reasoning or (diagnostic or ""), confidence=0.0, diagnostic=diagnostic)


def _flatten(payload: dict[str, Any]) -> dict[str, Any]:
    """Merge nested ``params`` into the top level and normalize ``type``."""
    data = {k: v for k, v in payload.items() if k != "params"}
    params = payload.get("params")
    if isinstance(params, dict):
        for key, value in params.items():
            data.setdefault(key, value)

    raw_type = data.get("type", data.get("action"))
    if isinstance(raw_type, ActionType):
        raw_type = raw_type.value
    if isinstance(raw_type, str):
        normalized = raw_type.strip().upper().replace(" ", "_").replace("-", "_")
        data["type"] = _TYPE_ALIASES.get(normalized, normalized)
    return data


def parse_action(payload: Any) -> Action:
    """Validate a loosely-typed action payload.

    Accepts ``{"type", "params": {...}, "reasoning", "confidence"}`` or the
    flattened form, with camelCase aliases (``marketPDA``, ``betYes``) and
    numeric strings. Never raises: invalid payloads become a WAIT with the
    validation error as its diagnostic.

    Args:
        payload: Decoded JSON action object

    Returns:
        A validated action
    """
    if not isinstance(payload, dict):
        return wait_action(f"action must be an object, got {type(payload).__name__}")

    data = _flatten(payload)
    try:
        return _action_adapter.validate_python(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'action'}: {err['msg']}"
            for err in e.errors()
        )
        logger.debug(f"Coercing invalid action to WAIT: {errors}")
        return wait_action(
            f"invalid {data.get('type', 'action')}: {errors}",
            reasoning=str(data.get("reasoning") or ""),
        )
