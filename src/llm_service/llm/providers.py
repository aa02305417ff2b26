"""
Provider configurations and model definitions.

This module defines:
- Available LLM providers (OpenRouter)
- The model catalogue agents can be assigned
- Model name normalization for LiteLLM
"""

from dataclasses import dataclass
from typing import Literal

from llm_service.llm.schemas import ModelInfo


ProviderType = Literal["openrouter"]

OPENROUTER_PREFIX = "openrouter/"


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""

    name: str
    env_key: str
    base_url: str | None = None


# Provider configurations
PROVIDERS: dict[ProviderType, ProviderConfig] = {
    "openrouter": ProviderConfig(
        name="OpenRouter",
        env_key="OPENROUTER_API_KEY",
        base_url="https://openrouter.ai/api/v1",
    ),
}


# Models agents compete with (OpenRouter free tier)
AVAILABLE_MODELS: list[ModelInfo] = [
    ModelInfo(
        id="openrouter/deepseek/deepseek-r1:free",
        provider="openrouter",
        name="DeepSeek R1",
        free=True,
        context_window=163_840,
    ),
    ModelInfo(
        id="openrouter/meta-llama/llama-4-maverick:free",
        provider="openrouter",
        name="Llama 4 Maverick",
        free=True,
        context_window=128_000,
    ),
    ModelInfo(
        id="openrouter/google/gemma-2-9b-it:free",
        provider="openrouter",
        name="Gemma 2 9B",
        free=True,
        context_window=8_192,
    ),
    ModelInfo(
        id="openrouter/mistralai/mistral-7b-instruct:free",
        provider="openrouter",
        name="Mistral 7B Instruct",
        free=True,
        context_window=32_768,
    ),
    ModelInfo(
        id="openrouter/qwen/qwen-2-7b-instruct:free",
        provider="openrouter",
        name="Qwen 2 7B Instruct",
        free=True,
        context_window=32_768,
    ),
    ModelInfo(
        id="openrouter/meta-llama/llama-3.3-70b-instruct:free",
        provider="openrouter",
        name="Llama 3.3 70B Instruct",
        free=True,
        context_window=131_072,
    ),
]


def normalize_model_name(model: str) -> str:
    """
    Normalize a model name to the LiteLLM OpenRouter form.

    Bare OpenRouter slugs (e.g. "deepseek/deepseek-r1:free") get the
    "openrouter/" prefix LiteLLM routes on.

    Args:
        model: Original model identifier

    Returns:
        Normalized model name
    """
    if model.lower().startswith(OPENROUTER_PREFIX):
        return model
    return f"{OPENROUTER_PREFIX}{model}"


def get_model_info(model_id: str) -> ModelInfo | None:
    """
    Get model information by ID.

    Args:
        model_id: The model identifier, with or without the provider prefix

    Returns:
        ModelInfo if found, None otherwise
    """
    normalized = normalize_model_name(model_id)
    for model in AVAILABLE_MODELS:
        if model.id == normalized:
            return model
    return None


def get_provider_for_model(model_id: str) -> ProviderType | None:
    """
    Determine the provider for a given model ID.

    Every model is reached through OpenRouter; ids naming another LiteLLM
    provider explicitly are not supported.

    Args:
        model_id: The model identifier

    Returns:
        Provider type if recognized, None otherwise
    """
    model_lower = model_id.lower()
    if model_lower.startswith(OPENROUTER_PREFIX):
        return "openrouter"
    # Bare OpenRouter slugs look like "<vendor>/<model>"
    if "/" in model_lower and model_lower.split("/", 1)[0] not in ("openai", "anthropic", "gemini", "xai"):
        return "openrouter"
    return None


def list_available_models(provider: ProviderType | None = None) -> list[ModelInfo]:
    """
    List available models, optionally filtered by provider.

    Args:
        provider: Optional provider to filter by

    Returns:
        List of available models
    """
    if provider is None:
        return AVAILABLE_MODELS

    return [m for m in AVAILABLE_MODELS if m.provider == provider]
