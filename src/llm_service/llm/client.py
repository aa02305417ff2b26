"""
LLM Client wrapper using LiteLLM.

This module provides:
- Async chat completions against OpenRouter models via LiteLLM
- Model name normalization
- Comprehensive logging
"""

import os
import uuid
from typing import Any

import litellm
from litellm import acompletion

from llm_service.config import Settings, get_logger
from llm_service.llm.providers import PROVIDERS, get_provider_for_model, normalize_model_name
from llm_service.llm.schemas import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ResponseMessage,
    Usage,
)


class LLMClient:
    """
    LLM client for OpenRouter-hosted models via LiteLLM.

    Exceptions from LiteLLM (auth, rate limit, transport) are logged and
    re-raised; callers decide whether to retry.
    """

    def __init__(self, settings: Settings) -> None:
        """
        Initialize the LLM client.

        Args:
            settings: Application settings with API keys
        """
        self.settings = settings
        self.logger = get_logger("llm_service.llm.client")

        # Configure API keys in environment for LiteLLM
        self._configure_api_keys()

        # Drop unsupported params instead of erroring
        litellm.drop_params = True

        self.logger.info(
            "LLMClient initialized",
            extra={"default_model": settings.default_model},
        )

    def _configure_api_keys(self) -> None:
        """Set API keys in environment for LiteLLM to use."""
        if self.settings.openrouter_api_key:
            os.environ[PROVIDERS["openrouter"].env_key] = self.settings.openrouter_api_key
            self.logger.debug("OpenRouter API key configured")
        else:
            self.logger.warning("OpenRouter API key missing; decision calls will fail")

    def _build_messages(
        self, messages: list[ChatMessage]
    ) -> list[dict[str, Any]]:
        """
        Convert ChatMessage objects to LiteLLM format.

        Args:
            messages: List of ChatMessage objects

        Returns:
            List of message dicts for LiteLLM
        """
        result = []
        for msg in messages:
            message_dict: dict[str, Any] = {
                "role": msg.role,
                "content": msg.content,
            }
            if msg.name:
                message_dict["name"] = msg.name
            result.append(message_dict)
        return result

    def _build_completion_kwargs(self, request: ChatRequest) -> dict[str, Any]:
        """
        Build keyword arguments for LiteLLM completion call.

        Args:
            request: Chat request

        Returns:
            Dict of kwargs for acompletion()
        """
        kwargs: dict[str, Any] = {
            "model": normalize_model_name(request.model),
            "messages": self._build_messages(request.messages),
            "api_base": self.settings.openrouter_base_url,
        }

        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.top_p is not None:
            kwargs["top_p"] = request.top_p
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        return kwargs

    def _parse_response(
        self, response: Any, model: str
    ) -> ChatResponse:
        """
        Parse LiteLLM response into ChatResponse.

        Args:
            response: Raw LiteLLM response
            model: Model used for completion

        Returns:
            Parsed ChatResponse
        """
        choice = response.choices[0]
        message = choice.message

        response_message = ResponseMessage(
            role="assistant",
            content=message.content,
        )

        usage = None
        if getattr(response, "usage", None):
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return ChatResponse(
            id=response.id or f"chatcmpl-{uuid.uuid4().hex[:8]}",
            model=model,
            message=response_message,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    async def achat_completion(self, request: ChatRequest) -> ChatResponse:
        """
        Perform an asynchronous chat completion.

        Args:
            request: Chat completion request

        Returns:
            ChatResponse with the model's response

        Raises:
            Exception: If the completion fails
        """
        self.logger.debug(
            "Starting async chat completion via LiteLLM",
            extra={
                "model": request.model,
                "message_count": len(request.messages),
            },
        )

        try:
            kwargs = self._build_completion_kwargs(request)

            response = await acompletion(**kwargs)

            parsed = self._parse_response(response, request.model)

            self.logger.debug(
                "Async chat completion successful",
                extra={
                    "model": request.model,
                    "finish_reason": parsed.finish_reason,
                    "total_tokens": parsed.usage.total_tokens if parsed.usage else None,
                },
            )

            return parsed

        except Exception as e:
            self.logger.warning(
                "Async chat completion failed",
                extra={"model": request.model, "error": str(e)},
            )
            raise

    def check_provider_configured(self, model: str | None = None) -> bool:
        """
        Check if the provider for a model has an API key configured.

        Args:
            model: Model identifier (default model when omitted)

        Returns:
            True if provider is configured
        """
        provider = get_provider_for_model(model or self.settings.default_model)
        if provider is None:
            return False

        key_mapping = {
            "openrouter": self.settings.openrouter_api_key,
        }

        return bool(key_mapping.get(provider))
