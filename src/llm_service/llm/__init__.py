"""
LLM module providing access to OpenRouter models through LiteLLM.

This module exports:
- LLMClient: Main client for LLM completions
- Schemas: Request/response models
"""

from llm_service.llm.client import LLMClient
from llm_service.llm.schemas import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ResponseMessage,
    Usage,
)

__all__ = [
    "LLMClient",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ResponseMessage",
    "Usage",
]
