"""
Pydantic schemas for LLM request/response models.

These schemas define the contract for:
- Chat completion requests
- Chat completion responses
- Model catalogue and health endpoints
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: Literal["system", "user", "assistant"] = Field(
        description="The role of the message sender"
    )
    content: str = Field(description="The content of the message")
    name: str | None = Field(default=None, description="Optional name for the sender")


class ChatRequest(BaseModel):
    """Request for a chat completion."""

    model: str = Field(
        description="Model identifier (e.g., openrouter/deepseek/deepseek-r1:free)",
    )
    messages: list[ChatMessage] = Field(
        description="List of messages in the conversation"
    )
    temperature: float | None = Field(
        default=None, ge=0, le=2, description="Sampling temperature"
    )
    max_tokens: int | None = Field(
        default=None, ge=1, description="Maximum tokens to generate"
    )
    top_p: float | None = Field(
        default=None, ge=0, le=1, description="Nucleus sampling parameter"
    )
    json_mode: bool = Field(
        default=False, description="Ask the provider for a JSON object response"
    )


class ResponseMessage(BaseModel):
    """The assistant's response message."""

    role: Literal["assistant"] = Field(default="assistant")
    content: str | None = Field(default=None, description="Text content of the response")


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = Field(description="Tokens in the prompt")
    completion_tokens: int = Field(description="Tokens in the completion")
    total_tokens: int = Field(description="Total tokens used")


class ChatResponse(BaseModel):
    """Response from a chat completion."""

    id: str = Field(description="Unique response identifier")
    model: str = Field(description="Model used for completion")
    message: ResponseMessage = Field(description="The assistant's response")
    usage: Usage | None = Field(default=None, description="Token usage statistics")
    finish_reason: str | None = Field(
        default=None, description="Reason for completion (stop, length, etc.)"
    )


class ModelInfo(BaseModel):
    """Information about an available model."""

    id: str = Field(description="LiteLLM model identifier")
    provider: str = Field(description="Provider name (openrouter)")
    name: str = Field(description="Human-readable model name")
    free: bool = Field(default=False, description="Whether the model is on a free tier")
    context_window: int | None = Field(default=None, description="Context window in tokens")


class ModelsResponse(BaseModel):
    """Response from models listing endpoint."""

    models: list[ModelInfo] = Field(description="List of available models")


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = Field(description="Service status")
    service: str = Field(description="Service name")
    version: str = Field(default="0.1.0", description="Service version")
    openrouter_configured: bool = Field(
        default=False, description="Whether an OpenRouter API key is set"
    )
