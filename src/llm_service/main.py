"""
FastAPI application for the arena service.

This module provides:
- The IDL Arena simulation endpoints
- A chat completion endpoint for probing agent models
- Health check and model listing endpoints
- CORS configuration for frontend access
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from idlarena.api import router as arena_router
from idlarena.api import set_llm_client, set_results_dir
from llm_service.config import configure_logging, get_logger, get_settings
from llm_service.llm.client import LLMClient
from llm_service.llm.providers import list_available_models
from llm_service.llm.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ModelsResponse,
)

# Global instances
_llm_client: LLMClient | None = None
_logger: logging.Logger | None = None


def get_llm_client() -> LLMClient:
    """Get the global LLM client instance."""
    if _llm_client is None:
        raise RuntimeError("LLM client not initialized")
    return _llm_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Initializes logging and the LLM client on startup and hands the
    client to the arena router.
    """
    global _llm_client, _logger

    settings = get_settings()

    _logger = configure_logging(settings)
    _logger.info("Starting arena service", extra={"port": settings.service_port})

    _llm_client = LLMClient(settings)
    set_llm_client(_llm_client)
    set_results_dir(settings.results_dir)
    _logger.info("LLM client initialized")

    yield

    _logger.info("Shutting down arena service")


app = FastAPI(
    title="IDL Arena",
    description="Multi-agent staking and prediction-market arena",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(arena_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns:
        HealthResponse: Service health status
    """
    logger = get_logger()
    logger.debug("Health check requested")

    return HealthResponse(
        status="healthy",
        service=get_settings().service_name,
        version="0.1.0",
        openrouter_configured=bool(get_settings().openrouter_api_key),
    )


@app.get("/api/models", response_model=ModelsResponse, tags=["Models"])
async def list_models() -> ModelsResponse:
    """
    List the models agents can be assigned.

    Returns:
        ModelsResponse: Available OpenRouter models
    """
    logger = get_logger()
    logger.debug("Models list requested")

    return ModelsResponse(models=list_available_models())


@app.post("/api/chat", response_model=ChatResponse, tags=["Chat"])
async def chat_completion(request: ChatRequest) -> ChatResponse:
    """
    Perform a chat completion against an agent model.

    Args:
        request: Chat completion request with model, messages, and options

    Returns:
        ChatResponse: The model's response

    Raises:
        HTTPException: If the provider is not configured or the call fails
    """
    logger = get_logger()
    client = get_llm_client()

    logger.info(
        "Chat completion request received",
        extra={"model": request.model, "message_count": len(request.messages)},
    )

    if not client.check_provider_configured(request.model):
        logger.warning("Provider not configured", extra={"model": request.model})
        raise HTTPException(
            status_code=400,
            detail=f"Provider for model '{request.model}' is not configured. Set OPENROUTER_API_KEY.",
        )

    try:
        response = await client.achat_completion(request)
    except Exception as e:
        logger.error(
            "Chat completion failed",
            extra={"model": request.model, "error": str(e)},
            exc_info=True,
        )
        raise HTTPException(
            status_code=502,
            detail=f"Chat completion failed: {str(e)}",
        )

    logger.info(
        "Chat completion successful",
        extra={"model": request.model, "finish_reason": response.finish_reason},
    )
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests."""
    logger = get_logger()

    logger.debug(
        "Request received",
        extra={
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown",
        },
    )

    response = await call_next(request)

    logger.debug(
        "Response sent",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
        },
    )

    return response


def main() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "llm_service.main:app",
        host="0.0.0.0",
        port=settings.service_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
