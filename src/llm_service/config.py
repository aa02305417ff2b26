"""
Configuration and logging setup for the arena services.

This module provides:
- Environment-based settings via Pydantic Settings
- Logging configuration (standard or JSON lines)
- Centralized configuration access
"""

import logging
import logging.config
import sys
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Service configuration
    service_name: str = Field(default="idl-arena", description="Name of the service")
    service_port: int = Field(default=8000, alias="ARENA_SERVICE_PORT")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_format: Literal["standard", "json"] = Field(default="standard", alias="LOG_FORMAT")

    # OpenRouter - the key is loaded from environment, never logged
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL"
    )

    # CORS configuration
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        description="Allowed CORS origins",
    )

    # Decision calls
    default_model: str = Field(
        default="openrouter/meta-llama/llama-3.3-70b-instruct:free",
        description="Model used when an agent does not name one",
    )
    decision_timeout_seconds: float = Field(default=5.0, alias="DECISION_TIMEOUT_SECONDS")
    decision_max_retries: int = Field(default=3, alias="DECISION_MAX_RETRIES")
    decision_retry_backoff_seconds: float = Field(
        default=1.0, alias="DECISION_RETRY_BACKOFF_SECONDS"
    )

    # Simulation defaults
    agent_delay_seconds: float = Field(default=0.5, alias="AGENT_DELAY_SECONDS")
    results_dir: str = Field(default="results", alias="RESULTS_DIR")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


def configure_logging(settings: Settings, level: str | None = None) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        settings: Application settings containing log level and format
        level: Override for the configured log level (e.g. --debug)

    Returns:
        Logger: Configured service logger
    """
    log_level = level or settings.log_level
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "function": "%(funcName)s", "message": "%(message)s"}',
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": settings.log_format,
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "llm_service": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "idlarena": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "LiteLLM": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
            "litellm": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(log_config)
    logger = logging.getLogger("llm_service")
    logger.info(
        "Logging configured",
        extra={"log_level": log_level, "service": settings.service_name},
    )

    return logger


def get_logger(name: str = "llm_service") -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (default: llm_service)

    Returns:
        Logger: Logger instance
    """
    return logging.getLogger(name)
