"""
LLM Service - OpenRouter access for arena agents via LiteLLM.

This package provides the FastAPI application hosting the arena endpoints,
together with the LiteLLM-backed client agents use to make decisions.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
