# src/x402_paywall/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import articles_router, budget_router, system_router

__all__ = [
    "articles_router",
    "budget_router",
    "system_router",
]
