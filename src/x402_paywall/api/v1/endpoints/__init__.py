# src/x402_paywall/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .articles import router as articles_router
from .budget import router as budget_router
from .system import router as system_router

__all__ = [
    "articles_router",
    "budget_router",
    "system_router",
]
