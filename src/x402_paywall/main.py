# src/x402_paywall/main.py
"""Main entry point for the x402 paywall service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from x402_paywall.api.v1 import articles_router, budget_router, system_router
from x402_paywall.core.settings import settings
from x402_paywall.db.session import create_tables
from x402_paywall.services.ledger_client import get_ledger_client
from x402_paywall.services.references import ReferencePurgeWorker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="x402 Paywall API",
    description="Pay-per-article access over SPL token payments and prepaid budgets",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type", "X402-Payer-Pubkey"],
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(articles_router, prefix="/api/v1")
app.include_router(budget_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.is_sqlite:
        create_tables()
    if not settings.recipient_wallet:
        logger.warning("MY_WALLET_ADDRESS is not set; paid endpoints will answer 503")
    logger.info(
        "x402 paywall started on %s (mint %s, rpc %s)",
        settings.solana_network,
        settings.spl_token_mint,
        settings.effective_rpc_url,
    )
    worker = ReferencePurgeWorker()
    await worker.start()
    app.state.purge_worker = worker


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: ReferencePurgeWorker | None = getattr(app.state, "purge_worker", None)
    if worker:
        await worker.stop()
    await get_ledger_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Pay-per-article access over SPL token payments and prepaid budgets",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("x402_paywall.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
