"""FastAPI application factory for the ZiroX JSON API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from zirox.api.routes import claims, price, trades


def create_app(lifespan: Any = None, account_header: str = "X-Account-Id") -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for startup/shutdown.
                  Used by main.py to wire the oracle, gate and referrals.
        account_header: Header carrying the authenticated account id.

    Returns:
        Configured FastAPI application with all routers under /api.
    """
    app = FastAPI(
        title="ZiroX API",
        lifespan=lifespan,
    )

    app.state.account_header = account_header

    app.include_router(price.router, prefix="/api")
    app.include_router(claims.router, prefix="/api")
    app.include_router(trades.router, prefix="/api")

    return app
