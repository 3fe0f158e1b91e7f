"""Entry point for the ZiroX service.

Wires all components together, optionally serves the FastAPI app, and
runs the price poller. When the API is enabled (default), the poller and
the API share a single asyncio event loop via uvicorn's programmatic API
and FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. ZiroxDatabase + LedgerStore (persistence)
2. PriceStrategy (selected by PRICE_STRATEGY)
3. PriceOracle
4. ReferralService
5. ClaimGate
6. PricePoller
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from zirox.claims.gate import ClaimGate
from zirox.config import AppSettings
from zirox.logging import get_logger, setup_logging
from zirox.pricing.oracle import PriceOracle, build_strategy
from zirox.pricing.poller import PricePoller
from zirox.referrals.service import ReferralService
from zirox.storage.database import ZiroxDatabase
from zirox.storage.store import LedgerStore


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Does NOT open the database; that happens in _start_components.
    """
    database = ZiroxDatabase(settings.storage.db_path)
    store = LedgerStore(database)

    strategy = build_strategy(settings.price, store)
    oracle = PriceOracle(
        store,
        strategy,
        fallback_price=settings.price.fallback_price,
        timeout=settings.storage.operation_timeout_seconds,
    )

    referrals = ReferralService(store, settings.referral)

    gate = ClaimGate(
        store,
        settings.claim,
        referrals,
        timeout=settings.storage.operation_timeout_seconds,
        record_intents=settings.referral.durable_intents,
    )

    poller = PricePoller(oracle, interval=settings.price.poll_interval_seconds)

    return {
        "database": database,
        "store": store,
        "oracle": oracle,
        "referrals": referrals,
        "gate": gate,
        "poller": poller,
    }


async def _start_components(settings: AppSettings, components: dict[str, Any]) -> None:
    logger = get_logger("zirox.main")
    await components["database"].connect()
    await components["store"].ensure_global_supply(settings.claim.default_max_supply)

    if settings.referral.durable_intents:
        await components["referrals"].resume_pending()

    if settings.price.poll_enabled:
        await components["poller"].start()

    logger.info(
        "zirox_started",
        strategy=settings.price.strategy,
        claim_amount=str(settings.claim.amount),
        cooldown_seconds=settings.claim.cooldown_seconds,
    )


async def _stop_components(components: dict[str, Any]) -> None:
    logger = get_logger("zirox.main")
    await components["poller"].stop()
    await components["database"].close()
    logger.info("zirox_stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open storage and start the poller for the lifetime of the API."""
    settings = app.state.settings
    components = app.state.components

    app.state.oracle = components["oracle"]
    app.state.gate = components["gate"]
    app.state.referrals = components["referrals"]

    await _start_components(settings, components)
    try:
        yield
    finally:
        await _stop_components(components)


async def run() -> None:
    """Run the ZiroX service.

    With the API enabled (API_ENABLED=true, the default), uvicorn serves the
    app and the lifespan manages startup/shutdown. Otherwise only the price
    poller runs until SIGINT/SIGTERM.
    """
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("zirox.main")

    components = _build_components(settings)

    if settings.api.enabled:
        from zirox.api.app import create_app

        app = create_app(lifespan=lifespan, account_header=settings.api.account_header)
        app.state.settings = settings
        app.state.components = components

        logger.info("starting_with_api", host=settings.api.host, port=settings.api.port)

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("starting_without_api", strategy=settings.price.strategy)
    await _start_components(settings, components)
    try:
        await stop_event.wait()
    finally:
        await _stop_components(components)


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
