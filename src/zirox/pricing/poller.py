"""Background loop that refreshes the oracle price on a fixed interval."""

import asyncio

from zirox.logging import get_logger
from zirox.pricing.oracle import PriceOracle

logger = get_logger(__name__)


class PricePoller:
    """Calls PriceOracle.evaluate() every ``interval`` seconds until stopped."""

    def __init__(self, oracle: PriceOracle, interval: float = 300.0) -> None:
        self._oracle = oracle
        self._interval = interval
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("price_poller_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("price_poller_started", interval=self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("price_poller_stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                quote = await self._oracle.evaluate()
                logger.debug("price_poll_tick", price=str(quote.price))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("price_poll_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._interval)
