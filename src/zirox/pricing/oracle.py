"""Price oracle: evaluate the configured strategy, persist, and report.

Each evaluation:
1. Runs the strategy against the current wall clock
2. Rounds the price to 2 decimal places
3. Appends a PriceSample (change relative to the previous sample)
4. Upserts today's DailyPriceRecord (opening price fixed, close moves)
5. Returns a PriceQuote

Price correctness is not safety-critical, so any failure (including a
timeout) degrades to a neutral quote instead of propagating. Concurrent
callers share a single in-flight evaluation.
"""

import asyncio
from decimal import Decimal

from zirox.clock import Clock, calendar_day, local_now, round_money, to_ms
from zirox.config import PriceSettings
from zirox.logging import get_logger
from zirox.models import DailyPriceRecord, PriceQuote, PriceSample
from zirox.pricing.reference_walk import ReferenceWalkStrategy
from zirox.pricing.seeding import SeededUniform, SeedSource, SineFraction
from zirox.pricing.strategy import PriceStrategy
from zirox.pricing.supply_demand import SupplyDemandStrategy
from zirox.storage.store import LedgerStore

logger = get_logger(__name__)


def build_strategy(settings: PriceSettings, store: LedgerStore) -> PriceStrategy:
    """Instantiate the strategy selected by PriceSettings.strategy."""
    if settings.strategy == "reference_walk":
        return ReferenceWalkStrategy(store, default_reference=settings.gx_default_reference)
    seed_source: SeedSource = (
        SeededUniform() if settings.seed_source == "seeded_uniform" else SineFraction()
    )
    return SupplyDemandStrategy(store, base_price=settings.base_price, seed_source=seed_source)


class PriceOracle:
    """Produces, stores and serves token price samples.

    Args:
        store: Ledger store for samples and daily records.
        strategy: Pricing model for this deployment.
        fallback_price: Price reported when evaluation fails.
        timeout: Upper bound in seconds for one evaluation.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        store: LedgerStore,
        strategy: PriceStrategy,
        fallback_price: Decimal = Decimal("1.0"),
        timeout: float = 10.0,
        clock: Clock = local_now,
    ) -> None:
        self._store = store
        self._strategy = strategy
        self._fallback_price = fallback_price
        self._timeout = timeout
        self._clock = clock
        self._inflight: asyncio.Task[PriceQuote] | None = None

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    async def evaluate(self) -> PriceQuote:
        """Compute and persist a new price. Never raises."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._guarded_evaluate())
        else:
            logger.debug("price_evaluation_joined", strategy=self._strategy.name)
        return await asyncio.shield(self._inflight)

    async def _guarded_evaluate(self) -> PriceQuote:
        try:
            return await asyncio.wait_for(self._evaluate_once(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("price_evaluation_timeout", strategy=self._strategy.name, timeout=self._timeout)
        except Exception:
            logger.error("price_evaluation_failed", strategy=self._strategy.name, exc_info=True)
        return self._fallback_quote()

    async def _evaluate_once(self) -> PriceQuote:
        now = self._clock()
        computation = await self._strategy.compute(now)

        previous = computation.previous_price
        price = round_money(computation.raw_price)
        if price <= 0:
            raise ValueError(f"Strategy produced non-positive price {computation.raw_price}")
        change_raw = (computation.raw_price - float(previous)) / float(previous) * 100
        change = round_money(change_raw)
        observed_at_ms = to_ms(now)

        await self._store.append_price_sample(
            PriceSample(price=price, change_percent=change, observed_at_ms=observed_at_ms),
            strategy=self._strategy.name,
        )
        daily = await self._store.upsert_daily_record(
            calendar_day(now), price, strategy=self._strategy.name
        )
        await self._strategy.after_persist(computation, price, now)

        quote = PriceQuote(
            price=price,
            previous_price=round_money(previous),
            change_percent=change,
            is_green=change_raw >= 0,
            strategy=self._strategy.name,
            observed_at_ms=observed_at_ms,
            extras=dict(computation.extras),
        )
        logger.info(
            "price_evaluated",
            strategy=self._strategy.name,
            price=str(price),
            previous_price=str(quote.previous_price),
            change_percent=str(change),
            daily_open=str(daily.opening_price),
        )
        return quote

    def _fallback_quote(self) -> PriceQuote:
        price = round_money(self._fallback_price)
        return PriceQuote(
            price=price,
            previous_price=price,
            change_percent=Decimal("0.00"),
            is_green=True,
            strategy=self._strategy.name,
            extras={"fallback": True},
        )

    # ──────────────────────────────────────────────
    # Read paths (no evaluation)
    # ──────────────────────────────────────────────

    async def latest(self) -> PriceSample | None:
        return await self._store.get_latest_price(self._strategy.name)

    async def history(self, limit: int = 100) -> list[PriceSample]:
        return await self._store.get_price_history(self._strategy.name, limit=limit)

    async def daily(self, limit: int = 30) -> list[DailyPriceRecord]:
        return await self._store.get_daily_records(self._strategy.name, limit=limit)
