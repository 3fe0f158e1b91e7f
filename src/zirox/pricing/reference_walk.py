"""GX reference-walk price strategy.

Each day has a reference price. Between today 15:00 and tomorrow 15:00
(local time) the price trends linearly toward reference * 1.03, with
random noise scaled by trading activity over the last hour:

    volatility = min(0.02 + trades_last_hour * 0.01, 0.20)
    price = ref + (target - ref) * progress + ref * uniform(-1, 1) * volatility

The result is clamped to [0.8 * ref, 1.2 * ref]. Before 15:00 progress is 0.
"""

import random
from datetime import datetime, timedelta
from decimal import Decimal

from zirox.clock import round_money, to_ms
from zirox.logging import get_logger
from zirox.pricing.strategy import PriceComputation, PriceStrategy
from zirox.storage.store import LedgerStore

logger = get_logger(__name__)

REFERENCE_HOUR = 15
DAILY_TARGET_MULTIPLIER = 1.03
BASE_VOLATILITY = 0.02
VOLATILITY_PER_TRADE = 0.01
MAX_VOLATILITY = 0.2
LOWER_BOUND = 0.8
UPPER_BOUND = 1.2
ACTIVITY_WINDOW_MS = 60 * 60 * 1000


def time_progress(now: datetime) -> float:
    """Fraction of the way from today's 15:00 toward tomorrow's, or 0 before 15:00."""
    today_ref = now.replace(hour=REFERENCE_HOUR, minute=0, second=0, microsecond=0)
    if now < today_ref:
        return 0.0
    tomorrow_ref = today_ref + timedelta(days=1)
    return (now - today_ref) / (tomorrow_ref - today_ref)


def activity_volatility(recent_trades: int) -> float:
    return min(BASE_VOLATILITY + recent_trades * VOLATILITY_PER_TRADE, MAX_VOLATILITY)


def bounded_walk(reference: float, progress: float, volatility: float, noise: float) -> float:
    """One walk step. ``noise`` is a uniform draw in [0, 1)."""
    target = reference * DAILY_TARGET_MULTIPLIER
    fluctuation = (noise - 0.5) * 2 * volatility
    current = reference + (target - reference) * progress + reference * fluctuation
    return max(reference * LOWER_BOUND, min(reference * UPPER_BOUND, current))


class ReferenceWalkStrategy(PriceStrategy):
    """GX pricing anchored to the latest daily reference price.

    Args:
        store: Ledger store providing references, recent trades and GX state.
        default_reference: Reference used when no reference row exists.
        rng: Noise source; a fresh ``random.Random()`` when omitted.
    """

    name = "reference_walk"

    def __init__(
        self,
        store: LedgerStore,
        default_reference: Decimal = Decimal("16.0"),
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._default_reference = default_reference
        self._rng = rng or random.Random()

    async def compute(self, now: datetime) -> PriceComputation:
        reference = await self._store.get_latest_gx_reference()
        if reference is None:
            logger.warning("gx_reference_missing", default=str(self._default_reference))
            reference = self._default_reference
        ref = float(reference)

        progress = time_progress(now)
        recent_trades = await self._store.count_trades_since(to_ms(now) - ACTIVITY_WINDOW_MS)
        volatility = activity_volatility(recent_trades)
        raw_price = bounded_walk(ref, progress, volatility, self._rng.random())

        current = await self._store.get_gx_current_price()
        previous_price = current if current is not None and current > 0 else reference

        logger.debug(
            "reference_walk_factors",
            reference=ref,
            progress=progress,
            recent_trades=recent_trades,
            volatility=volatility,
            raw_price=raw_price,
        )

        return PriceComputation(
            raw_price=raw_price,
            previous_price=previous_price,
            factors={"progress": progress, "recent_trades": recent_trades},
            extras={
                "volatility": volatility,
                "volatility_percent": round_money(volatility * 100),
                "reference_price": reference,
                "target_price": round_money(ref * DAILY_TARGET_MULTIPLIER),
            },
        )

    async def after_persist(
        self, computation: PriceComputation, price: Decimal, now: datetime
    ) -> None:
        previous = round_money(computation.previous_price)
        change = round_money(
            (computation.raw_price - float(computation.previous_price))
            / float(computation.previous_price)
            * 100
        )
        await self._store.set_gx_current_price(
            price=price,
            previous_price=previous,
            change_percent=change,
            volatility=Decimal(repr(computation.extras["volatility"])).quantize(Decimal("0.0001")),
            updated_at_ms=to_ms(now),
        )
