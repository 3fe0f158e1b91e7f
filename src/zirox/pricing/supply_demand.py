"""ZiroX supply/demand price strategy.

Price = base * supply_factor * demand_factor * daily_volatility * micro_fluctuation

- supply_factor: 1 + (total_claimed / max_supply) * 1.5, so 1.0 to 2.5
- demand_factor: 1 + min(users / 100, 1.5) + min(completed_trades / 50, 0.5)
- daily_volatility: seeded by day of year; up-days move +1% to +10%,
  down-days move 0% to -10%
- micro_fluctuation: seeded by second of day, +/-0.1%

The seeded terms make the curve a pure function of the counters and the
wall clock: two evaluations in the same second with the same counters agree.
"""

import asyncio
from datetime import datetime
from decimal import Decimal

from zirox.clock import day_of_year, seconds_of_day
from zirox.logging import get_logger
from zirox.pricing.seeding import SeedSource, SineFraction
from zirox.pricing.strategy import PriceComputation, PriceStrategy
from zirox.storage.store import LedgerStore

logger = get_logger(__name__)

DEFAULT_MAX_SUPPLY = 200000.0
DAILY_SEED_MULTIPLIER = 12345
UP_DAY_THRESHOLD = 0.75


def supply_factor(total_claimed: float, max_supply: float) -> float:
    utilization = total_claimed / max_supply
    return 1 + utilization * 1.5


def demand_factor(total_users: int, completed_trades: int) -> float:
    active_users_factor = min(total_users / 100, 1.5)
    trade_activity_factor = min(completed_trades / 50, 0.5)
    return 1 + active_users_factor + trade_activity_factor


def daily_volatility(random_value: float) -> float:
    if random_value < UP_DAY_THRESHOLD:
        return 1 + 0.01 + random_value * 0.09
    return 1 - (random_value - UP_DAY_THRESHOLD) * 0.4


def micro_fluctuation(random_value: float) -> float:
    return 1 + (random_value - 0.5) * 0.002


class SupplyDemandStrategy(PriceStrategy):
    """Deterministic supply/demand pricing over the ledger counters.

    Args:
        store: Ledger store providing supply, account, trade and price reads.
        base_price: Multiplier applied to the composed factors.
        seed_source: Maps integer seeds to [0, 1). Defaults to SineFraction.
    """

    name = "supply_demand"

    def __init__(
        self,
        store: LedgerStore,
        base_price: float = 1.0,
        seed_source: SeedSource | None = None,
    ) -> None:
        self._store = store
        self._base_price = base_price
        self._seed_source = seed_source or SineFraction()

    async def compute(self, now: datetime) -> PriceComputation:
        supply_res, users_res, trades_res, latest_res = await asyncio.gather(
            self._store.get_global_supply(),
            self._store.count_accounts(),
            self._store.count_completed_trades(),
            self._store.get_latest_price(self.name),
            return_exceptions=True,
        )

        if isinstance(supply_res, BaseException):
            logger.warning("price_input_unavailable", input="global_supply", error=str(supply_res))
            total_claimed, max_supply = 0.0, DEFAULT_MAX_SUPPLY
        else:
            total_claimed = float(supply_res.total_claimed)
            max_supply = float(supply_res.max_supply) or DEFAULT_MAX_SUPPLY

        if isinstance(users_res, BaseException):
            logger.warning("price_input_unavailable", input="total_users", error=str(users_res))
            users_res = 0
        total_users = users_res or 1

        if isinstance(trades_res, BaseException):
            logger.warning("price_input_unavailable", input="completed_trades", error=str(trades_res))
            trades_res = 0
        completed_trades = trades_res

        if isinstance(latest_res, BaseException):
            logger.warning("price_input_unavailable", input="previous_price", error=str(latest_res))
            latest_res = None
        if latest_res is not None and latest_res.price > 0:
            previous_price = latest_res.price
        else:
            previous_price = Decimal("1.0")

        s_factor = supply_factor(total_claimed, max_supply)
        d_factor = demand_factor(total_users, completed_trades)

        day = day_of_year(now)
        daily_random = self._seed_source.sample(day * DAILY_SEED_MULTIPLIER)
        d_volatility = daily_volatility(daily_random)

        micro_random = self._seed_source.sample(seconds_of_day(now))
        m_fluctuation = micro_fluctuation(micro_random)

        raw_price = self._base_price * s_factor * d_factor * d_volatility * m_fluctuation

        factors = {
            "supply_factor": s_factor,
            "demand_factor": d_factor,
            "daily_volatility": d_volatility,
            "micro_fluctuation": m_fluctuation,
            "day_of_year": day,
            "total_users": total_users,
            "completed_trades": completed_trades,
        }
        logger.debug("supply_demand_factors", raw_price=raw_price, **factors)

        return PriceComputation(
            raw_price=raw_price,
            previous_price=previous_price,
            factors=factors,
        )
