"""Tests for the supply/demand strategy factors and its reads from the store."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from zirox.exceptions import NotFoundError
from zirox.models import PriceSample
from zirox.pricing.seeding import SeedSource
from zirox.pricing.supply_demand import (
    SupplyDemandStrategy,
    daily_volatility,
    demand_factor,
    micro_fluctuation,
    supply_factor,
)
from zirox.storage.store import LedgerStore

NOW = datetime(2026, 3, 10, 12, 30, 15, tzinfo=timezone.utc)


class ConstantSource(SeedSource):
    """Returns the same value for every seed and remembers the seeds."""

    def __init__(self, value: float) -> None:
        self.value = value
        self.seeds: list[int] = []

    def sample(self, seed: int) -> float:
        self.seeds.append(seed)
        return self.value


class TestFactors:
    def test_supply_factor_range(self) -> None:
        assert supply_factor(0, 200000) == 1.0
        assert supply_factor(100000, 200000) == pytest.approx(1.75)
        assert supply_factor(200000, 200000) == pytest.approx(2.5)

    def test_demand_factor_caps(self) -> None:
        assert demand_factor(50, 10) == pytest.approx(1.7)
        # users cap at 1.5, trades cap at 0.5
        assert demand_factor(1000, 1000) == pytest.approx(3.0)

    def test_daily_volatility_up_day(self) -> None:
        assert daily_volatility(0.0) == pytest.approx(1.01)
        assert daily_volatility(0.5) == pytest.approx(1.055)

    def test_daily_volatility_down_day(self) -> None:
        assert daily_volatility(0.75) == pytest.approx(1.0)
        assert daily_volatility(0.99) == pytest.approx(0.904)

    def test_micro_fluctuation_bounds(self) -> None:
        assert micro_fluctuation(0.5) == 1.0
        assert micro_fluctuation(0.0) == pytest.approx(0.999)
        assert micro_fluctuation(1.0) == pytest.approx(1.001)


class TestSupplyDemandStrategy:
    @pytest.mark.asyncio
    async def test_fresh_ledger(self, store: LedgerStore) -> None:
        """No users counts as one user; no samples means previous price 1.0."""
        source = ConstantSource(0.5)
        strategy = SupplyDemandStrategy(store, seed_source=source)

        result = await strategy.compute(NOW)

        # 1.0 * 1.0 * (1 + 0.01 + 0) * 1.055 * 1.0
        assert result.raw_price == pytest.approx(1.06555)
        assert result.previous_price == Decimal("1.0")
        assert result.factors["total_users"] == 1

    @pytest.mark.asyncio
    async def test_seeds_day_of_year_and_second_of_day(self, store: LedgerStore) -> None:
        source = ConstantSource(0.5)
        await SupplyDemandStrategy(store, seed_source=source).compute(NOW)

        # 10 March 2026 is day 69
        assert source.seeds == [69 * 12345, 12 * 3600 + 30 * 60 + 15]

    @pytest.mark.asyncio
    async def test_previous_price_from_latest_sample(self, store: LedgerStore) -> None:
        await store.append_price_sample(
            PriceSample(Decimal("2.40"), Decimal("0"), 1), strategy="supply_demand"
        )
        result = await SupplyDemandStrategy(store, seed_source=ConstantSource(0.5)).compute(NOW)
        assert result.previous_price == Decimal("2.40")

    @pytest.mark.asyncio
    async def test_failed_reads_use_defaults(self) -> None:
        store = AsyncMock(spec=LedgerStore)
        store.get_global_supply.side_effect = NotFoundError("missing")
        store.count_accounts.side_effect = RuntimeError("down")
        store.count_completed_trades.return_value = 0
        store.get_latest_price.return_value = None

        result = await SupplyDemandStrategy(store, seed_source=ConstantSource(0.5)).compute(NOW)

        assert result.factors["supply_factor"] == 1.0
        assert result.factors["total_users"] == 1
        assert result.raw_price == pytest.approx(1.06555)

    @pytest.mark.asyncio
    async def test_same_inputs_same_price(self, store: LedgerStore) -> None:
        strategy = SupplyDemandStrategy(store)
        first = await strategy.compute(NOW)
        second = await strategy.compute(NOW)
        assert first.raw_price == second.raw_price
