"""Tests for PriceOracle -- rounding, persistence, daily records, fallback, single-flight."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from zirox.config import PriceSettings
from zirox.pricing.oracle import PriceOracle, build_strategy
from zirox.pricing.reference_walk import ReferenceWalkStrategy
from zirox.pricing.seeding import SeededUniform, SineFraction
from zirox.pricing.strategy import PriceComputation, PriceStrategy
from zirox.pricing.supply_demand import SupplyDemandStrategy
from zirox.storage.store import LedgerStore

DAY_ONE = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
DAY_TWO = datetime(2026, 3, 11, 0, 5, tzinfo=timezone.utc)


class ScriptedStrategy(PriceStrategy):
    """Returns queued raw prices; previous price is always 1.0."""

    name = "scripted"

    def __init__(self, prices: list[float], delay: float = 0.0) -> None:
        self.prices = list(prices)
        self.delay = delay
        self.calls = 0

    async def compute(self, now: datetime) -> PriceComputation:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return PriceComputation(raw_price=self.prices.pop(0), previous_price=Decimal("1.0"))


class BrokenStrategy(PriceStrategy):
    name = "broken"

    async def compute(self, now: datetime) -> PriceComputation:
        raise RuntimeError("counter read failed")


class MovingClock:
    def __init__(self, *moments: datetime) -> None:
        self.moments = list(moments)

    def __call__(self) -> datetime:
        return self.moments.pop(0) if len(self.moments) > 1 else self.moments[0]


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_rounds_and_persists(self, store: LedgerStore) -> None:
        oracle = PriceOracle(store, ScriptedStrategy([1.234]), clock=lambda: DAY_ONE)

        quote = await oracle.evaluate()

        assert quote.price == Decimal("1.23")
        assert quote.price.as_tuple().exponent == -2
        assert quote.change_percent == Decimal("23.40")
        assert quote.is_green is True
        latest = await oracle.latest()
        assert latest is not None
        assert latest.price == Decimal("1.23")

    @pytest.mark.asyncio
    async def test_red_when_price_falls(self, store: LedgerStore) -> None:
        oracle = PriceOracle(store, ScriptedStrategy([0.955]), clock=lambda: DAY_ONE)
        quote = await oracle.evaluate()
        assert quote.price == Decimal("0.96")
        assert quote.is_green is False

    @pytest.mark.asyncio
    async def test_daily_open_fixed_within_day(self, store: LedgerStore) -> None:
        clock = MovingClock(DAY_ONE, DAY_ONE, DAY_TWO)
        oracle = PriceOracle(store, ScriptedStrategy([1.50, 1.65, 1.70]), clock=clock)

        for _ in range(3):
            await oracle.evaluate()

        records = {r.day: r for r in await oracle.daily()}
        first = records[DAY_ONE.date()]
        assert first.opening_price == Decimal("1.50")
        assert first.closing_price == Decimal("1.65")
        assert first.daily_change_percent == Decimal("10.00")

        second = records[DAY_TWO.date()]
        assert second.opening_price == Decimal("1.70")
        assert second.daily_change_percent == Decimal("0")

    @pytest.mark.asyncio
    async def test_history_newest_first(self, store: LedgerStore) -> None:
        clock = MovingClock(DAY_ONE, DAY_TWO)
        oracle = PriceOracle(store, ScriptedStrategy([1.10, 1.20]), clock=clock)
        await oracle.evaluate()
        await oracle.evaluate()

        history = await oracle.history(limit=10)
        assert [s.price for s in history] == [Decimal("1.20"), Decimal("1.10")]


class TestFallback:
    @pytest.mark.asyncio
    async def test_strategy_error_returns_neutral_quote(self, store: LedgerStore) -> None:
        oracle = PriceOracle(store, BrokenStrategy(), fallback_price=Decimal("1.0"))

        quote = await oracle.evaluate()

        assert quote.price == Decimal("1.00")
        assert quote.price.as_tuple().exponent == -2
        assert quote.previous_price.as_tuple().exponent == -2
        assert quote.change_percent == Decimal("0")
        assert quote.is_green is True
        assert quote.extras["fallback"] is True
        assert await store.get_latest_price() is None

    @pytest.mark.asyncio
    async def test_timeout_returns_neutral_quote(self, store: LedgerStore) -> None:
        oracle = PriceOracle(
            store, ScriptedStrategy([1.5], delay=1.0), timeout=0.05, clock=lambda: DAY_ONE
        )
        quote = await oracle.evaluate()
        assert quote.extras.get("fallback") is True

    @pytest.mark.asyncio
    async def test_non_positive_price_rejected(self, store: LedgerStore) -> None:
        oracle = PriceOracle(store, ScriptedStrategy([0.001]), clock=lambda: DAY_ONE)
        quote = await oracle.evaluate()
        assert quote.extras.get("fallback") is True


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_evaluation(self, store: LedgerStore) -> None:
        strategy = ScriptedStrategy([1.5], delay=0.05)
        oracle = PriceOracle(store, strategy, clock=lambda: DAY_ONE)

        first, second = await asyncio.gather(oracle.evaluate(), oracle.evaluate())

        assert strategy.calls == 1
        assert first == second
        assert len(await oracle.history()) == 1

    @pytest.mark.asyncio
    async def test_sequential_calls_evaluate_again(self, store: LedgerStore) -> None:
        strategy = ScriptedStrategy([1.5, 1.6])
        oracle = PriceOracle(store, strategy, clock=lambda: DAY_ONE)
        await oracle.evaluate()
        await oracle.evaluate()
        assert strategy.calls == 2


class TestBuildStrategy:
    def test_default_is_supply_demand(self, store: LedgerStore) -> None:
        assert isinstance(build_strategy(PriceSettings(), store), SupplyDemandStrategy)

    def test_reference_walk(self, store: LedgerStore) -> None:
        settings = PriceSettings(strategy="reference_walk")
        assert isinstance(build_strategy(settings, store), ReferenceWalkStrategy)

    def test_seed_source_defaults_to_sine_fraction(self, store: LedgerStore) -> None:
        strategy = build_strategy(PriceSettings(), store)
        assert isinstance(strategy._seed_source, SineFraction)

    def test_seeded_uniform_selected_by_setting(self, store: LedgerStore) -> None:
        strategy = build_strategy(PriceSettings(seed_source="seeded_uniform"), store)
        assert isinstance(strategy, SupplyDemandStrategy)
        assert isinstance(strategy._seed_source, SeededUniform)
