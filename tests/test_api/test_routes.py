"""Tests for the JSON API routes, served in-process over httpx's ASGI transport."""

from collections.abc import AsyncIterator
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from zirox.api.app import create_app
from zirox.claims.gate import ClaimGate
from zirox.config import ClaimSettings, ReferralSettings
from zirox.models import TradeRecord, TradeStatus
from zirox.pricing.oracle import PriceOracle
from zirox.pricing.strategy import PriceComputation, PriceStrategy
from zirox.referrals.service import ReferralService
from zirox.storage.store import LedgerStore

T0 = 1_760_000_000_000
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FlatStrategy(PriceStrategy):
    name = "flat"

    async def compute(self, now: datetime) -> PriceComputation:
        return PriceComputation(raw_price=1.5, previous_price=Decimal("1.0"))


@pytest_asyncio.fixture
async def app(store: LedgerStore) -> FastAPI:
    application = create_app()
    referrals = ReferralService(store, ReferralSettings())
    application.state.oracle = PriceOracle(store, FlatStrategy(), clock=lambda: NOW)
    application.state.referrals = referrals
    application.state.gate = ClaimGate(store, ClaimSettings(), referrals, clock_ms=lambda: T0)
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestPriceRoutes:
    @pytest.mark.asyncio
    async def test_evaluate(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/price")

        assert response.status_code == 200
        body = response.json()
        assert body["price"] == "1.50"
        assert body["change_percent"] == "50.00"
        assert body["is_green"] is True
        assert body["strategy"] == "flat"

    @pytest.mark.asyncio
    async def test_latest_before_any_sample(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/price/latest")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_latest_history_and_daily(self, client: httpx.AsyncClient) -> None:
        await client.get("/api/price")

        latest = await client.get("/api/price/latest")
        assert latest.json()["price"] == "1.50"

        history = await client.get("/api/price/history", params={"limit": 5})
        assert [s["price"] for s in history.json()] == ["1.50"]

        daily = await client.get("/api/price/daily")
        assert daily.json()[0]["date"] == "2026-03-10"
        assert daily.json()[0]["opening_price"] == "1.50"

    @pytest.mark.asyncio
    async def test_history_limit_validated(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/price/history", params={"limit": 0})
        assert response.status_code == 422


class TestClaimRoutes:
    @pytest.mark.asyncio
    async def test_claim_then_cooldown(self, client: httpx.AsyncClient, store: LedgerStore) -> None:
        await store.create_account("alice")
        headers = {"X-Account-Id": "alice"}

        status = await client.get("/api/claims/status", headers=headers)
        assert status.json()["can_claim"] is True
        assert status.json()["state"] == "never_claimed"

        claimed = await client.post("/api/claims", headers=headers)
        assert claimed.status_code == 200
        assert claimed.json()["success"] is True
        assert claimed.json()["new_balance"] == "3"

        again = await client.post("/api/claims", headers=headers)
        assert again.status_code == 429
        assert again.json()["error_code"] == "COOLDOWN_ACTIVE"
        assert again.json()["remaining_ms"] == 3 * 60 * 60 * 1000

    @pytest.mark.asyncio
    async def test_missing_header(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/claims")
        assert response.status_code == 401
        assert response.json()["error_code"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_unknown_profile(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/claims", headers={"X-Account-Id": "ghost"})
        assert response.status_code == 404
        assert response.json()["error_code"] == "PROFILE_NOT_FOUND"


class TestTradeRoutes:
    @pytest.mark.asyncio
    async def test_settle(self, client: httpx.AsyncClient, store: LedgerStore) -> None:
        await store.create_account("ref")
        await store.create_account("buyer", referred_by="ref")
        await store.create_account("seller")
        await store.create_trade(
            TradeRecord(
                id="trade-1",
                buyer_id="buyer",
                seller_id="seller",
                token_amount=Decimal("10"),
                total_fiat=Decimal("20"),
                status=TradeStatus.COMPLETED,
                created_at_ms=T0,
            )
        )

        response = await client.post(
            "/api/trades/trade-1/commissions", headers={"X-Account-Id": "seller"}
        )

        assert response.status_code == 200
        commissions = response.json()["commissions"]
        assert len(commissions) == 1
        assert commissions[0]["referrer_id"] == "ref"
        assert commissions[0]["type"] == "trade_commission"

    @pytest.mark.asyncio
    async def test_unknown_trade(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/trades/nope/commissions", headers={"X-Account-Id": "buyer"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_account(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/trades/trade-1/commissions")
        assert response.status_code == 401
