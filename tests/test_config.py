"""Tests for settings loading and component wiring."""

from decimal import Decimal

import pytest

from zirox.config import AppSettings, ClaimSettings, PriceSettings, ReferralSettings
from zirox.main import _build_components, _start_components, _stop_components
from zirox.pricing.reference_walk import ReferenceWalkStrategy


class TestSettings:
    def test_defaults(self) -> None:
        claim = ClaimSettings()
        assert claim.amount == Decimal("3")
        assert claim.cooldown_seconds == 10800
        assert claim.default_max_supply == Decimal("200000")

        referral = ReferralSettings()
        assert referral.claim_commission_rate == Decimal("0.05")
        assert referral.referrer_claim_bonus == Decimal("0.3")
        assert referral.durable_intents is False

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLAIM_AMOUNT", "5")
        monkeypatch.setenv("CLAIM_COOLDOWN_SECONDS", "60")
        monkeypatch.setenv("PRICE_STRATEGY", "reference_walk")

        assert ClaimSettings().amount == Decimal("5")
        assert ClaimSettings().cooldown_seconds == 60
        assert PriceSettings().strategy == "reference_walk"

    def test_seed_source_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert PriceSettings().seed_source == "sine_fraction"
        monkeypatch.setenv("PRICE_SEED_SOURCE", "seeded_uniform")
        assert PriceSettings().seed_source == "seeded_uniform"

    def test_unknown_strategy_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PRICE_STRATEGY", "coin_flip")
        with pytest.raises(ValueError):
            PriceSettings()


class TestComponents:
    def test_build_selects_strategy(self, mock_settings: AppSettings) -> None:
        mock_settings.price = PriceSettings(strategy="reference_walk", poll_enabled=False)
        components = _build_components(mock_settings)
        assert components["oracle"].strategy_name == ReferenceWalkStrategy.name
        assert set(components) == {"database", "store", "oracle", "referrals", "gate", "poller"}

    @pytest.mark.asyncio
    async def test_start_seeds_supply(self, mock_settings: AppSettings) -> None:
        components = _build_components(mock_settings)
        await _start_components(mock_settings, components)
        try:
            supply = await components["store"].get_global_supply()
            assert supply.max_supply == Decimal("200000")
            assert not components["poller"].is_running
        finally:
            await _stop_components(components)
