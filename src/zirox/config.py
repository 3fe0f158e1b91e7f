"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClaimSettings(BaseSettings):
    """Claim reward and cooldown parameters."""

    model_config = SettingsConfigDict(env_prefix="CLAIM_")

    amount: Decimal = Decimal("3")  # tokens per claim
    cooldown_seconds: int = 10800  # 3 hours
    default_max_supply: Decimal = Decimal("200000")  # used when seeding global_supply


class PriceSettings(BaseSettings):
    """Price oracle configuration.

    ``strategy`` selects the pricing model for the deployment:
    - "supply_demand": ZiroX supply/demand/daily-trend formula
    - "reference_walk": GX bounded walk toward the daily reference target

    ``seed_source`` picks how supply_demand turns day/second seeds into [0, 1):
    "sine_fraction" keeps the historical curve, "seeded_uniform" draws from a
    seeded PRNG.
    """

    model_config = SettingsConfigDict(env_prefix="PRICE_")

    strategy: Literal["supply_demand", "reference_walk"] = "supply_demand"
    base_price: float = 1.0
    seed_source: Literal["sine_fraction", "seeded_uniform"] = "sine_fraction"  # supply_demand only
    fallback_price: Decimal = Decimal("1.0")
    gx_default_reference: Decimal = Decimal("16.0")
    poll_enabled: bool = True
    poll_interval_seconds: float = 300.0  # 5 minutes


class ReferralSettings(BaseSettings):
    """Referral commission parameters."""

    model_config = SettingsConfigDict(env_prefix="REFERRAL_")

    claim_commission_rate: Decimal = Decimal("0.05")  # 5% of claim value in fiat
    referrer_claim_bonus: Decimal = Decimal("0.3")  # flat tokens per referred claim
    trade_commission_rate: Decimal = Decimal("0.10")  # 10% of trade value in fiat
    durable_intents: bool = False  # record a pending intent inside the claim transaction


class StorageSettings(BaseSettings):
    """SQLite storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/zirox.db"
    operation_timeout_seconds: float = 10.0


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True
    account_header: str = "X-Account-Id"  # set by the upstream auth proxy


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    claim: ClaimSettings = ClaimSettings()
    price: PriceSettings = PriceSettings()
    referral: ReferralSettings = ReferralSettings()
    storage: StorageSettings = StorageSettings()
    api: ApiSettings = ApiSettings()
