"""Shared test fixtures for the ZiroX core."""

from collections.abc import AsyncIterator
from decimal import Decimal

import pytest
import pytest_asyncio

from zirox.config import (
    AppSettings,
    ClaimSettings,
    PriceSettings,
    ReferralSettings,
    StorageSettings,
)
from zirox.storage.database import ZiroxDatabase
from zirox.storage.store import LedgerStore


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """Return AppSettings with test defaults (temp database, polling off)."""
    return AppSettings(
        log_level="DEBUG",
        claim=ClaimSettings(),
        price=PriceSettings(poll_enabled=False),
        referral=ReferralSettings(),
        storage=StorageSettings(db_path=str(tmp_path / "zirox.db")),
    )


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncIterator[ZiroxDatabase]:
    async with ZiroxDatabase(str(tmp_path / "zirox.db")) as db:
        yield db


@pytest_asyncio.fixture
async def store(database: ZiroxDatabase) -> LedgerStore:
    """LedgerStore over a fresh database with the default 200,000 ceiling."""
    ledger = LedgerStore(database)
    await ledger.ensure_global_supply(Decimal("200000"))
    return ledger
