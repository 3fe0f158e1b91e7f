"""SQLite schema and connection lifecycle for the ZiroX ledger.

Token amounts are INTEGER base units so the supply ceiling can be enforced
by a single conditional UPDATE. Prices and fiat amounts are TEXT and are
read back as Decimal.
"""

import os
from typing import Self

import aiosqlite

from zirox.exceptions import ExternalOperationError
from zirox.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS global_supply (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    total_claimed_units INTEGER NOT NULL DEFAULT 0,
    max_supply_units INTEGER NOT NULL,
    updated_at_ms INTEGER,
    CHECK (total_claimed_units >= 0 AND total_claimed_units <= max_supply_units)
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    balance_units INTEGER NOT NULL DEFAULT 0 CHECK (balance_units >= 0),
    last_claim_ms INTEGER,
    referred_by TEXT REFERENCES accounts(id),
    referral_earnings_units INTEGER NOT NULL DEFAULT 0,
    created_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS claims (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL REFERENCES accounts(id),
    amount_units INTEGER NOT NULL,
    claimed_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS price_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    strategy TEXT NOT NULL,
    price TEXT NOT NULL,
    change_percent TEXT NOT NULL,
    observed_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS daily_prices (
    strategy TEXT NOT NULL,
    day TEXT NOT NULL,
    opening_price TEXT NOT NULL,
    closing_price TEXT NOT NULL,
    daily_change_percent TEXT NOT NULL,
    updated_at_ms INTEGER NOT NULL,
    PRIMARY KEY (strategy, day)
);

CREATE TABLE IF NOT EXISTS trades (
    id TEXT PRIMARY KEY,
    buyer_id TEXT NOT NULL,
    seller_id TEXT NOT NULL,
    token_amount TEXT NOT NULL,
    total_fiat TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS commissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    referrer_id TEXT NOT NULL,
    referred_user_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    bonus_units INTEGER NOT NULL DEFAULT 0,
    type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL,
    UNIQUE (source_id, referrer_id, referred_user_id, type)
);

CREATE TABLE IF NOT EXISTS commission_intents (
    claim_id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    referrer_id TEXT NOT NULL,
    claim_amount_units INTEGER NOT NULL,
    status TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL,
    completed_at_ms INTEGER
);

CREATE TABLE IF NOT EXISTS gx_price_references (
    reference_date TEXT PRIMARY KEY,
    price TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS gx_current_price (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    price TEXT NOT NULL,
    previous_price TEXT NOT NULL,
    change_percent TEXT NOT NULL,
    volatility_factor TEXT NOT NULL,
    updated_at_ms INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_price_samples_strategy_ts
    ON price_samples(strategy, observed_at_ms);

CREATE INDEX IF NOT EXISTS idx_trades_status
    ON trades(status);

CREATE INDEX IF NOT EXISTS idx_trades_created
    ON trades(created_at_ms);

CREATE INDEX IF NOT EXISTS idx_commissions_referrer
    ON commissions(referrer_id, created_at_ms);

CREATE INDEX IF NOT EXISTS idx_intents_status
    ON commission_intents(status);
"""


_PRAGMAS = (
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
    ("foreign_keys", "ON"),
)


class ZiroxDatabase:
    """Owns the single aiosqlite connection shared by LedgerStore.

    Writes are serialized by LedgerStore, not here. Opening a file written
    by a newer schema version fails instead of silently running old SQL
    against it.

    Usage:
        async with ZiroxDatabase("data/zirox.db") as database:
            store = LedgerStore(database)
    """

    def __init__(self, db_path: str = "data/zirox.db", busy_timeout_ms: int = 5000) -> None:
        self._db_path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("ZiroxDatabase is not connected")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        connection = await aiosqlite.connect(self._db_path)
        try:
            for name, value in _PRAGMAS:
                await connection.execute(f"PRAGMA {name}={value}")
            # a second process holding the write lock: wait instead of failing fast
            await connection.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")

            await connection.executescript(_CREATE_TABLES_SQL + _CREATE_INDEXES_SQL)
            await connection.commit()
            version = await self._check_schema_version(connection)
        except BaseException:
            await connection.close()
            raise

        self._connection = connection
        logger.info("zirox_db_connected", db_path=self._db_path, schema_version=version)

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("zirox_db_closed", db_path=self._db_path)

    @staticmethod
    async def _check_schema_version(connection: aiosqlite.Connection) -> int:
        cursor = await connection.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        stored = row[0] if row else None
        if stored is None:
            await connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            await connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)
            return SCHEMA_VERSION
        if stored > SCHEMA_VERSION:
            raise ExternalOperationError(
                f"Database schema v{stored} is newer than supported v{SCHEMA_VERSION}",
                reason="schema",
            )
        return stored

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
