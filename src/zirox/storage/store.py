"""Typed SQLite read/write abstraction for ZiroX state.

Provides LedgerStore, which implements every external collaborator
operation the price oracle, claim gate and referral service consume.
All SQL is isolated behind this interface.

CRITICAL: Token amounts are stored as INTEGER base units (10^8 per token) so
the supply ceiling can be enforced inside a single conditional UPDATE.
Prices and fiat values are stored as TEXT and restored as Decimal on read.

Every write goes through ``_transaction()`` and every read through
``_fetchone()`` / ``_fetchall()``. All three hold the same asyncio lock. The
aiosqlite connection is shared, so an unlocked read would see the rows of a
transaction another coroutine has not committed yet (and may roll back), and
an unlocked commit could close a transaction still being built.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import aiosqlite

from zirox.clock import now_ms, percent_change, round_money
from zirox.exceptions import (
    CooldownActiveError,
    ExternalOperationError,
    NotFoundError,
    SupplyExhaustedError,
    ValidationError,
)
from zirox.logging import get_logger
from zirox.models import (
    Account,
    AtomicClaimResult,
    CommissionIntent,
    CommissionRecord,
    CommissionType,
    DailyPriceRecord,
    GlobalSupply,
    IntentStatus,
    PriceSample,
    TradeRecord,
    TradeStatus,
)
from zirox.storage.database import ZiroxDatabase

logger = get_logger(__name__)

UNITS_PER_TOKEN = 10**8
_UNITS = Decimal(UNITS_PER_TOKEN)


def to_units(amount: Decimal) -> int:
    """Convert a token amount to integer base units.

    Raises ValidationError for negative amounts or sub-unit precision.
    """
    scaled = amount * _UNITS
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount {amount} exceeds 8 decimal places")
    if scaled < 0:
        raise ValidationError(f"Amount {amount} must not be negative")
    return int(scaled)


def from_units(units: int) -> Decimal:
    return Decimal(units) / _UNITS


class LedgerStore:
    """Async SQLite store for supply, accounts, prices, trades and commissions.

    Usage:
        async with ZiroxDatabase("data/zirox.db") as database:
            store = LedgerStore(database)
            supply = await store.get_global_supply()
    """

    def __init__(self, database: ZiroxDatabase) -> None:
        self._database = database
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize a write transaction; commit on success, roll back otherwise."""
        async with self._lock:
            db = self._database.db
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            else:
                await db.commit()

    async def _fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        async with self._lock:
            cursor = await self._database.db.execute(sql, params)
            return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        async with self._lock:
            cursor = await self._database.db.execute(sql, params)
            return list(await cursor.fetchall())

    # ──────────────────────────────────────────────
    # Global supply
    # ──────────────────────────────────────────────

    async def ensure_global_supply(self, max_supply: Decimal) -> None:
        """Create the singleton supply row if it does not exist yet."""
        async with self._transaction() as db:
            await db.execute(
                "INSERT OR IGNORE INTO global_supply "
                "(id, total_claimed_units, max_supply_units, updated_at_ms) "
                "VALUES (1, 0, ?, ?)",
                (to_units(max_supply), now_ms()),
            )

    async def get_global_supply(self) -> GlobalSupply:
        """Read the supply counter. Raises NotFoundError if never initialized."""
        row = await self._fetchone(
            "SELECT total_claimed_units, max_supply_units FROM global_supply WHERE id = 1"
        )
        if row is None:
            raise NotFoundError("Global supply not initialized")
        return GlobalSupply(
            total_claimed=from_units(row[0]),
            max_supply=from_units(row[1]),
        )

    async def set_max_supply(self, max_supply: Decimal) -> None:
        """Operator action: move the ceiling. Cannot drop below what is already claimed."""
        async with self._transaction() as db:
            cursor = await db.execute(
                "UPDATE global_supply SET max_supply_units = ?, updated_at_ms = ? "
                "WHERE id = 1 AND total_claimed_units <= ?",
                (to_units(max_supply), now_ms(), to_units(max_supply)),
            )
            if cursor.rowcount == 0:
                raise ValidationError("Max supply cannot be below total claimed")
        logger.info("max_supply_updated", max_supply=str(max_supply))

    # ──────────────────────────────────────────────
    # Accounts
    # ──────────────────────────────────────────────

    async def create_account(
        self,
        account_id: str,
        referred_by: str | None = None,
        balance: Decimal = Decimal("0"),
    ) -> Account:
        """Insert a new account. referred_by is fixed from here on."""
        if not account_id:
            raise ValidationError("Account id is required")
        if referred_by == account_id:
            raise ValidationError("An account cannot refer itself")
        async with self._transaction() as db:
            try:
                await db.execute(
                    "INSERT INTO accounts "
                    "(id, balance_units, last_claim_ms, referred_by, created_at_ms) "
                    "VALUES (?, ?, NULL, ?, ?)",
                    (account_id, to_units(balance), referred_by, now_ms()),
                )
            except aiosqlite.IntegrityError as exc:
                raise ValidationError(f"Cannot create account {account_id}: {exc}") from exc
        return Account(id=account_id, balance=balance, referred_by=referred_by)

    async def get_account(self, account_id: str) -> Account | None:
        row = await self._fetchone(
            "SELECT id, balance_units, last_claim_ms, referred_by, referral_earnings_units "
            "FROM accounts WHERE id = ?",
            (account_id,),
        )
        if row is None:
            return None
        return Account(
            id=row[0],
            balance=from_units(row[1]),
            last_claim_ms=row[2],
            referred_by=row[3],
            referral_earnings=from_units(row[4]),
        )

    async def count_accounts(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM accounts")
        return int(row[0]) if row else 0

    # ──────────────────────────────────────────────
    # Atomic claim
    # ──────────────────────────────────────────────

    async def atomic_claim(
        self,
        account_id: str,
        amount: Decimal,
        claimed_at_ms: int,
        cooldown_ms: int,
        record_intent: bool = False,
    ) -> AtomicClaimResult:
        """Credit ``amount`` to the account and the global counter in one transaction.

        Both the cooldown and the ceiling are re-checked inside the UPDATE
        statements themselves, so concurrent claimants cannot overshoot
        max_supply regardless of what the caller pre-checked.

        Raises:
            NotFoundError: account or supply row missing.
            CooldownActiveError: last claim is younger than ``cooldown_ms``.
            SupplyExhaustedError: the increment would exceed max_supply.
            ExternalOperationError: any SQLite failure.
        """
        units = to_units(amount)
        if units <= 0:
            raise ValidationError("Claim amount must be positive")

        claim_id = uuid.uuid4().hex
        try:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "UPDATE accounts SET balance_units = balance_units + ?, last_claim_ms = ? "
                    "WHERE id = ? AND (last_claim_ms IS NULL OR ? - last_claim_ms >= ?)",
                    (units, claimed_at_ms, account_id, claimed_at_ms, cooldown_ms),
                )
                if cursor.rowcount == 0:
                    await self._raise_account_rejection(db, account_id, claimed_at_ms, cooldown_ms)

                cursor = await db.execute(
                    "UPDATE global_supply "
                    "SET total_claimed_units = total_claimed_units + ?, updated_at_ms = ? "
                    "WHERE id = 1 AND total_claimed_units + ? <= max_supply_units",
                    (units, claimed_at_ms, units),
                )
                if cursor.rowcount == 0:
                    cursor = await db.execute("SELECT 1 FROM global_supply WHERE id = 1")
                    if await cursor.fetchone() is None:
                        raise NotFoundError("Global supply not initialized")
                    raise SupplyExhaustedError("Not enough tokens remaining in global supply")

                await db.execute(
                    "INSERT INTO claims (id, account_id, amount_units, claimed_at_ms) "
                    "VALUES (?, ?, ?, ?)",
                    (claim_id, account_id, units, claimed_at_ms),
                )

                cursor = await db.execute(
                    "SELECT a.balance_units, a.referred_by, "
                    "g.total_claimed_units, g.max_supply_units "
                    "FROM accounts a, global_supply g WHERE a.id = ? AND g.id = 1",
                    (account_id,),
                )
                row = await cursor.fetchone()
                assert row is not None
                balance_units, referred_by, claimed_units, max_units = row

                if record_intent and referred_by:
                    await db.execute(
                        "INSERT INTO commission_intents "
                        "(claim_id, account_id, referrer_id, claim_amount_units, "
                        "status, created_at_ms) VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            claim_id,
                            account_id,
                            referred_by,
                            units,
                            IntentStatus.PENDING.value,
                            claimed_at_ms,
                        ),
                    )
        except aiosqlite.Error as exc:
            logger.error("atomic_claim_sql_error", account_id=account_id, error=str(exc))
            raise ExternalOperationError("Atomic claim failed", reason="storage") from exc

        result = AtomicClaimResult(
            claim_id=claim_id,
            claimed_amount=amount,
            new_balance=from_units(balance_units),
            global_claimed=from_units(claimed_units),
            global_remaining=from_units(max_units - claimed_units),
            claimed_at_ms=claimed_at_ms,
        )
        logger.info(
            "atomic_claim_committed",
            account_id=account_id,
            claim_id=claim_id,
            amount=str(amount),
            global_claimed=str(result.global_claimed),
        )
        return result

    async def _raise_account_rejection(
        self,
        db: aiosqlite.Connection,
        account_id: str,
        claimed_at_ms: int,
        cooldown_ms: int,
    ) -> None:
        cursor = await db.execute(
            "SELECT last_claim_ms FROM accounts WHERE id = ?", (account_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Account {account_id} not found")
        remaining = cooldown_ms - (claimed_at_ms - row[0])
        raise CooldownActiveError(remaining_ms=max(remaining, 0))

    # ──────────────────────────────────────────────
    # Commissions
    # ──────────────────────────────────────────────

    async def record_commission(self, record: CommissionRecord) -> bool:
        """Insert a commission and credit the referrer, once per triggering event.

        The referrer's balance grows by ``bonus_tokens`` and its
        referral_earnings by ``amount``. Returns False when a record for
        the same (source_id, referrer_id, referred_user_id, type)
        already exists.
        """
        if record.amount < 0:
            raise ValidationError("Commission amount must not be negative")
        bonus_units = to_units(record.bonus_tokens)
        try:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "INSERT OR IGNORE INTO commissions "
                    "(referrer_id, referred_user_id, amount, bonus_units, type, "
                    "source_id, created_at_ms) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.referrer_id,
                        record.referred_user_id,
                        str(record.amount),
                        bonus_units,
                        record.type.value,
                        record.source_id,
                        record.created_at_ms,
                    ),
                )
                if cursor.rowcount == 0:
                    return False
                cursor = await db.execute(
                    "UPDATE accounts SET balance_units = balance_units + ?, "
                    "referral_earnings_units = referral_earnings_units + ? WHERE id = ?",
                    (bonus_units, to_units(round_units(record.amount)), record.referrer_id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"Referrer {record.referrer_id} not found")
        except aiosqlite.Error as exc:
            raise ExternalOperationError("Failed to record commission") from exc
        return True

    async def get_commissions(
        self, referrer_id: str, limit: int = 100
    ) -> list[CommissionRecord]:
        rows = await self._fetchall(
            "SELECT referrer_id, referred_user_id, amount, type, source_id, "
            "created_at_ms, bonus_units FROM commissions WHERE referrer_id = ? "
            "ORDER BY created_at_ms DESC, id DESC LIMIT ?",
            (referrer_id, limit),
        )
        return [
            CommissionRecord(
                referrer_id=row[0],
                referred_user_id=row[1],
                amount=Decimal(row[2]),
                type=CommissionType(row[3]),
                source_id=row[4],
                created_at_ms=row[5],
                bonus_tokens=from_units(row[6]),
            )
            for row in rows
        ]

    async def get_pending_intents(self, limit: int = 100) -> list[CommissionIntent]:
        rows = await self._fetchall(
            "SELECT claim_id, account_id, referrer_id, claim_amount_units, status, "
            "created_at_ms FROM commission_intents WHERE status = ? "
            "ORDER BY created_at_ms ASC LIMIT ?",
            (IntentStatus.PENDING.value, limit),
        )
        return [
            CommissionIntent(
                claim_id=row[0],
                account_id=row[1],
                referrer_id=row[2],
                claim_amount=from_units(row[3]),
                status=IntentStatus(row[4]),
                created_at_ms=row[5],
            )
            for row in rows
        ]

    async def mark_intent(self, claim_id: str, status: IntentStatus) -> None:
        async with self._transaction() as db:
            await db.execute(
                "UPDATE commission_intents SET status = ?, completed_at_ms = ? "
                "WHERE claim_id = ?",
                (status.value, now_ms(), claim_id),
            )

    # ──────────────────────────────────────────────
    # Trades
    # ──────────────────────────────────────────────

    async def create_trade(self, trade: TradeRecord) -> None:
        async with self._transaction() as db:
            await db.execute(
                "INSERT INTO trades "
                "(id, buyer_id, seller_id, token_amount, total_fiat, status, created_at_ms) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    trade.id,
                    trade.buyer_id,
                    trade.seller_id,
                    str(trade.token_amount),
                    str(trade.total_fiat),
                    trade.status.value,
                    trade.created_at_ms,
                ),
            )

    async def get_trade(self, trade_id: str) -> TradeRecord | None:
        row = await self._fetchone(
            "SELECT id, buyer_id, seller_id, token_amount, total_fiat, status, "
            "created_at_ms FROM trades WHERE id = ?",
            (trade_id,),
        )
        if row is None:
            return None
        return TradeRecord(
            id=row[0],
            buyer_id=row[1],
            seller_id=row[2],
            token_amount=Decimal(row[3]),
            total_fiat=Decimal(row[4]),
            status=TradeStatus(row[5]),
            created_at_ms=row[6],
        )

    async def set_trade_status(self, trade_id: str, status: TradeStatus) -> None:
        async with self._transaction() as db:
            cursor = await db.execute(
                "UPDATE trades SET status = ? WHERE id = ?", (status.value, trade_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Trade {trade_id} not found")

    async def count_completed_trades(self) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) FROM trades WHERE status = ?",
            (TradeStatus.COMPLETED.value,),
        )
        return int(row[0]) if row else 0

    async def count_trades_since(self, since_ms: int) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) FROM trades WHERE created_at_ms >= ?", (since_ms,)
        )
        return int(row[0]) if row else 0

    # ──────────────────────────────────────────────
    # Price history
    # ──────────────────────────────────────────────

    async def append_price_sample(self, sample: PriceSample, strategy: str) -> None:
        async with self._transaction() as db:
            await db.execute(
                "INSERT INTO price_samples (strategy, price, change_percent, observed_at_ms) "
                "VALUES (?, ?, ?, ?)",
                (strategy, str(sample.price), str(sample.change_percent), sample.observed_at_ms),
            )

    async def get_latest_price(self, strategy: str | None = None) -> PriceSample | None:
        """Most recent sample, optionally restricted to one strategy."""
        if strategy is None:
            row = await self._fetchone(
                "SELECT price, change_percent, observed_at_ms FROM price_samples "
                "ORDER BY observed_at_ms DESC, id DESC LIMIT 1"
            )
        else:
            row = await self._fetchone(
                "SELECT price, change_percent, observed_at_ms FROM price_samples "
                "WHERE strategy = ? ORDER BY observed_at_ms DESC, id DESC LIMIT 1",
                (strategy,),
            )
        if row is None:
            return None
        return PriceSample(
            price=Decimal(row[0]),
            change_percent=Decimal(row[1]),
            observed_at_ms=row[2],
        )

    async def get_price_history(
        self, strategy: str, limit: int = 100
    ) -> list[PriceSample]:
        """Latest ``limit`` samples for a strategy, newest first."""
        rows = await self._fetchall(
            "SELECT price, change_percent, observed_at_ms FROM price_samples "
            "WHERE strategy = ? ORDER BY observed_at_ms DESC, id DESC LIMIT ?",
            (strategy, limit),
        )
        return [
            PriceSample(price=Decimal(r[0]), change_percent=Decimal(r[1]), observed_at_ms=r[2])
            for r in rows
        ]

    async def get_daily_record(self, day: date, strategy: str) -> DailyPriceRecord | None:
        row = await self._fetchone(
            "SELECT day, opening_price, closing_price, daily_change_percent "
            "FROM daily_prices WHERE strategy = ? AND day = ?",
            (strategy, day.isoformat()),
        )
        if row is None:
            return None
        return _daily_from_row(row)

    async def get_daily_records(self, strategy: str, limit: int = 30) -> list[DailyPriceRecord]:
        rows = await self._fetchall(
            "SELECT day, opening_price, closing_price, daily_change_percent "
            "FROM daily_prices WHERE strategy = ? ORDER BY day DESC LIMIT ?",
            (strategy, limit),
        )
        return [_daily_from_row(row) for row in rows]

    async def upsert_daily_record(
        self, day: date, closing_price: Decimal, strategy: str
    ) -> DailyPriceRecord:
        """Create the day's record or move its close; opening_price never changes."""
        async with self._transaction() as db:
            cursor = await db.execute(
                "SELECT opening_price FROM daily_prices WHERE strategy = ? AND day = ?",
                (strategy, day.isoformat()),
            )
            row = await cursor.fetchone()
            if row is None:
                opening = closing_price
                change = Decimal("0")
                await db.execute(
                    "INSERT INTO daily_prices "
                    "(strategy, day, opening_price, closing_price, daily_change_percent, "
                    "updated_at_ms) VALUES (?, ?, ?, ?, ?, ?)",
                    (strategy, day.isoformat(), str(opening), str(closing_price), "0", now_ms()),
                )
            else:
                opening = Decimal(row[0])
                change = round_money(percent_change(closing_price, opening))
                await db.execute(
                    "UPDATE daily_prices SET closing_price = ?, daily_change_percent = ?, "
                    "updated_at_ms = ? WHERE strategy = ? AND day = ?",
                    (str(closing_price), str(change), now_ms(), strategy, day.isoformat()),
                )
        return DailyPriceRecord(
            day=day,
            opening_price=opening,
            closing_price=closing_price,
            daily_change_percent=change,
        )

    # ──────────────────────────────────────────────
    # GX reference state
    # ──────────────────────────────────────────────

    async def add_gx_reference(self, reference_date: date, price: Decimal) -> None:
        async with self._transaction() as db:
            await db.execute(
                "INSERT OR REPLACE INTO gx_price_references (reference_date, price) "
                "VALUES (?, ?)",
                (reference_date.isoformat(), str(price)),
            )

    async def get_latest_gx_reference(self) -> Decimal | None:
        row = await self._fetchone(
            "SELECT price FROM gx_price_references ORDER BY reference_date DESC LIMIT 1"
        )
        return Decimal(row[0]) if row else None

    async def get_gx_current_price(self) -> Decimal | None:
        row = await self._fetchone(
            "SELECT price FROM gx_current_price WHERE id = 1"
        )
        return Decimal(row[0]) if row else None

    async def set_gx_current_price(
        self,
        price: Decimal,
        previous_price: Decimal,
        change_percent: Decimal,
        volatility: Decimal,
        updated_at_ms: int,
    ) -> None:
        async with self._transaction() as db:
            await db.execute(
                "INSERT OR REPLACE INTO gx_current_price "
                "(id, price, previous_price, change_percent, volatility_factor, updated_at_ms) "
                "VALUES (1, ?, ?, ?, ?, ?)",
                (str(price), str(previous_price), str(change_percent), str(volatility), updated_at_ms),
            )


def round_units(value: Decimal) -> Decimal:
    """Round a fiat/token value to the 8 places base units can hold."""
    return value.quantize(Decimal(1) / _UNITS)


def _daily_from_row(row: tuple) -> DailyPriceRecord:
    return DailyPriceRecord(
        day=date.fromisoformat(row[0]),
        opening_price=Decimal(row[1]),
        closing_price=Decimal(row[2]),
        daily_change_percent=Decimal(row[3]),
    )
