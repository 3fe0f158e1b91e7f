"""Shared data models for the ZiroX core.

CRITICAL: All token amounts and prices use Decimal. Floats appear only inside
the pricing formulas (which depend on math.sin) and are converted to Decimal
before anything is persisted or returned.

Timestamps are Unix milliseconds (UTC), matching the storage layer.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any


class ClaimState(str, Enum):
    """Per-account claim state, derived from account and global supply."""

    NEVER_CLAIMED = "never_claimed"
    COOLING_DOWN = "cooling_down"
    CLAIMABLE = "claimable"
    SUPPLY_EXHAUSTED = "supply_exhausted"


class ClaimErrorCode(str, Enum):
    """Failure reasons reported by ClaimGate.perform_claim."""

    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    GLOBAL_SUPPLY_EXHAUSTED = "GLOBAL_SUPPLY_EXHAUSTED"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    ATOMIC_CLAIM_FAILED = "ATOMIC_CLAIM_FAILED"


class CommissionType(str, Enum):
    """Referral payout trigger."""

    CLAIM = "claim_commission"
    TRADE = "trade_commission"


class TradeStatus(str, Enum):
    """P2P trade lifecycle states (escrow transitions happen elsewhere)."""

    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class IntentStatus(str, Enum):
    """Commission intent progress."""

    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass
class PriceSample:
    """Append-only observation of the computed price."""

    price: Decimal
    change_percent: Decimal
    observed_at_ms: int


@dataclass
class DailyPriceRecord:
    """One row per calendar date; opening_price is fixed at first observation."""

    day: date
    opening_price: Decimal
    closing_price: Decimal
    daily_change_percent: Decimal


@dataclass
class GlobalSupply:
    """Singleton counter of tokens issued via claims."""

    total_claimed: Decimal
    max_supply: Decimal

    @property
    def remaining(self) -> Decimal:
        return max(self.max_supply - self.total_claimed, Decimal("0"))

    @property
    def is_exhausted(self) -> bool:
        return self.total_claimed >= self.max_supply

    def would_exceed(self, amount: Decimal) -> bool:
        """True when claiming ``amount`` more would overshoot max_supply."""
        return self.total_claimed + amount > self.max_supply


@dataclass
class Account:
    """Claim-relevant subset of a user's profile."""

    id: str
    balance: Decimal = Decimal("0")
    last_claim_ms: int | None = None
    referred_by: str | None = None
    referral_earnings: Decimal = Decimal("0")


@dataclass
class AtomicClaimResult:
    """Outcome of the single atomic credit + counter increment."""

    claim_id: str
    claimed_amount: Decimal
    new_balance: Decimal
    global_claimed: Decimal
    global_remaining: Decimal
    claimed_at_ms: int


@dataclass
class CommissionRecord:
    """One referral payout event. Immutable once written."""

    referrer_id: str
    referred_user_id: str
    amount: Decimal
    type: CommissionType
    source_id: str  # claim id or trade id that triggered the payout
    created_at_ms: int
    bonus_tokens: Decimal = Decimal("0")


@dataclass
class CommissionIntent:
    """Durable marker that a claim still owes its referral side effect."""

    claim_id: str
    account_id: str
    referrer_id: str
    claim_amount: Decimal
    status: IntentStatus
    created_at_ms: int


@dataclass
class TradeRecord:
    """Subset of a P2P trade needed for counters and trade commissions."""

    id: str
    buyer_id: str
    seller_id: str
    token_amount: Decimal
    total_fiat: Decimal
    status: TradeStatus
    created_at_ms: int


@dataclass
class Eligibility:
    """Read-only claim eligibility for one account."""

    can_claim: bool
    remaining_cooldown_ms: int
    global_limit_reached: bool
    state: ClaimState | None
    claim_amount: Decimal
    global_claimed: Decimal = Decimal("0")
    global_max: Decimal = Decimal("0")


@dataclass
class ClaimOutcome:
    """Structured result of ClaimGate.perform_claim. Never raised."""

    success: bool
    claimed_amount: Decimal | None = None
    new_balance: Decimal | None = None
    global_claimed: Decimal | None = None
    global_remaining: Decimal | None = None
    error_code: ClaimErrorCode | None = None
    error: str | None = None
    remaining_ms: int | None = None
    global_limit_reached: bool = False


@dataclass
class PriceQuote:
    """Price returned to callers by the oracle."""

    price: Decimal
    previous_price: Decimal
    change_percent: Decimal
    is_green: bool
    strategy: str = ""
    observed_at_ms: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)
