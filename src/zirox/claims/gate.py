"""Cooldown- and supply-gated token claims.

Two public operations:
  - check_eligibility: read-only; reports whether the account may claim now
  - perform_claim: re-validates everything, then runs the atomic claim

The pre-checks in perform_claim exist to give a precise error message.
The supply ceiling and the cooldown are enforced again inside
LedgerStore.atomic_claim, which is the only place balances and the global
counter change.

Neither operation raises. Failures come back as Eligibility/ClaimOutcome.
"""

import asyncio
from collections.abc import Callable

from zirox.claims.state import is_claimable, resolve_claim_state
from zirox.clock import now_ms
from zirox.config import ClaimSettings
from zirox.exceptions import (
    AuthenticationError,
    CooldownActiveError,
    ExternalOperationError,
    NotFoundError,
    SupplyExhaustedError,
)
from zirox.logging import get_logger
from zirox.models import (
    AtomicClaimResult,
    ClaimErrorCode,
    ClaimOutcome,
    ClaimState,
    Eligibility,
)
from zirox.referrals.service import ReferralService
from zirox.storage.store import LedgerStore

logger = get_logger(__name__)


class ClaimGate:
    """Gates the fixed-amount claim behind cooldown and global supply.

    Args:
        store: Ledger store (supply counter, accounts, atomic claim).
        settings: Claim amount and cooldown.
        referrals: Referral service for the post-claim commission.
        timeout: Seconds allowed for the atomic claim before giving up.
        record_intents: Write a durable commission intent inside the claim
            transaction for referred accounts.
        clock_ms: Returns the current Unix time in milliseconds.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: ClaimSettings,
        referrals: ReferralService,
        timeout: float = 10.0,
        record_intents: bool = False,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._settings = settings
        self._referrals = referrals
        self._timeout = timeout
        self._record_intents = record_intents
        self._clock_ms = clock_ms

    @property
    def cooldown_ms(self) -> int:
        return self._settings.cooldown_seconds * 1000

    async def check_eligibility(self, account_id: str | None) -> Eligibility:
        """Report whether ``account_id`` can claim right now. Never writes."""
        amount = self._settings.amount
        if not account_id:
            return Eligibility(False, 0, False, None, amount)

        try:
            try:
                supply = await self._store.get_global_supply()
            except NotFoundError:
                logger.error("global_supply_missing")
                return Eligibility(False, 0, True, ClaimState.SUPPLY_EXHAUSTED, amount)

            account = await self._store.get_account(account_id)
            if account is None:
                if supply.is_exhausted:
                    return Eligibility(
                        False, 0, True, ClaimState.SUPPLY_EXHAUSTED, amount,
                        supply.total_claimed, supply.max_supply,
                    )
                return Eligibility(False, 0, False, None, amount)

            state, remaining = resolve_claim_state(
                account, supply, amount, self.cooldown_ms, self._clock_ms()
            )
        except Exception:
            logger.error("eligibility_check_failed", account_id=account_id, exc_info=True)
            return Eligibility(False, 0, False, None, amount)

        return Eligibility(
            can_claim=is_claimable(state),
            remaining_cooldown_ms=remaining,
            global_limit_reached=state is ClaimState.SUPPLY_EXHAUSTED,
            state=state,
            claim_amount=amount,
            global_claimed=supply.total_claimed,
            global_max=supply.max_supply,
        )

    async def perform_claim(self, account_id: str | None) -> ClaimOutcome:
        """Claim the fixed reward for ``account_id``."""
        try:
            result = await self._claim(account_id)
        except AuthenticationError:
            return _failure(ClaimErrorCode.NOT_AUTHENTICATED, "Not authenticated")
        except SupplyExhaustedError as exc:
            return _failure(ClaimErrorCode.GLOBAL_SUPPLY_EXHAUSTED, str(exc), global_limit_reached=True)
        except CooldownActiveError as exc:
            return _failure(ClaimErrorCode.COOLDOWN_ACTIVE, "Cooldown active", remaining_ms=exc.remaining_ms)
        except NotFoundError:
            return _failure(ClaimErrorCode.PROFILE_NOT_FOUND, "Profile not found")
        except ExternalOperationError as exc:
            logger.error("atomic_claim_failed", account_id=account_id, reason=exc.reason)
            message = "Claim timed out" if exc.reason == "timeout" else "Failed to claim"
            return _failure(ClaimErrorCode.ATOMIC_CLAIM_FAILED, message)
        except Exception:
            logger.error("claim_unexpected_error", account_id=account_id, exc_info=True)
            return _failure(ClaimErrorCode.ATOMIC_CLAIM_FAILED, "Failed to claim")

        return ClaimOutcome(
            success=True,
            claimed_amount=result.claimed_amount,
            new_balance=result.new_balance,
            global_claimed=result.global_claimed,
            global_remaining=result.global_remaining,
        )

    async def _claim(self, account_id: str | None) -> AtomicClaimResult:
        if not account_id:
            raise AuthenticationError("No account on request")

        amount = self._settings.amount
        try:
            supply = await self._store.get_global_supply()
        except NotFoundError as exc:
            raise ExternalOperationError("Global supply not initialized", reason="supply_missing") from exc
        logger.debug(
            "claim_supply_read",
            account_id=account_id,
            total_claimed=str(supply.total_claimed),
            max_supply=str(supply.max_supply),
        )
        if supply.is_exhausted:
            raise SupplyExhaustedError("Global supply limit reached")
        if supply.would_exceed(amount):
            raise SupplyExhaustedError("Not enough tokens remaining in global supply")

        account = await self._store.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")

        claimed_at = self._clock_ms()
        state, remaining = resolve_claim_state(account, supply, amount, self.cooldown_ms, claimed_at)
        logger.debug(
            "claim_cooldown_evaluated",
            account_id=account_id,
            state=state.value,
            last_claim_ms=account.last_claim_ms,
            remaining_ms=remaining,
        )
        if state is ClaimState.COOLING_DOWN:
            raise CooldownActiveError(remaining_ms=remaining)

        try:
            result = await asyncio.wait_for(
                self._store.atomic_claim(
                    account_id,
                    amount,
                    claimed_at_ms=claimed_at,
                    cooldown_ms=self.cooldown_ms,
                    record_intent=self._record_intents,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ExternalOperationError("Atomic claim timed out", reason="timeout") from exc

        if account.referred_by:
            try:
                await self._referrals.pay_claim_commission(
                    claim_id=result.claim_id,
                    account_id=account_id,
                    referrer_id=account.referred_by,
                    claim_amount=result.claimed_amount,
                )
            except Exception:
                # claim already committed; commission stays unpaid
                logger.error(
                    "claim_commission_failed",
                    account_id=account_id,
                    claim_id=result.claim_id,
                    exc_info=True,
                )

        logger.info(
            "claim_succeeded",
            account_id=account_id,
            amount=str(result.claimed_amount),
            new_balance=str(result.new_balance),
            global_claimed=str(result.global_claimed),
        )
        return result


def _failure(
    code: ClaimErrorCode,
    message: str,
    remaining_ms: int | None = None,
    global_limit_reached: bool = False,
) -> ClaimOutcome:
    return ClaimOutcome(
        success=False,
        error_code=code,
        error=message,
        remaining_ms=remaining_ms,
        global_limit_reached=global_limit_reached,
    )
