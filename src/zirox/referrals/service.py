"""Referral commission side effects for claims and completed trades.

Claim commission (per successful claim by a referred account):
  - commission amount = claim_amount * latest_price * claim_commission_rate
  - referrer balance += referrer_claim_bonus tokens (flat, not derived
    from the commission amount)
  - skipped entirely when no price sample exists yet

Trade commission (per completed trade, for each party with a referrer):
  - amount = trade.total_fiat * trade_commission_rate

Claim commissions run after the atomic claim has committed and are not
part of its transaction. A failure here leaves the claim credited and the
commission unpaid. With ReferralSettings.durable_intents enabled, the
claim transaction leaves a pending intent that resume_pending() completes.
"""

from decimal import Decimal

from zirox.clock import now_ms
from zirox.config import ReferralSettings
from zirox.exceptions import NotFoundError, UnauthorizedError, ValidationError
from zirox.logging import get_logger
from zirox.models import (
    CommissionRecord,
    CommissionType,
    IntentStatus,
    TradeStatus,
)
from zirox.storage.store import LedgerStore

logger = get_logger(__name__)


class ReferralService:
    """Computes and records referral payouts.

    Args:
        store: Ledger store for prices, accounts, trades and commissions.
        settings: Commission rates and the flat referrer bonus.
    """

    def __init__(self, store: LedgerStore, settings: ReferralSettings) -> None:
        self._store = store
        self._settings = settings

    async def pay_claim_commission(
        self,
        claim_id: str,
        account_id: str,
        referrer_id: str,
        claim_amount: Decimal,
    ) -> CommissionRecord | None:
        """Record the claim commission and credit the referrer bonus.

        Returns the record, or None when skipped (no price data, missing
        referrer, or already paid for this claim).
        """
        latest = await self._store.get_latest_price()
        if latest is None:
            logger.info("claim_commission_skipped", claim_id=claim_id, reason="no_price_data")
            await self._finish_intent(claim_id, IntentStatus.SKIPPED)
            return None

        referrer = await self._store.get_account(referrer_id)
        if referrer is None:
            logger.warning("claim_commission_skipped", claim_id=claim_id, reason="referrer_missing")
            await self._finish_intent(claim_id, IntentStatus.SKIPPED)
            return None

        record = CommissionRecord(
            referrer_id=referrer_id,
            referred_user_id=account_id,
            amount=claim_amount * latest.price * self._settings.claim_commission_rate,
            type=CommissionType.CLAIM,
            source_id=claim_id,
            created_at_ms=now_ms(),
            bonus_tokens=self._settings.referrer_claim_bonus,
        )
        inserted = await self._store.record_commission(record)
        await self._finish_intent(claim_id, IntentStatus.COMPLETED)

        if not inserted:
            logger.info("claim_commission_already_recorded", claim_id=claim_id)
            return None

        logger.info(
            "claim_commission_paid",
            claim_id=claim_id,
            referrer_id=referrer_id,
            amount=str(record.amount),
            bonus_tokens=str(record.bonus_tokens),
            price=str(latest.price),
        )
        return record

    async def resume_pending(self, limit: int = 100) -> int:
        """Complete commissions whose claim committed but whose payout never ran.

        Returns the number of intents processed.
        """
        intents = await self._store.get_pending_intents(limit=limit)
        processed = 0
        for intent in intents:
            try:
                await self.pay_claim_commission(
                    claim_id=intent.claim_id,
                    account_id=intent.account_id,
                    referrer_id=intent.referrer_id,
                    claim_amount=intent.claim_amount,
                )
                processed += 1
            except Exception:
                logger.warning("commission_intent_retry_failed", claim_id=intent.claim_id, exc_info=True)
        if intents:
            logger.info("commission_intents_resumed", pending=len(intents), processed=processed)
        return processed

    async def settle_trade_commissions(
        self, trade_id: str, actor_id: str
    ) -> list[CommissionRecord]:
        """Pay trade commissions to the buyer's and seller's referrers.

        Raises:
            NotFoundError: trade does not exist.
            UnauthorizedError: actor is neither buyer nor seller.
            ValidationError: trade is not completed.
        """
        trade = await self._store.get_trade(trade_id)
        if trade is None:
            raise NotFoundError(f"Trade {trade_id} not found")
        if actor_id not in (trade.buyer_id, trade.seller_id):
            raise UnauthorizedError("Only trade parties can settle commissions")
        if trade.status is not TradeStatus.COMPLETED:
            raise ValidationError(f"Trade is {trade.status.value}, not completed")

        paid: list[CommissionRecord] = []
        for party_id in (trade.buyer_id, trade.seller_id):
            party = await self._store.get_account(party_id)
            if party is None or not party.referred_by:
                continue
            record = CommissionRecord(
                referrer_id=party.referred_by,
                referred_user_id=party_id,
                amount=trade.total_fiat * self._settings.trade_commission_rate,
                type=CommissionType.TRADE,
                source_id=trade.id,
                created_at_ms=now_ms(),
            )
            try:
                inserted = await self._store.record_commission(record)
            except NotFoundError:
                logger.warning("trade_commission_referrer_missing", trade_id=trade.id, referrer_id=party.referred_by)
                continue
            if inserted:
                paid.append(record)
                logger.info(
                    "trade_commission_paid",
                    trade_id=trade.id,
                    referrer_id=record.referrer_id,
                    referred_user_id=party_id,
                    amount=str(record.amount),
                )
        return paid

    async def _finish_intent(self, claim_id: str, status: IntentStatus) -> None:
        if self._settings.durable_intents:
            await self._store.mark_intent(claim_id, status)
