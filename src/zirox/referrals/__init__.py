"""Referral commissions for claims and trades."""

from zirox.referrals.service import ReferralService

__all__ = ["ReferralService"]
