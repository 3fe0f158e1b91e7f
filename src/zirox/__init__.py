"""ZiroX token core: price oracle, cooldown-gated claims and referral commissions."""

__version__ = "0.1.0"
