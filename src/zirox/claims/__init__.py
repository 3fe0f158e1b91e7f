"""Cooldown-gated token claims."""

from zirox.claims.gate import ClaimGate
from zirox.claims.state import is_claimable, resolve_claim_state

__all__ = ["ClaimGate", "is_claimable", "resolve_claim_state"]
