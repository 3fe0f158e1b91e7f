"""Claim state resolution.

Pure function of (account, global supply, claim amount, cooldown, now).
SUPPLY_EXHAUSTED overrides every other state and also covers the case
where the next claim would overshoot max_supply.
"""

from decimal import Decimal

from zirox.models import Account, ClaimState, GlobalSupply

CLAIMABLE_STATES = frozenset({ClaimState.NEVER_CLAIMED, ClaimState.CLAIMABLE})


def resolve_claim_state(
    account: Account,
    supply: GlobalSupply,
    claim_amount: Decimal,
    cooldown_ms: int,
    now_ms: int,
) -> tuple[ClaimState, int]:
    """Return (state, remaining_cooldown_ms) for the account at ``now_ms``.

    remaining_cooldown_ms is non-zero only in COOLING_DOWN.
    """
    if supply.is_exhausted or supply.would_exceed(claim_amount):
        return ClaimState.SUPPLY_EXHAUSTED, 0

    if account.last_claim_ms is None:
        return ClaimState.NEVER_CLAIMED, 0

    elapsed = now_ms - account.last_claim_ms
    if elapsed >= cooldown_ms:
        return ClaimState.CLAIMABLE, 0
    return ClaimState.COOLING_DOWN, cooldown_ms - elapsed


def is_claimable(state: ClaimState) -> bool:
    return state in CLAIMABLE_STATES
