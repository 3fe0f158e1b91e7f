"""Claim endpoints. The authenticated account id arrives in a request header."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from zirox.api.serialization import to_jsonable
from zirox.claims.gate import ClaimGate
from zirox.models import ClaimErrorCode

log = structlog.get_logger(__name__)

router = APIRouter()

_STATUS_BY_ERROR = {
    ClaimErrorCode.NOT_AUTHENTICATED: 401,
    ClaimErrorCode.PROFILE_NOT_FOUND: 404,
    ClaimErrorCode.GLOBAL_SUPPLY_EXHAUSTED: 409,
    ClaimErrorCode.COOLDOWN_ACTIVE: 429,
    ClaimErrorCode.ATOMIC_CLAIM_FAILED: 502,
}


def account_id_from(request: Request) -> str | None:
    """Account id set by the upstream auth proxy, or None."""
    header = request.app.state.account_header
    value = request.headers.get(header, "").strip()
    return value or None


@router.get("/claims/status")
async def get_claim_status(request: Request) -> JSONResponse:
    gate: ClaimGate = request.app.state.gate
    account_id = account_id_from(request)
    eligibility = await gate.check_eligibility(account_id)
    return JSONResponse(content=to_jsonable(eligibility))


@router.post("/claims")
async def post_claim(request: Request) -> JSONResponse:
    gate: ClaimGate = request.app.state.gate
    account_id = account_id_from(request)
    with structlog.contextvars.bound_contextvars(account_id=account_id):
        outcome = await gate.perform_claim(account_id)
        if not outcome.success:
            log.info("claim_rejected", error_code=outcome.error_code.value if outcome.error_code else None)

    status_code = 200
    if not outcome.success and outcome.error_code is not None:
        status_code = _STATUS_BY_ERROR[outcome.error_code]
    return JSONResponse(content=to_jsonable(outcome), status_code=status_code)
