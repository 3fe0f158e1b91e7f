"""Trade commission settlement endpoint."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from zirox.api.routes.claims import account_id_from
from zirox.api.serialization import to_jsonable
from zirox.exceptions import NotFoundError, UnauthorizedError, ValidationError
from zirox.referrals.service import ReferralService

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/trades/{trade_id}/commissions")
async def settle_trade_commissions(trade_id: str, request: Request) -> JSONResponse:
    """Pay referral commissions for a completed trade. Caller must be a party."""
    referrals: ReferralService = request.app.state.referrals
    account_id = account_id_from(request)
    if account_id is None:
        return JSONResponse(content={"success": False, "error": "Not authenticated"}, status_code=401)

    try:
        records = await referrals.settle_trade_commissions(trade_id, actor_id=account_id)
    except NotFoundError:
        return JSONResponse(content={"success": False, "error": "Trade not found"}, status_code=404)
    except UnauthorizedError:
        return JSONResponse(content={"success": False, "error": "Not a party to this trade"}, status_code=403)
    except ValidationError as e:
        return JSONResponse(content={"success": False, "error": str(e)}, status_code=409)
    except Exception:
        log.error("trade_commission_settlement_failed", trade_id=trade_id, exc_info=True)
        return JSONResponse(content={"success": False, "error": "Failed to settle commissions"}, status_code=500)

    return JSONResponse(content={"success": True, "commissions": to_jsonable(records)})
