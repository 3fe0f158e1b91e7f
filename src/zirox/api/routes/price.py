"""Price endpoints: evaluate, latest sample, history and daily records."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from zirox.api.serialization import to_jsonable
from zirox.logging import get_logger
from zirox.pricing.oracle import PriceOracle

logger = get_logger(__name__)

router = APIRouter()


@router.get("/price")
async def get_price(request: Request) -> JSONResponse:
    """Evaluate the configured strategy and return the new quote."""
    oracle: PriceOracle = request.app.state.oracle
    quote = await oracle.evaluate()
    return JSONResponse(content={
        "price": str(quote.price),
        "previous_price": str(quote.previous_price),
        "change_percent": str(quote.change_percent),
        "is_green": quote.is_green,
        "strategy": quote.strategy,
        "observed_at_ms": quote.observed_at_ms,
        **to_jsonable(quote.extras),
    })


@router.get("/price/latest")
async def get_latest_price(request: Request) -> JSONResponse:
    """Latest persisted sample without triggering an evaluation."""
    oracle: PriceOracle = request.app.state.oracle
    try:
        sample = await oracle.latest()
    except Exception:
        logger.error("latest_price_read_failed", exc_info=True)
        return JSONResponse(content={"error": "Failed to fetch price"}, status_code=500)
    if sample is None:
        return JSONResponse(content={"error": "No price data"}, status_code=404)
    return JSONResponse(content=to_jsonable(sample))


@router.get("/price/history")
async def get_price_history(
    request: Request, limit: int = Query(100, ge=1, le=1000)
) -> JSONResponse:
    oracle: PriceOracle = request.app.state.oracle
    try:
        samples = await oracle.history(limit=limit)
    except Exception:
        logger.error("price_history_read_failed", exc_info=True)
        return JSONResponse(content={"error": "Failed to fetch price history"}, status_code=500)
    return JSONResponse(content=to_jsonable(samples))


@router.get("/price/daily")
async def get_daily_prices(
    request: Request, limit: int = Query(30, ge=1, le=366)
) -> JSONResponse:
    oracle: PriceOracle = request.app.state.oracle
    try:
        records = await oracle.daily(limit=limit)
    except Exception:
        logger.error("daily_prices_read_failed", exc_info=True)
        return JSONResponse(content={"error": "Failed to fetch daily prices"}, status_code=500)
    return JSONResponse(content=[
        {
            "date": r.day.isoformat(),
            "opening_price": str(r.opening_price),
            "closing_price": str(r.closing_price),
            "daily_change_percent": str(r.daily_change_percent),
        }
        for r in records
    ])
