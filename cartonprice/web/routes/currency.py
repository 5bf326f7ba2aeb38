"""Currency rate routes.

Routes:
- GET  /api/currency/current - Rate in force now (fetches on first call of the day)
- POST /api/currency/update  - Fetch today's bank rate if not stored yet
- POST /api/currency/manual  - Store an operator-entered rate for today
- GET  /api/currency/history - Recent daily rates
"""

from __future__ import annotations

from fastapi import APIRouter, Header, HTTPException, Query

from cartonprice.currency.resolver import CurrencyRateResolver
from cartonprice.db.connection import get_session
from cartonprice.db.models import CurrencyRateModel
from cartonprice.web.models import ManualRateRequest, RefreshRateRequest

router = APIRouter(prefix="/api/currency", tags=["currency"])


def rate_to_dict(row: CurrencyRateModel) -> dict:
    return {
        "id": row.id,
        "rateDate": row.rate_date.isoformat(),
        "usdRate": float(row.usd_rate),
        "marginPercentage": float(row.margin_percentage),
        "usdRateWithMargin": float(row.usd_rate_with_margin),
        "source": row.source,
        "isActive": row.is_active,
    }


@router.get("/current")
async def current_rate(accept_language: str | None = Header(default=None)):
    """USD->ILS rate to price with right now."""
    async with get_session() as session:
        resolver = CurrencyRateResolver(session)
        row = await resolver.current_rate(accept_language)
        return {"success": True, "rate": rate_to_dict(row)}


@router.post("/update")
async def update_rate(body: RefreshRateRequest | None = None):
    """Fetch and store today's bank rate. 503 when the bank is unreachable."""
    body = body or RefreshRateRequest()

    async with get_session() as session:
        resolver = CurrencyRateResolver(session)
        row = await resolver.refresh_today(body.margin_percentage)
        if row is None:
            raise HTTPException(status_code=503, detail="Bank of Israel rate unavailable")
        return {"success": True, "rate": rate_to_dict(row)}


@router.post("/manual")
async def manual_rate(body: ManualRateRequest):
    """Store a manual rate for today, replacing any fetched value."""
    async with get_session() as session:
        resolver = CurrencyRateResolver(session)
        row = await resolver.set_manual_rate(body.usd_rate, body.margin_percentage)
        return {"success": True, "rate": rate_to_dict(row)}


@router.get("/history")
async def rate_history(limit: int = Query(default=30, ge=1, le=365)):
    """Most recent daily rates, newest first."""
    async with get_session() as session:
        resolver = CurrencyRateResolver(session)
        rows = await resolver.history(limit=limit)
        return {"success": True, "rates": [rate_to_dict(row) for row in rows]}
