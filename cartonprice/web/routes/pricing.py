"""Pricing routes.

Routes:
- POST /api/sales/items/{item_id}/calculate-price    - Selling price (special price, floor)
- POST /api/sales/items/{item_id}/pricing-calculator - Preview with overrides and provenance

Failures come back as {error, message, missingFields?, itemCode?, itemName?}
via the PricingError handler registered on the app.
"""

from __future__ import annotations

from fastapi import APIRouter, Header
from pydantic import TypeAdapter

from cartonprice.db.connection import get_session
from cartonprice.models import ItemSummary, Quote
from cartonprice.pricing.service import PricingService
from cartonprice.web.models import CalculatePriceRequest, PricingCalculatorRequest

router = APIRouter(prefix="/api/sales/items", tags=["pricing"])

_quote_adapter = TypeAdapter(Quote)


@router.post("/{item_id}/calculate-price")
async def calculate_price(
    item_id: str,
    body: CalculatePriceRequest | None = None,
    accept_language: str | None = Header(default=None),
):
    """Calculate the selling price for an item.

    item_id may be the item UUID or its item code.
    """
    body = body or CalculatePriceRequest()

    async with get_session() as session:
        service = PricingService(session, language=accept_language)
        item, quote = await service.quote(
            item_id,
            customer_code=body.customer_code,
            quantity=body.quantity,
            port_of_origin=body.port_of_origin,
            container_size_cbm=body.container_size_cbm,
        )

    return {
        "success": True,
        "item": ItemSummary.from_item(item).model_dump(mode="json", by_alias=True),
        "pricing": _quote_adapter.dump_python(quote, mode="json", by_alias=True),
    }


@router.post("/{item_id}/pricing-calculator")
async def pricing_calculator(
    item_id: str,
    body: PricingCalculatorRequest | None = None,
    accept_language: str | None = Header(default=None),
):
    """Preview the calculated price with optional per-field overrides.

    The last-sale floor is not applied; last sale is returned for reference.
    """
    body = body or PricingCalculatorRequest()

    async with get_session() as session:
        service = PricingService(session, language=accept_language)
        item, chain = await service.preview(
            item_id,
            overrides=body.overrides(),
            port_of_origin=body.port_of_origin,
            container_size_cbm=body.container_size_cbm,
        )

    return {
        "success": True,
        "item": ItemSummary.from_item(item).model_dump(mode="json", by_alias=True),
        "pricingChain": chain.model_dump(mode="json", by_alias=True),
    }
