"""Request models for the cartonprice HTTP API.

Bodies are camelCase on the wire; Python attributes stay snake_case.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cartonprice.models import PricingOverrides


class CalculatePriceRequest(BaseModel):
    """Body for POST /api/sales/items/{item_id}/calculate-price."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    customer_code: str | None = None
    quantity: int | None = Field(default=None, gt=0)
    port_of_origin: str | None = None
    container_size_cbm: int | None = Field(default=None, alias="containerSizeCBM", gt=0)


class PricingCalculatorRequest(PricingOverrides):
    """Body for POST /api/sales/items/{item_id}/pricing-calculator.

    Shipping parameters plus the override* fields.
    """

    port_of_origin: str | None = Field(default=None, alias="portOfOrigin")
    container_size_cbm: int | None = Field(default=None, alias="containerSizeCBM", gt=0)

    def overrides(self) -> PricingOverrides:
        return PricingOverrides.model_validate(
            self.model_dump(exclude={"port_of_origin", "container_size_cbm"})
        )


class ManualRateRequest(BaseModel):
    """Body for POST /api/currency/manual."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    usd_rate: Decimal = Field(alias="usdRate", gt=0)
    margin_percentage: Decimal | None = Field(default=None, ge=0)


class RefreshRateRequest(BaseModel):
    """Optional body for POST /api/currency/update."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    margin_percentage: Decimal | None = Field(default=None, ge=0)
