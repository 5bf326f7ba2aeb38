"""cartonprice Pydantic models for type-safe data validation.

Domain records are read from the database layer and converted into these
models before reaching the calculator. Pricing results are serialized in
camelCase for the HTTP surface.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel


class Currency(str, Enum):
    """Quoting currencies."""

    USD = "USD"
    ILS = "ILS"

    @classmethod
    def parse(cls, value: str | None, default: Currency | None = None) -> Currency:
        """Normalize loose currency tags ("$", "usd", "nis", "₪") to a Currency."""
        tag = (value or "").strip().upper()
        if tag in ("USD", "$", "DOLLAR"):
            return cls.USD
        if tag in ("ILS", "NIS", "₪", "SHEKEL"):
            return cls.ILS
        if default is not None:
            return default
        raise ValueError(f"Unsupported currency: {value!r}")


class PriceSource(str, Enum):
    """Which rule produced the final selling price."""

    CALCULATED = "calculated"
    LAST_SALE = "last_sale"
    SPECIAL_PRICE = "special_price"


class ValueSource(str, Enum):
    """Provenance of a single pricing input."""

    DATABASE = "database"
    OVERRIDE = "override"
    DEFAULT = "default"  # configured fallback, no stored rule


class RateSource(str, Enum):
    """Origin of a stored daily currency rate."""

    BANK = "bank"
    MANUAL = "manual"


class Item(BaseModel):
    """Catalog item as seen by the pricing engine (read-only)."""

    id: UUID = Field(default_factory=uuid4)
    item_code: str
    english_description: str = ""
    name_he: str | None = None
    category_id: UUID | None = None
    category_name: str | None = None

    qty_per_carton: int | None = None
    box_cbm: Decimal | None = None  # cubic meters per carton

    supplier_price: Decimal | None = None  # per carton
    supplier_currency: Currency = Currency.USD

    last_sales_order_price: Decimal | None = None
    last_sales_order_currency: str | None = None
    last_sales_order_date: datetime | None = None
    last_sales_order_number: str | None = None

    image_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.name_he or self.english_description


class SpecialPrice(BaseModel):
    """Negotiated final price per carton for a (customer, item) pair."""

    customer_code: str
    item_code: str
    price: Decimal
    currency: Currency = Currency.USD
    notes: str | None = None

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("price must be non-negative")
        return v


class PricingOverrides(BaseModel):
    """Caller-supplied replacements for resolved inputs (all optional)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    supplier_price: Decimal | None = Field(default=None, alias="overrideSupplierPrice", ge=0)
    freight_cost_per_container: Decimal | None = Field(default=None, alias="overrideFreight", ge=0)
    margin_percentage: Decimal | None = Field(default=None, alias="overrideMargin", ge=0, le=100)
    usd_to_ils: Decimal | None = Field(default=None, alias="overrideUsdRate", gt=0)
    box_cbm: Decimal | None = Field(default=None, alias="overrideBoxCBM", gt=0)
    qty_per_carton: int | None = Field(default=None, alias="overrideQtyPerCarton", gt=0)


# Decimals leave the API as JSON numbers, not strings.
JsonDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LastSaleInfo(_CamelModel):
    """Most recent real transaction, normalized to both currencies."""

    price_ils: JsonDecimal = Field(alias="priceILS")
    price_usd: JsonDecimal = Field(alias="priceUSD")
    currency: Currency
    sale_date: datetime | None = Field(default=None, alias="date")


class SpecialPriceQuote(_CamelModel):
    """Final price taken verbatim from a SpecialPrice record."""

    kind: Literal["special_price"] = "special_price"
    price_source: PriceSource = PriceSource.SPECIAL_PRICE
    qty_per_carton: int
    box_cbm: JsonDecimal = Field(alias="boxCBM")
    usd_to_ils: JsonDecimal
    margin_percentage: JsonDecimal = Decimal("0")
    special_price_currency: Currency
    selling_price_per_carton_usd: JsonDecimal = Field(alias="sellingPricePerCartonUSD")
    selling_price_per_carton_ils: JsonDecimal = Field(alias="sellingPricePerCartonILS")
    selling_price_per_unit_usd: JsonDecimal = Field(alias="sellingPricePerUnitUSD")
    selling_price_per_unit_ils: JsonDecimal = Field(alias="sellingPricePerUnitILS")
    requested_quantity: int
    number_of_cartons: int
    total_cbm: JsonDecimal = Field(alias="totalCBM")
    port_of_origin: str
    container_size_cbm: int = Field(alias="containerSizeCBM")


class StandardQuote(_CamelModel):
    """Cost buildup, calculated price and final price after the floor."""

    kind: Literal["standard"] = "standard"
    price_source: PriceSource
    qty_per_carton: int
    box_cbm: JsonDecimal = Field(alias="boxCBM")
    supplier_price_per_carton: JsonDecimal
    port_of_origin: str
    container_size_cbm: int = Field(alias="containerSizeCBM")
    freight_cost_per_container: JsonDecimal
    freight_source: ValueSource
    freight_cost_per_cbm: JsonDecimal = Field(alias="freightCostPerCBM")
    freight_cost_per_carton: JsonDecimal
    total_cost_per_carton: JsonDecimal
    margin_percentage: JsonDecimal
    usd_to_ils: JsonDecimal
    calculated_price_per_carton_usd: JsonDecimal = Field(alias="calculatedPricePerCartonUSD")
    calculated_price_per_unit_usd: JsonDecimal = Field(alias="calculatedPricePerUnitUSD")
    calculated_price_per_carton_ils: JsonDecimal = Field(alias="calculatedPricePerCartonILS")
    calculated_price_per_unit_ils: JsonDecimal = Field(alias="calculatedPricePerUnitILS")
    selling_price_per_carton_usd: JsonDecimal = Field(alias="sellingPricePerCartonUSD")
    selling_price_per_unit_usd: JsonDecimal = Field(alias="sellingPricePerUnitUSD")
    selling_price_per_carton_ils: JsonDecimal = Field(alias="sellingPricePerCartonILS")
    selling_price_per_unit_ils: JsonDecimal = Field(alias="sellingPricePerUnitILS")
    requested_quantity: int
    number_of_cartons: int
    total_cbm: JsonDecimal = Field(alias="totalCBM")
    last_sales_order_price: JsonDecimal | None = None
    last_sales_order_currency: str | None = None
    last_sales_order_date: datetime | None = None


Quote = Annotated[Union[SpecialPriceQuote, StandardQuote], Field(discriminator="kind")]


class PricingChain(_CamelModel):
    """Preview result: pure calculated price with per-field provenance.

    Each `*_source` field is "override" (caller value) or "database" (stored
    record). Freight may also be "default": no freight rule matched, so the
    configured default container cost was used.
    """

    supplier_price_per_carton: JsonDecimal
    supplier_price_source: ValueSource
    port_of_origin: str
    container_size_cbm: int = Field(alias="containerSizeCBM")
    freight_cost_per_container: JsonDecimal
    freight_cost_per_cbm: JsonDecimal = Field(alias="freightCostPerCBM")
    freight_cost_per_carton: JsonDecimal
    freight_source: ValueSource
    total_cost_per_carton: JsonDecimal
    margin_percentage: JsonDecimal
    margin_source: ValueSource
    category_name: str | None = None
    usd_to_ils: JsonDecimal
    usd_rate_source: ValueSource
    bank_rate: JsonDecimal | None = None
    rate_margin_percent: JsonDecimal = Decimal("0")
    calculated_price_per_carton_usd: JsonDecimal = Field(alias="calculatedPricePerCartonUSD")
    calculated_price_per_unit_usd: JsonDecimal = Field(alias="calculatedPricePerUnitUSD")
    calculated_price_per_carton_ils: JsonDecimal = Field(alias="calculatedPricePerCartonILS")
    calculated_price_per_unit_ils: JsonDecimal = Field(alias="calculatedPricePerUnitILS")
    last_sale_info: LastSaleInfo | None = None
    qty_per_carton: int
    qty_per_carton_source: ValueSource
    box_cbm: JsonDecimal = Field(alias="boxCBM")
    box_cbm_source: ValueSource = Field(alias="boxCBMSource")


class ItemSummary(_CamelModel):
    """Item fields echoed back alongside a quote."""

    id: UUID
    item_code: str
    english_description: str
    name_he: str | None = None
    image_url: str | None = None
    category_id: UUID | None = None
    qty_per_carton: int | None = None
    box_cbm: JsonDecimal | None = Field(default=None, alias="boxCBM")
    last_sales_order_price: JsonDecimal | None = None
    last_sales_order_currency: str | None = None
    last_sales_order_date: datetime | None = None
    last_sales_order_number: str | None = None

    @classmethod
    def from_item(cls, item: Item) -> ItemSummary:
        return cls(
            id=item.id,
            item_code=item.item_code,
            english_description=item.english_description,
            name_he=item.name_he,
            image_url=item.image_url,
            category_id=item.category_id,
            qty_per_carton=item.qty_per_carton,
            box_cbm=item.box_cbm,
            last_sales_order_price=item.last_sales_order_price,
            last_sales_order_currency=item.last_sales_order_currency,
            last_sales_order_date=item.last_sales_order_date,
            last_sales_order_number=item.last_sales_order_number,
        )
