"""Carton cost buildup and selling-price selection.

Pure functions over already-resolved inputs; nothing here touches the
database. Both the standard quote and the preview run through
`calculate_price`; the preview passes apply_floor=False.

Rounding is half-up: money to 2 decimals, rates to 4, volumes to 3. With
round_intermediate=True every stage is rounded before feeding the next one,
which reproduces historical quotes; with False only the outputs are rounded.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from cartonprice.models import Currency, PriceSource

CENT = Decimal("0.01")
RATE_STEP = Decimal("0.0001")
VOLUME_STEP = Decimal("0.001")


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def rate(value: Decimal) -> Decimal:
    return value.quantize(RATE_STEP, rounding=ROUND_HALF_UP)


def volume(value: Decimal) -> Decimal:
    return value.quantize(VOLUME_STEP, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CostInputs:
    """Everything the calculation needs, already resolved or overridden."""

    supplier_price: Decimal  # USD per carton
    freight_cost_per_container: Decimal  # USD
    container_size_cbm: int
    box_cbm: Decimal
    qty_per_carton: int
    margin_percentage: Decimal
    usd_to_ils: Decimal
    last_sale_price: Decimal | None = None
    last_sale_currency: Currency = Currency.ILS


@dataclass(frozen=True)
class PriceBreakdown:
    """Every stage of the cost buildup, rounded for output."""

    freight_cost_per_cbm: Decimal
    freight_cost_per_carton: Decimal
    total_cost_per_carton: Decimal
    calculated_price_per_carton_usd: Decimal
    calculated_price_per_carton_ils: Decimal
    calculated_price_per_unit_usd: Decimal
    calculated_price_per_unit_ils: Decimal
    selling_price_per_carton_usd: Decimal
    selling_price_per_carton_ils: Decimal
    selling_price_per_unit_usd: Decimal
    selling_price_per_unit_ils: Decimal
    price_source: PriceSource


@dataclass(frozen=True)
class Quantities:
    requested_quantity: int
    number_of_cartons: int
    total_cbm: Decimal


def to_ils(amount: Decimal, currency: Currency, usd_to_ils: Decimal) -> Decimal:
    return amount * usd_to_ils if currency == Currency.USD else amount


def calculate_price(
    inputs: CostInputs,
    apply_floor: bool = True,
    round_intermediate: bool = True,
) -> PriceBreakdown:
    """Build the carton price from cost, freight, margin and rate.

    Args:
        inputs: Resolved cost inputs
        apply_floor: Never go below the last real sale price (standard quote)
        round_intermediate: Round each stage before the next (historical behavior)

    Returns:
        PriceBreakdown with calculated and selling prices

    Raises:
        ValueError: On non-positive container size, carton quantity or rate
    """
    if inputs.container_size_cbm <= 0:
        raise ValueError("container_size_cbm must be positive")
    if inputs.qty_per_carton <= 0:
        raise ValueError("qty_per_carton must be positive")
    if inputs.usd_to_ils <= 0:
        raise ValueError("usd_to_ils must be positive")

    stage = money if round_intermediate else (lambda v: v)

    freight_per_cbm = inputs.freight_cost_per_container / Decimal(inputs.container_size_cbm)
    freight_per_carton = stage(freight_per_cbm * inputs.box_cbm)
    total_cost = stage(inputs.supplier_price + freight_per_carton)

    calculated_usd = stage(total_cost * (1 + inputs.margin_percentage / Decimal(100)))
    calculated_ils = stage(calculated_usd * inputs.usd_to_ils)

    final_ils = calculated_ils
    price_source = PriceSource.CALCULATED

    if apply_floor and inputs.last_sale_price and inputs.last_sale_price > 0:
        last_ils = stage(
            to_ils(inputs.last_sale_price, inputs.last_sale_currency, inputs.usd_to_ils)
        )
        # Ties keep the calculated price
        if last_ils > calculated_ils:
            final_ils = last_ils
            price_source = PriceSource.LAST_SALE

    final_usd = stage(final_ils / inputs.usd_to_ils)
    qty = Decimal(inputs.qty_per_carton)

    return PriceBreakdown(
        freight_cost_per_cbm=money(freight_per_cbm),
        freight_cost_per_carton=money(freight_per_carton),
        total_cost_per_carton=money(total_cost),
        calculated_price_per_carton_usd=money(calculated_usd),
        calculated_price_per_carton_ils=money(calculated_ils),
        calculated_price_per_unit_usd=money(calculated_usd / qty),
        calculated_price_per_unit_ils=money(calculated_ils / qty),
        selling_price_per_carton_usd=money(final_usd),
        selling_price_per_carton_ils=money(final_ils),
        selling_price_per_unit_usd=money(final_usd / qty),
        selling_price_per_unit_ils=money(final_ils / qty),
        price_source=price_source,
    )


def convert_special_price(
    price: Decimal,
    currency: Currency,
    usd_to_ils: Decimal,
    qty_per_carton: int,
) -> dict[str, Decimal]:
    """Carton and unit prices in both currencies for a negotiated price.

    The stored currency keeps the stored amount; the other is derived.
    """
    if usd_to_ils <= 0:
        raise ValueError("usd_to_ils must be positive")

    if currency == Currency.USD:
        carton_usd = price
        carton_ils = price * usd_to_ils
    else:
        carton_ils = price
        carton_usd = price / usd_to_ils

    qty = Decimal(qty_per_carton)
    return {
        "selling_price_per_carton_usd": money(carton_usd),
        "selling_price_per_carton_ils": money(carton_ils),
        "selling_price_per_unit_usd": money(carton_usd / qty),
        "selling_price_per_unit_ils": money(carton_ils / qty),
    }


def carton_quantities(
    requested_quantity: int | None, qty_per_carton: int, box_cbm: Decimal
) -> Quantities:
    """Cartons needed for a unit quantity (default: one carton) and their volume."""
    requested = requested_quantity or qty_per_carton
    cartons = -(-requested // qty_per_carton)
    return Quantities(
        requested_quantity=requested,
        number_of_cartons=cartons,
        total_cbm=volume(Decimal(cartons) * box_cbm),
    )
