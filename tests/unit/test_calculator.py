"""Unit tests for cartonprice.pricing.calculator.

Covers the cost buildup, the last-sale floor, special price conversion and
carton quantities.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from cartonprice.models import Currency, PriceSource
from cartonprice.pricing.calculator import (
    CostInputs,
    calculate_price,
    carton_quantities,
    convert_special_price,
    to_ils,
)


def make_inputs(**overrides) -> CostInputs:
    values = dict(
        supplier_price=Decimal("10"),
        freight_cost_per_container=Decimal("4700"),
        container_size_cbm=68,
        box_cbm=Decimal("0.068"),
        qty_per_carton=12,
        margin_percentage=Decimal("20"),
        usd_to_ils=Decimal("3.70"),
    )
    values.update(overrides)
    return CostInputs(**values)


class TestCostBuildup:
    """Cost buildup from supplier price, freight and margin."""

    def test_reference_carton(self):
        result = calculate_price(make_inputs())

        assert result.freight_cost_per_carton == Decimal("4.70")
        assert result.total_cost_per_carton == Decimal("14.70")
        assert result.calculated_price_per_carton_usd == Decimal("17.64")
        assert result.calculated_price_per_carton_ils == Decimal("65.27")
        assert result.selling_price_per_carton_ils == Decimal("65.27")
        assert result.selling_price_per_carton_usd == Decimal("17.64")
        assert result.price_source == PriceSource.CALCULATED

    def test_unit_prices_divide_by_carton_quantity(self):
        result = calculate_price(make_inputs())

        assert result.calculated_price_per_unit_ils == Decimal("5.44")
        assert result.selling_price_per_unit_usd == Decimal("1.47")

    def test_freight_per_cbm_is_reported_rounded(self):
        result = calculate_price(make_inputs())

        assert result.freight_cost_per_cbm == Decimal("69.12")

    def test_zero_margin_sells_at_cost(self):
        result = calculate_price(make_inputs(margin_percentage=Decimal("0")))

        assert result.calculated_price_per_carton_usd == Decimal("14.70")

    def test_output_only_rounding(self):
        staged = calculate_price(make_inputs(box_cbm=Decimal("0.0713")))
        unstaged = calculate_price(make_inputs(box_cbm=Decimal("0.0713")), round_intermediate=False)

        # 4700/68 * 0.0713 = 4.92808...; staging rounds it before the margin
        assert staged.freight_cost_per_carton == Decimal("4.93")
        assert unstaged.freight_cost_per_carton == Decimal("4.93")
        assert staged.calculated_price_per_carton_usd == Decimal("17.92")
        assert unstaged.calculated_price_per_carton_usd == Decimal("17.91")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("container_size_cbm", 0),
            ("qty_per_carton", 0),
            ("usd_to_ils", Decimal("0")),
        ],
    )
    def test_rejects_non_positive_divisors(self, field, value):
        with pytest.raises(ValueError):
            calculate_price(make_inputs(**{field: value}))


class TestLastSaleFloor:
    """Final price never drops below the last real sale."""

    def test_higher_last_sale_wins(self):
        result = calculate_price(make_inputs(last_sale_price=Decimal("70")))

        assert result.selling_price_per_carton_ils == Decimal("70.00")
        assert result.selling_price_per_carton_usd == Decimal("18.92")
        assert result.price_source == PriceSource.LAST_SALE
        # Calculated stays visible
        assert result.calculated_price_per_carton_ils == Decimal("65.27")

    def test_lower_last_sale_keeps_calculated(self):
        result = calculate_price(make_inputs(last_sale_price=Decimal("60")))

        assert result.selling_price_per_carton_ils == Decimal("65.27")
        assert result.price_source == PriceSource.CALCULATED

    def test_tie_keeps_calculated(self):
        result = calculate_price(make_inputs(last_sale_price=Decimal("65.27")))

        assert result.price_source == PriceSource.CALCULATED

    def test_usd_last_sale_is_converted(self):
        # 19 USD * 3.70 = 70.30 ILS
        result = calculate_price(
            make_inputs(last_sale_price=Decimal("19"), last_sale_currency=Currency.USD)
        )

        assert result.selling_price_per_carton_ils == Decimal("70.30")
        assert result.price_source == PriceSource.LAST_SALE

    def test_floor_disabled_for_preview(self):
        result = calculate_price(make_inputs(last_sale_price=Decimal("70")), apply_floor=False)

        assert result.selling_price_per_carton_ils == Decimal("65.27")
        assert result.price_source == PriceSource.CALCULATED

    def test_zero_last_sale_is_ignored(self):
        result = calculate_price(make_inputs(last_sale_price=Decimal("0")))

        assert result.price_source == PriceSource.CALCULATED


class TestSpecialPrice:
    def test_usd_price_kept_verbatim(self):
        prices = convert_special_price(Decimal("50"), Currency.USD, Decimal("3.70"), 12)

        assert prices["selling_price_per_carton_usd"] == Decimal("50.00")
        assert prices["selling_price_per_carton_ils"] == Decimal("185.00")
        assert prices["selling_price_per_unit_usd"] == Decimal("4.17")
        assert prices["selling_price_per_unit_ils"] == Decimal("15.42")

    def test_ils_price_kept_verbatim(self):
        prices = convert_special_price(Decimal("185"), Currency.ILS, Decimal("3.70"), 1)

        assert prices["selling_price_per_carton_ils"] == Decimal("185.00")
        assert prices["selling_price_per_carton_usd"] == Decimal("50.00")


class TestQuantities:
    def test_defaults_to_one_carton(self):
        q = carton_quantities(None, 12, Decimal("0.068"))

        assert q.requested_quantity == 12
        assert q.number_of_cartons == 1
        assert q.total_cbm == Decimal("0.068")

    def test_partial_carton_rounds_up(self):
        q = carton_quantities(25, 12, Decimal("0.068"))

        assert q.number_of_cartons == 3
        assert q.total_cbm == Decimal("0.204")


def test_to_ils():
    assert to_ils(Decimal("2"), Currency.USD, Decimal("3.5")) == Decimal("7.0")
    assert to_ils(Decimal("2"), Currency.ILS, Decimal("3.5")) == Decimal("2")
