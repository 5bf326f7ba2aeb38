"""Pricing orchestration: item lookup, rule resolution, quote assembly.

Standard quote:
    missing-data check -> special price (short-circuit) -> margin -> freight
    -> currency rate -> calculate with last-sale floor

Preview:
    missing-data check (overrides waive fields) -> each input from the
    override or its resolver -> calculate without the floor
"""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cartonprice import i18n
from cartonprice.config import get_config
from cartonprice.currency.resolver import CurrencyRateResolver
from cartonprice.db.models import CategoryModel, ItemModel
from cartonprice.errors import CategoryMarginMissing, InvalidPricingRequest, ItemNotFound
from cartonprice.models import (
    Currency,
    Item,
    LastSaleInfo,
    PricingChain,
    PricingOverrides,
    Quote,
    SpecialPrice,
    SpecialPriceQuote,
    StandardQuote,
    ValueSource,
)
from cartonprice.pricing import calculator
from cartonprice.pricing.calculator import CostInputs
from cartonprice.pricing.resolvers import FreightResolver, MarginResolver
from cartonprice.pricing.special_prices import get_special_price
from cartonprice.pricing.validator import find_missing_fields, validate_pricing_data

logger = logging.getLogger(__name__)


def _row_to_item(row: ItemModel, category: CategoryModel | None) -> Item:
    """Convert database row to Pydantic model."""
    return Item(
        id=row.id,
        item_code=row.item_code,
        english_description=row.english_description or "",
        name_he=row.name_he,
        category_id=row.category_id,
        category_name=(category.name_he or category.name) if category else None,
        qty_per_carton=row.qty_per_carton,
        box_cbm=row.box_cbm,
        supplier_price=row.supplier_price,
        supplier_currency=Currency.parse(row.supplier_currency, default=Currency.USD),
        last_sales_order_price=row.last_sales_order_price,
        last_sales_order_currency=row.last_sales_order_currency,
        last_sales_order_date=row.last_sales_order_date,
        last_sales_order_number=row.last_sales_order_number,
        image_url=row.image_url,
    )


class PricingService:
    """Price one item, standard or preview, within a single session."""

    def __init__(
        self,
        session: AsyncSession,
        currency_resolver: CurrencyRateResolver | None = None,
        language: str | None = None,
    ):
        self.session = session
        self.config = get_config().pricing
        self.language = i18n.normalize_language(language, self.config.default_language)
        self.currency = currency_resolver or CurrencyRateResolver(session)
        self.margins = MarginResolver(session)
        self.freight = FreightResolver(session)

    async def get_item(self, item_ref: str | UUID) -> Item:
        """Load an item by UUID or item code.

        Raises:
            ItemNotFound: No such item
        """
        try:
            item_id = item_ref if isinstance(item_ref, UUID) else UUID(str(item_ref))
            stmt = select(ItemModel).where(ItemModel.id == item_id)
        except ValueError:
            stmt = select(ItemModel).where(ItemModel.item_code == str(item_ref).strip())

        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            raise ItemNotFound(i18n.message("item_not_found", self.language))

        category = None
        if row.category_id is not None:
            category = await self.session.get(CategoryModel, row.category_id)

        return _row_to_item(row, category)

    def _shipping(self, port_of_origin: str | None, container_size_cbm: int | None) -> tuple[str, int]:
        port = (port_of_origin or "").strip() or self.config.default_port_of_origin
        size = container_size_cbm or self.config.default_container_size_cbm
        if size not in self.config.container_sizes_cbm:
            raise InvalidPricingRequest(
                f"Unsupported container size {size} CBM "
                f"(allowed: {', '.join(str(s) for s in self.config.container_sizes_cbm)})"
            )
        return port, size

    async def quote(
        self,
        item_ref: str | UUID,
        customer_code: str | None = None,
        quantity: int | None = None,
        port_of_origin: str | None = None,
        container_size_cbm: int | None = None,
    ) -> tuple[Item, Quote]:
        """Selling price for an item, honoring special prices and the last-sale floor.

        Raises:
            ItemNotFound, MissingPricingData, CategoryMarginMissing,
            NoCurrencyRateAvailable, InvalidPricingRequest
        """
        port, size = self._shipping(port_of_origin, container_size_cbm)
        item = await self.get_item(item_ref)

        missing = find_missing_fields(item)

        special = await get_special_price(self.session, customer_code, item.item_code)
        if special is not None:
            quote = await self._special_price_quote(item, special, quantity, port, size)
            logger.info(
                f"Special price for {customer_code}/{item.item_code}: "
                f"{quote.selling_price_per_carton_ils} ILS"
            )
            return item, quote

        if missing:
            validate_pricing_data(item, language=self.language)

        margin = await self._margin_for(item)
        freight_cost, freight_source = await self.freight.resolve(port, size)
        rate_row = await self.currency.current_rate(self.language)
        usd_to_ils = rate_row.usd_rate_with_margin

        inputs = CostInputs(
            supplier_price=self._supplier_price_usd(item, usd_to_ils),
            freight_cost_per_container=freight_cost,
            container_size_cbm=size,
            box_cbm=item.box_cbm,
            qty_per_carton=item.qty_per_carton,
            margin_percentage=margin,
            usd_to_ils=usd_to_ils,
            last_sale_price=item.last_sales_order_price,
            last_sale_currency=Currency.parse(item.last_sales_order_currency, default=Currency.ILS),
        )
        breakdown = calculator.calculate_price(
            inputs, apply_floor=True, round_intermediate=self.config.round_intermediate
        )
        quantities = calculator.carton_quantities(quantity, item.qty_per_carton, item.box_cbm)

        logger.info(
            f"Quoted {item.item_code}: {breakdown.selling_price_per_carton_ils} ILS "
            f"(source={breakdown.price_source.value})"
        )

        return item, StandardQuote(
            price_source=breakdown.price_source,
            qty_per_carton=item.qty_per_carton,
            box_cbm=item.box_cbm,
            supplier_price_per_carton=calculator.money(inputs.supplier_price),
            port_of_origin=port,
            container_size_cbm=size,
            freight_cost_per_container=freight_cost,
            freight_source=freight_source,
            freight_cost_per_cbm=breakdown.freight_cost_per_cbm,
            freight_cost_per_carton=breakdown.freight_cost_per_carton,
            total_cost_per_carton=breakdown.total_cost_per_carton,
            margin_percentage=margin,
            usd_to_ils=calculator.rate(usd_to_ils),
            calculated_price_per_carton_usd=breakdown.calculated_price_per_carton_usd,
            calculated_price_per_unit_usd=breakdown.calculated_price_per_unit_usd,
            calculated_price_per_carton_ils=breakdown.calculated_price_per_carton_ils,
            calculated_price_per_unit_ils=breakdown.calculated_price_per_unit_ils,
            selling_price_per_carton_usd=breakdown.selling_price_per_carton_usd,
            selling_price_per_unit_usd=breakdown.selling_price_per_unit_usd,
            selling_price_per_carton_ils=breakdown.selling_price_per_carton_ils,
            selling_price_per_unit_ils=breakdown.selling_price_per_unit_ils,
            requested_quantity=quantities.requested_quantity,
            number_of_cartons=quantities.number_of_cartons,
            total_cbm=quantities.total_cbm,
            last_sales_order_price=item.last_sales_order_price,
            last_sales_order_currency=item.last_sales_order_currency,
            last_sales_order_date=item.last_sales_order_date,
        )

    async def preview(
        self,
        item_ref: str | UUID,
        overrides: PricingOverrides | None = None,
        port_of_origin: str | None = None,
        container_size_cbm: int | None = None,
    ) -> tuple[Item, PricingChain]:
        """Pure calculated price with any input overridden; no last-sale floor."""
        overrides = overrides or PricingOverrides()
        port, size = self._shipping(port_of_origin, container_size_cbm)
        item = await self.get_item(item_ref)

        validate_pricing_data(item, overrides, language=self.language)

        # Each input comes from exactly one place: the override or its resolver
        if overrides.usd_to_ils is not None:
            usd_to_ils, rate_source = overrides.usd_to_ils, ValueSource.OVERRIDE
            bank_rate, rate_margin = None, Decimal("0")
        else:
            rate_row = await self.currency.current_rate(self.language)
            usd_to_ils, rate_source = rate_row.usd_rate_with_margin, ValueSource.DATABASE
            bank_rate, rate_margin = rate_row.usd_rate, rate_row.margin_percentage

        if overrides.supplier_price is not None:
            supplier_price, supplier_source = overrides.supplier_price, ValueSource.OVERRIDE
        else:
            supplier_price = self._supplier_price_usd(item, usd_to_ils)
            supplier_source = ValueSource.DATABASE

        if overrides.box_cbm is not None:
            box_cbm, box_source = overrides.box_cbm, ValueSource.OVERRIDE
        else:
            box_cbm, box_source = item.box_cbm, ValueSource.DATABASE

        if overrides.qty_per_carton is not None:
            qty, qty_source = overrides.qty_per_carton, ValueSource.OVERRIDE
        else:
            qty, qty_source = item.qty_per_carton, ValueSource.DATABASE

        if overrides.freight_cost_per_container is not None:
            freight_cost, freight_source = overrides.freight_cost_per_container, ValueSource.OVERRIDE
        else:
            freight_cost, freight_source = await self.freight.resolve(port, size)

        if overrides.margin_percentage is not None:
            margin, margin_source = overrides.margin_percentage, ValueSource.OVERRIDE
        else:
            margin, margin_source = await self._margin_for(item), ValueSource.DATABASE

        inputs = CostInputs(
            supplier_price=supplier_price,
            freight_cost_per_container=freight_cost,
            container_size_cbm=size,
            box_cbm=box_cbm,
            qty_per_carton=qty,
            margin_percentage=margin,
            usd_to_ils=usd_to_ils,
        )
        breakdown = calculator.calculate_price(
            inputs, apply_floor=False, round_intermediate=self.config.round_intermediate
        )

        return item, PricingChain(
            supplier_price_per_carton=calculator.money(supplier_price),
            supplier_price_source=supplier_source,
            port_of_origin=port,
            container_size_cbm=size,
            freight_cost_per_container=freight_cost,
            freight_cost_per_cbm=breakdown.freight_cost_per_cbm,
            freight_cost_per_carton=breakdown.freight_cost_per_carton,
            freight_source=freight_source,
            total_cost_per_carton=breakdown.total_cost_per_carton,
            margin_percentage=margin,
            margin_source=margin_source,
            category_name=item.category_name,
            usd_to_ils=calculator.rate(usd_to_ils),
            usd_rate_source=rate_source,
            bank_rate=calculator.rate(bank_rate) if bank_rate is not None else None,
            rate_margin_percent=rate_margin,
            calculated_price_per_carton_usd=breakdown.calculated_price_per_carton_usd,
            calculated_price_per_unit_usd=breakdown.calculated_price_per_unit_usd,
            calculated_price_per_carton_ils=breakdown.calculated_price_per_carton_ils,
            calculated_price_per_unit_ils=breakdown.calculated_price_per_unit_ils,
            last_sale_info=self._last_sale_info(item, usd_to_ils),
            qty_per_carton=qty,
            qty_per_carton_source=qty_source,
            box_cbm=box_cbm,
            box_cbm_source=box_source,
        )

    async def _special_price_quote(
        self,
        item: Item,
        special: SpecialPrice,
        quantity: int | None,
        port: str,
        size: int,
    ) -> SpecialPriceQuote:
        rate_row = await self.currency.current_rate(self.language)
        usd_to_ils = rate_row.usd_rate_with_margin

        qty = item.qty_per_carton if item.qty_per_carton and item.qty_per_carton > 0 else 1
        box_cbm = item.box_cbm or Decimal("0")

        prices = calculator.convert_special_price(special.price, special.currency, usd_to_ils, qty)
        quantities = calculator.carton_quantities(quantity, qty, box_cbm)

        return SpecialPriceQuote(
            qty_per_carton=qty,
            box_cbm=box_cbm,
            usd_to_ils=calculator.rate(usd_to_ils),
            special_price_currency=special.currency,
            requested_quantity=quantities.requested_quantity,
            number_of_cartons=quantities.number_of_cartons,
            total_cbm=quantities.total_cbm,
            port_of_origin=port,
            container_size_cbm=size,
            **prices,
        )

    async def _margin_for(self, item: Item) -> Decimal:
        margin = await self.margins.resolve(item.category_id)
        if margin is None:
            raise CategoryMarginMissing(
                i18n.message("margin_missing", self.language),
                missing_fields=[i18n.field_label("margin_percentage", self.language)],
                item_code=item.item_code,
                item_name=item.display_name,
            )
        return margin

    @staticmethod
    def _supplier_price_usd(item: Item, usd_to_ils: Decimal) -> Decimal:
        if item.supplier_currency == Currency.ILS:
            return calculator.money(item.supplier_price / usd_to_ils)
        return item.supplier_price

    @staticmethod
    def _last_sale_info(item: Item, usd_to_ils: Decimal) -> LastSaleInfo | None:
        if not item.last_sales_order_price or item.last_sales_order_price <= 0:
            return None

        currency = Currency.parse(item.last_sales_order_currency, default=Currency.ILS)
        price_ils = calculator.to_ils(item.last_sales_order_price, currency, usd_to_ils)
        return LastSaleInfo(
            price_ils=calculator.money(price_ils),
            price_usd=calculator.money(price_ils / usd_to_ils),
            currency=currency,
            sale_date=item.last_sales_order_date,
        )
