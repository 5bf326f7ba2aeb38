"""Pre-calculation check for required item data."""

from __future__ import annotations

from cartonprice import i18n
from cartonprice.errors import MissingPricingData
from cartonprice.models import Item, PricingOverrides


def _missing(value) -> bool:
    return value is None or value <= 0


def find_missing_fields(item: Item, overrides: PricingOverrides | None = None) -> list[str]:
    """Field keys that are absent on the item and not supplied as overrides.

    A margin override waives the category requirement.
    """
    overrides = overrides or PricingOverrides()
    missing: list[str] = []

    if _missing(item.supplier_price) and overrides.supplier_price is None:
        missing.append("supplier_price")
    if _missing(item.box_cbm) and overrides.box_cbm is None:
        missing.append("box_cbm")
    if _missing(item.qty_per_carton) and overrides.qty_per_carton is None:
        missing.append("qty_per_carton")
    if item.category_id is None and overrides.margin_percentage is None:
        missing.append("category")

    return missing


def validate_pricing_data(
    item: Item, overrides: PricingOverrides | None = None, language: str = "he"
) -> None:
    """Raise MissingPricingData naming every gap in the operator's language."""
    missing = find_missing_fields(item, overrides)
    if missing:
        raise MissingPricingData(
            i18n.message("missing_data", language),
            missing_fields=[i18n.field_label(field, language) for field in missing],
            item_code=item.item_code,
            item_name=item.display_name,
        )
