"""Database layer for cartonprice with async SQLAlchemy."""

from cartonprice.db.connection import get_session, init_db
from cartonprice.db.models import (
    Base,
    CategoryModel,
    CurrencyRateModel,
    FreightRateModel,
    ItemModel,
    MarginRuleModel,
    SpecialPriceModel,
)
from cartonprice.db.rule_store import VersionedRuleStore

__all__ = [
    "Base",
    "CategoryModel",
    "ItemModel",
    "MarginRuleModel",
    "FreightRateModel",
    "CurrencyRateModel",
    "SpecialPriceModel",
    "VersionedRuleStore",
    "get_session",
    "init_db",
]
