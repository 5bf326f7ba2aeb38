"""Margin and freight lookups over the versioned rule store."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cartonprice.config import get_config
from cartonprice.db.models import FreightRateModel, MarginRuleModel
from cartonprice.db.rule_store import VersionedRuleStore
from cartonprice.models import ValueSource

logger = logging.getLogger(__name__)


class MarginResolver:
    """Current margin percentage for a category."""

    def __init__(self, session: AsyncSession):
        self.store = VersionedRuleStore(session, MarginRuleModel, ("category_id",))

    async def resolve(self, category_id: UUID, as_of: datetime | None = None) -> Decimal | None:
        """Margin percentage in force, or None when the category has no active rule."""
        rule = await self.store.resolve_active((category_id,), as_of=as_of)
        if rule is None:
            logger.info(f"No active margin rule for category {category_id}")
            return None
        return rule.margin_percentage

    async def set_margin(
        self,
        category_id: UUID,
        margin_percentage: Decimal,
        valid_from: datetime | None = None,
        notes: str | None = None,
    ) -> MarginRuleModel:
        """Add a new margin version for the category."""
        if margin_percentage < 0 or margin_percentage > 100:
            raise ValueError("margin_percentage must be between 0 and 100")
        return await self.store.supersede(
            (category_id,),
            {"margin_percentage": margin_percentage, "is_active": True, "notes": notes},
            valid_from=valid_from,
        )

    async def history(self, category_id: UUID, limit: int = 30) -> list[MarginRuleModel]:
        return await self.store.history((category_id,), limit=limit)


class FreightResolver:
    """Current freight cost per container for a (port, container size)."""

    def __init__(self, session: AsyncSession):
        self.store = VersionedRuleStore(
            session, FreightRateModel, ("port_of_origin", "container_size_cbm")
        )
        self.default_cost = get_config().pricing.default_freight_cost
        self.container_sizes = get_config().pricing.container_sizes_cbm

    async def resolve(
        self, port_of_origin: str, container_size_cbm: int, as_of: datetime | None = None
    ) -> tuple[Decimal, ValueSource]:
        """Freight cost and where it came from.

        Falls back to the configured default cost when no rule exists.
        """
        rate = await self.store.resolve_active(
            (port_of_origin, container_size_cbm), as_of=as_of
        )
        if rate is None:
            logger.warning(
                f"No freight rate for {port_of_origin}/{container_size_cbm}CBM, "
                f"using default {self.default_cost}"
            )
            return self.default_cost, ValueSource.DEFAULT
        return rate.freight_cost, ValueSource.DATABASE

    async def set_rate(
        self,
        port_of_origin: str,
        container_size_cbm: int,
        freight_cost: Decimal,
        valid_from: datetime | None = None,
        notes: str | None = None,
    ) -> FreightRateModel:
        """Add a new freight version for the port/container pair."""
        if freight_cost < 0:
            raise ValueError("freight_cost must be non-negative")
        if container_size_cbm not in self.container_sizes:
            raise ValueError(
                f"Unsupported container size: {container_size_cbm} CBM "
                f"(allowed: {', '.join(str(s) for s in self.container_sizes)})"
            )
        return await self.store.supersede(
            (port_of_origin, container_size_cbm),
            {"freight_cost": freight_cost, "is_active": True, "notes": notes},
            valid_from=valid_from,
        )

    async def history(
        self, port_of_origin: str, container_size_cbm: int, limit: int = 30
    ) -> list[FreightRateModel]:
        return await self.store.history((port_of_origin, container_size_cbm), limit=limit)
