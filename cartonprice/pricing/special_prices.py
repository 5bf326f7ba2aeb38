"""Customer-specific negotiated prices."""

from __future__ import annotations

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cartonprice.db.models import SpecialPriceModel
from cartonprice.models import Currency, SpecialPrice


async def get_special_price(
    session: AsyncSession, customer_code: str | None, item_code: str
) -> SpecialPrice | None:
    """Special price for the (customer, item) pair, if one is on file."""
    if not customer_code:
        return None

    stmt = select(SpecialPriceModel).where(
        and_(
            SpecialPriceModel.customer_code == customer_code.strip(),
            SpecialPriceModel.item_code == item_code,
        )
    )
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()

    if row is None:
        return None

    return SpecialPrice(
        customer_code=row.customer_code,
        item_code=row.item_code,
        price=row.price,
        currency=Currency.parse(row.currency, default=Currency.USD),
        notes=row.notes,
    )
