"""Pytest configuration and fixtures for cartonprice tests.

Provides an in-memory database session and seeded catalog/rule fixtures.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cartonprice.config import reset_config
from cartonprice.db.models import (
    Base,
    CategoryModel,
    CurrencyRateModel,
    FreightRateModel,
    ItemModel,
    MarginRuleModel,
)

TODAY = date(2025, 3, 10)
LAST_WEEK = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Point configuration at SQLite and keep the bank offline."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("CURRENCY_BANK_URL", "https://bank.test/PublicApi/GetExchangeRates")
    monkeypatch.delenv("PRICING_ROUND_INTERMEDIATE", raising=False)
    monkeypatch.delenv("PRICING_LANGUAGE", raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def today() -> date:
    return TODAY


@pytest_asyncio.fixture()
async def category(db_session: AsyncSession) -> CategoryModel:
    """Kitchenware category with a 20% margin."""
    cat = CategoryModel(name="Kitchenware", name_en="Kitchenware", name_he="כלי מטבח")
    db_session.add(cat)
    await db_session.flush()

    db_session.add(
        MarginRuleModel(
            category_id=cat.id,
            margin_percentage=Decimal("20"),
            valid_from=LAST_WEEK,
            is_active=True,
        )
    )
    await db_session.flush()
    return cat


@pytest_asyncio.fixture()
async def freight_rate(db_session: AsyncSession) -> FreightRateModel:
    """4700 USD per 68 CBM container from the default port."""
    rate = FreightRateModel(
        port_of_origin="Shenzhen Yantian",
        container_size_cbm=68,
        freight_cost=Decimal("4700"),
        valid_from=LAST_WEEK,
        is_active=True,
    )
    db_session.add(rate)
    await db_session.flush()
    return rate


@pytest_asyncio.fixture()
async def todays_rate(db_session: AsyncSession) -> CurrencyRateModel:
    """Stored rate for TODAY: 3.70 with no margin on top."""
    row = CurrencyRateModel(
        rate_date=TODAY,
        usd_rate=Decimal("3.70"),
        margin_percentage=Decimal("0"),
        usd_rate_with_margin=Decimal("3.70"),
        source="manual",
        is_active=True,
    )
    db_session.add(row)
    await db_session.flush()
    return row


@pytest_asyncio.fixture()
async def item(db_session: AsyncSession, category: CategoryModel) -> ItemModel:
    """Item priced at 10 USD per carton of 12, 0.068 CBM per carton."""
    row = ItemModel(
        item_code="KT-1001",
        english_description="Steel kettle 1.7L",
        name_he="קומקום פלדה",
        category_id=category.id,
        qty_per_carton=12,
        box_cbm=Decimal("0.068"),
        supplier_price=Decimal("10.00"),
        supplier_currency="USD",
    )
    db_session.add(row)
    await db_session.flush()
    return row
