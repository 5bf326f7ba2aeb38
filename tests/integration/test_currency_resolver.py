"""Integration tests for daily USD->ILS rate resolution.

Covers the stored/fetched/fallback states, the missing-rate failure and the
one-row-per-day guarantee of the daily write.
"""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cartonprice.config import DBConfig, reset_config
from cartonprice.currency.resolver import CurrencyRateResolver, rate_with_margin
from cartonprice.db.connection import _build_engine
from cartonprice.db.models import Base, CurrencyRateModel
from cartonprice.errors import BankRateUnavailable, NoCurrencyRateAvailable

TODAY = date(2025, 3, 10)


def make_resolver(session: AsyncSession, fetcher=None) -> CurrencyRateResolver:
    return CurrencyRateResolver(
        session,
        fetcher=fetcher or AsyncMock(return_value=Decimal("3.60")),
        today=lambda: TODAY,
    )


async def add_rate(session: AsyncSession, day: date, rate: str, active: bool = True) -> CurrencyRateModel:
    row = CurrencyRateModel(
        rate_date=day,
        usd_rate=Decimal(rate),
        margin_percentage=Decimal("0"),
        usd_rate_with_margin=Decimal(rate),
        source="bank",
        is_active=active,
    )
    session.add(row)
    await session.flush()
    return row


async def count_rates(session: AsyncSession, day: date = TODAY) -> int:
    result = await session.execute(
        select(func.count()).select_from(CurrencyRateModel).where(CurrencyRateModel.rate_date == day)
    )
    return result.scalar_one()


def test_rate_with_margin():
    assert rate_with_margin(Decimal("3.60"), Decimal("5")) == Decimal("3.7800")
    assert rate_with_margin(Decimal("3.6543"), Decimal("0")) == Decimal("3.6543")


@pytest.mark.asyncio
async def test_todays_stored_rate_is_used_without_fetching(db_session: AsyncSession):
    await add_rate(db_session, TODAY, "3.70")
    fetcher = AsyncMock(return_value=Decimal("3.60"))

    row = await make_resolver(db_session, fetcher).current_rate()

    assert row.usd_rate_with_margin == Decimal("3.70")
    fetcher.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_today_fetches_and_stores(db_session: AsyncSession):
    await add_rate(db_session, TODAY - timedelta(days=1), "3.70")

    row = await make_resolver(db_session).current_rate()

    assert row.rate_date == TODAY
    assert row.usd_rate == Decimal("3.60")
    assert row.margin_percentage == Decimal("5")
    assert row.usd_rate_with_margin == Decimal("3.78")
    assert row.source == "bank"
    assert await count_rates(db_session) == 1


@pytest.mark.asyncio
async def test_fetch_failure_falls_back_to_latest(db_session: AsyncSession):
    await add_rate(db_session, TODAY - timedelta(days=5), "3.55")
    await add_rate(db_session, TODAY - timedelta(days=2), "3.65")
    fetcher = AsyncMock(side_effect=BankRateUnavailable("down"))

    row = await make_resolver(db_session, fetcher).current_rate()

    assert row.rate_date == TODAY - timedelta(days=2)
    assert row.usd_rate_with_margin == Decimal("3.65")
    assert await count_rates(db_session) == 0


@pytest.mark.asyncio
async def test_no_rate_at_all_fails(db_session: AsyncSession):
    fetcher = AsyncMock(side_effect=BankRateUnavailable("down"))

    with pytest.raises(NoCurrencyRateAvailable) as exc_info:
        await make_resolver(db_session, fetcher).current_rate("en")

    assert exc_info.value.message == "No USD exchange rate is available"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_fetch_timeout_falls_back(db_session: AsyncSession, monkeypatch):
    monkeypatch.setenv("CURRENCY_FETCH_TIMEOUT", "0.01")
    reset_config()
    await add_rate(db_session, TODAY - timedelta(days=1), "3.66")

    async def slow_fetch():
        await asyncio.sleep(1)
        return Decimal("3.60")

    row = await make_resolver(db_session, slow_fetch).current_rate()

    assert row.usd_rate_with_margin == Decimal("3.66")


@pytest.mark.asyncio
async def test_fetch_disabled_uses_stored(db_session: AsyncSession, monkeypatch):
    monkeypatch.setenv("CURRENCY_FETCH_ENABLED", "false")
    reset_config()
    await add_rate(db_session, TODAY - timedelta(days=1), "3.66")
    fetcher = AsyncMock(return_value=Decimal("3.60"))

    row = await make_resolver(db_session, fetcher).current_rate()

    assert row.rate_date == TODAY - timedelta(days=1)
    fetcher.assert_not_awaited()


@pytest.mark.asyncio
async def test_inactive_rate_for_today_is_skipped(db_session: AsyncSession):
    await add_rate(db_session, TODAY - timedelta(days=1), "3.66")
    await add_rate(db_session, TODAY, "9.99", active=False)

    row = await make_resolver(db_session).current_rate()

    assert row.rate_date == TODAY - timedelta(days=1)
    assert await count_rates(db_session) == 1


@pytest.mark.asyncio
async def test_second_writer_reuses_first_row(db_session: AsyncSession):
    """Two requests that both missed today's rate end up with one row."""
    first = await make_resolver(db_session, AsyncMock(return_value=Decimal("3.60"))).current_rate()

    late = make_resolver(db_session, AsyncMock(return_value=Decimal("3.90")))
    second = await late._fetch_and_store(TODAY, Decimal("5"))

    assert second.id == first.id
    assert second.usd_rate == Decimal("3.60")
    assert await count_rates(db_session) == 1


@pytest.mark.asyncio
async def test_daily_write_across_sessions(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rates.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with SessionLocal() as s1:
            winner = await make_resolver(s1, AsyncMock(return_value=Decimal("3.60")))._fetch_and_store(
                TODAY, Decimal("5")
            )
            await s1.commit()

        async with SessionLocal() as s2:
            loser = await make_resolver(s2, AsyncMock(return_value=Decimal("3.95")))._fetch_and_store(
                TODAY, Decimal("5")
            )
            await s2.commit()
            assert await count_rates(s2) == 1

        assert loser.id == winner.id
        assert loser.usd_rate_with_margin == Decimal("3.78")
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_manual_rate_replaces_bank_rate(db_session: AsyncSession):
    await make_resolver(db_session).current_rate()

    row = await make_resolver(db_session).set_manual_rate(Decimal("3.50"), Decimal("2"))

    assert row.source == "manual"
    assert row.usd_rate == Decimal("3.50")
    assert row.usd_rate_with_margin == Decimal("3.57")
    assert await count_rates(db_session) == 1


@pytest.mark.asyncio
async def test_manual_rate_rejects_non_positive(db_session: AsyncSession):
    with pytest.raises(ValueError):
        await make_resolver(db_session).set_manual_rate(Decimal("0"))


@pytest.mark.asyncio
async def test_refresh_today_keeps_existing(db_session: AsyncSession):
    await add_rate(db_session, TODAY, "3.70")
    fetcher = AsyncMock(return_value=Decimal("3.60"))

    row = await make_resolver(db_session, fetcher).refresh_today()

    assert row.usd_rate == Decimal("3.70")
    fetcher.assert_not_awaited()


@pytest.mark.asyncio
async def test_history_newest_first(db_session: AsyncSession):
    for offset, rate in [(3, "3.61"), (1, "3.63"), (2, "3.62")]:
        await add_rate(db_session, TODAY - timedelta(days=offset), rate)

    rows = await make_resolver(db_session).history(limit=2)

    assert [r.usd_rate for r in rows] == [Decimal("3.63"), Decimal("3.62")]


@pytest.mark.asyncio
async def test_concurrent_first_of_day_writers(tmp_path):
    """Two sessions resolving today's rate at once store and return one row."""
    engine = _build_engine(DBConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'rates.db'}"))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def resolve(rate: str) -> CurrencyRateModel:
        async with SessionLocal() as session:
            row = await make_resolver(session, AsyncMock(return_value=Decimal(rate))).current_rate()
            await session.commit()
            return row

    try:
        first, second = await asyncio.gather(resolve("3.60"), resolve("3.95"))

        assert first.id == second.id
        assert first.usd_rate == second.usd_rate
        async with SessionLocal() as session:
            assert await count_rates(session) == 1
    finally:
        await engine.dispose()
