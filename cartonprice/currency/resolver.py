"""Daily USD->ILS rate resolution.

Resolution order for "the rate to price with now":

1. Today's active rate is stored -> use it.
2. Otherwise fetch from the Bank of Israel and store it for today. The write
   is INSERT ... ON CONFLICT (rate_date) DO NOTHING followed by a re-read, so
   concurrent first requests of the day end up sharing one row.
3. Fetch failed or disabled -> most recent active rate before today.

Only when all three come up empty does pricing fail.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cartonprice import i18n
from cartonprice.config import get_config
from cartonprice.currency.boi_client import BankOfIsraelClient
from cartonprice.db.models import CurrencyRateModel
from cartonprice.db.rule_store import VersionedRuleStore
from cartonprice.errors import BankRateUnavailable, NoCurrencyRateAvailable
from cartonprice.models import RateSource

logger = logging.getLogger(__name__)

RateFetcher = Callable[[], Awaitable[Decimal]]


def rate_with_margin(usd_rate: Decimal, margin_percentage: Decimal) -> Decimal:
    """usd_rate * (1 + margin/100), kept at 4 decimals."""
    value = usd_rate * (1 + margin_percentage / Decimal(100))
    return value.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


class CurrencyRateResolver:
    """Resolve, fetch and store the daily rate for one session."""

    def __init__(
        self,
        session: AsyncSession,
        fetcher: RateFetcher | None = None,
        today: Callable[[], date] = date.today,
    ):
        """Initialize resolver.

        Args:
            session: SQLAlchemy async session
            fetcher: Coroutine returning the raw bank rate; defaults to the
                Bank of Israel client
            today: Clock for "today" (injectable for tests)
        """
        config = get_config().currency
        self.session = session
        self.fetcher = fetcher or BankOfIsraelClient().fetch_usd_rate
        self.fetch_enabled = config.fetch_enabled
        self.timeout = config.timeout_seconds
        self.default_margin = config.rate_margin_percentage
        self._today = today
        self.store = VersionedRuleStore(
            session, CurrencyRateModel, key_columns=(), valid_from_column="rate_date"
        )

    async def current_rate(self, language: str | None = None) -> CurrencyRateModel:
        """Rate to price with right now.

        Raises:
            NoCurrencyRateAvailable: No stored rate and the fetch failed
        """
        today = self._today()
        latest = await self.store.resolve_active(as_of=today)
        if latest is not None and latest.rate_date == today:
            return latest

        fetched = await self._fetch_and_store(today, self.default_margin)
        if fetched is not None:
            return fetched

        if latest is not None:
            logger.warning(
                f"No rate for {today}; falling back to {latest.rate_date} "
                f"({latest.usd_rate_with_margin})"
            )
            return latest

        language = language or get_config().pricing.default_language
        raise NoCurrencyRateAvailable(i18n.message("no_currency_rate", language))

    async def today_rate(self) -> CurrencyRateModel | None:
        """Today's stored active rate, without fetching."""
        today = self._today()
        latest = await self.store.resolve_active(as_of=today)
        if latest is not None and latest.rate_date == today:
            return latest
        return None

    async def refresh_today(self, margin_percentage: Decimal | None = None) -> CurrencyRateModel | None:
        """Ensure today's rate exists, fetching it if needed. None if the fetch failed."""
        existing = await self.today_rate()
        if existing is not None:
            logger.info(f"Rate for today already stored: {existing.usd_rate_with_margin}")
            return existing

        margin = self.default_margin if margin_percentage is None else margin_percentage
        return await self._fetch_and_store(self._today(), margin)

    async def set_manual_rate(
        self, usd_rate: Decimal, margin_percentage: Decimal | None = None
    ) -> CurrencyRateModel:
        """Store an operator-entered rate for today, replacing any bank value."""
        if usd_rate <= 0:
            raise ValueError("usd_rate must be positive")
        margin = self.default_margin if margin_percentage is None else margin_percentage
        if margin < 0:
            raise ValueError("margin_percentage must be non-negative")

        today = self._today()
        values = self._row_values(today, usd_rate, margin, RateSource.MANUAL)
        insert = self._dialect_insert()
        stmt = insert(CurrencyRateModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["rate_date"],
            set_={
                "usd_rate": stmt.excluded.usd_rate,
                "margin_percentage": stmt.excluded.margin_percentage,
                "usd_rate_with_margin": stmt.excluded.usd_rate_with_margin,
                "source": stmt.excluded.source,
                "is_active": True,
            },
        )
        await self.session.execute(stmt)

        row = await self._load_for_date(today)
        logger.info(f"Manual USD rate stored for {today}: {row.usd_rate_with_margin}")
        return row

    async def history(self, limit: int = 30) -> list[CurrencyRateModel]:
        return await self.store.history(limit=limit)

    async def _fetch_and_store(
        self, today: date, margin_percentage: Decimal
    ) -> CurrencyRateModel | None:
        if not self.fetch_enabled:
            return None

        try:
            usd_rate = await asyncio.wait_for(self.fetcher(), timeout=self.timeout)
        except (BankRateUnavailable, asyncio.TimeoutError) as e:
            logger.warning(f"Bank rate fetch failed, using stored rates: {e}")
            return None

        insert = self._dialect_insert()
        stmt = (
            insert(CurrencyRateModel)
            .values(**self._row_values(today, usd_rate, margin_percentage, RateSource.BANK))
            .on_conflict_do_nothing(index_elements=["rate_date"])
        )
        await self.session.execute(stmt)

        # Whichever writer won, today's row is the one to use
        row = await self._load_for_date(today)
        if row is None or not row.is_active:
            return None

        logger.info(f"USD rate for {today}: {row.usd_rate_with_margin} (source={row.source})")
        return row

    async def _load_for_date(self, day: date) -> CurrencyRateModel | None:
        stmt = (
            select(CurrencyRateModel)
            .where(CurrencyRateModel.rate_date == day)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _dialect_insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise NotImplementedError(f"Rate upsert not supported on {dialect}")
        return insert

    @staticmethod
    def _row_values(
        day: date, usd_rate: Decimal, margin_percentage: Decimal, source: RateSource
    ) -> dict:
        return {
            "rate_date": day,
            "usd_rate": usd_rate,
            "margin_percentage": margin_percentage,
            "usd_rate_with_margin": rate_with_margin(usd_rate, margin_percentage),
            "source": source.value,
            "is_active": True,
        }
