"""Versioned rule storage with as-of resolution.

Margin rules, freight rates and daily currency rates share one shape: a
business key, a validity start, an active flag and a value. Each version is a
separate row; the current version for a key is the active row with the latest
validity start not after the query time. Ties on the validity start go to the
most recently inserted row (highest id).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cartonprice.db.models import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VersionedRuleStore(Generic[ModelT]):
    """As-of lookup and append-only writes over one rule table.

    Example:
        >>> store = VersionedRuleStore(session, MarginRuleModel, ("category_id",))
        >>> rule = await store.resolve_active((category_id,))
    """

    def __init__(
        self,
        session: AsyncSession,
        model: type[ModelT],
        key_columns: Sequence[str],
        valid_from_column: str = "valid_from",
        active_column: str = "is_active",
    ):
        """Initialize store over a model.

        Args:
            session: SQLAlchemy async session
            model: Rule table model
            key_columns: Column names forming the business key (may be empty)
            valid_from_column: Column holding the validity start
            active_column: Boolean column marking usable rows
        """
        self.session = session
        self.model = model
        self.key_columns = tuple(key_columns)
        self.valid_from = getattr(model, valid_from_column)
        self.is_active = getattr(model, active_column)
        self._valid_from_name = valid_from_column

    def _key_filter(self, key: Sequence[Any]) -> list:
        if len(key) != len(self.key_columns):
            raise ValueError(
                f"{self.model.__name__} key needs {len(self.key_columns)} values, got {len(key)}"
            )
        return [getattr(self.model, col) == value for col, value in zip(self.key_columns, key)]

    async def resolve_active(
        self, key: Sequence[Any] = (), as_of: datetime | date | None = None
    ) -> ModelT | None:
        """Return the version in force at `as_of` (default: now), or None.

        Inactive rows are never returned, even when they are the newest.
        """
        if as_of is None:
            as_of = utcnow()

        stmt = (
            select(self.model)
            .where(
                and_(
                    *self._key_filter(key),
                    self.is_active == True,  # noqa: E712
                    self.valid_from <= as_of,
                )
            )
            .order_by(self.valid_from.desc(), self.model.id.desc())
            .limit(1)
        )

        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def history(self, key: Sequence[Any] = (), limit: int = 30) -> list[ModelT]:
        """All versions for a key, newest first, including inactive ones."""
        stmt = (
            select(self.model)
            .where(*self._key_filter(key))
            .order_by(self.valid_from.desc(), self.model.id.desc())
            .limit(limit)
        )

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def supersede(
        self,
        key: Sequence[Any],
        values: dict[str, Any],
        valid_from: datetime | None = None,
    ) -> ModelT:
        """Append a new active version for `key`.

        Older versions stay in place and lose to the later validity start.

        Returns:
            The flushed new row (id assigned)
        """
        row = self.model(
            **dict(zip(self.key_columns, key)),
            **values,
            **{self._valid_from_name: valid_from or utcnow()},
        )
        self.session.add(row)
        await self.session.flush()

        logger.info(f"New {self.model.__tablename__} version {row.id} for key={tuple(key)}")
        return row

    async def deactivate(self, row_id: int) -> bool:
        """Mark one version inactive. Returns False if no such row."""
        stmt = (
            update(self.model)
            .where(self.model.id == row_id)
            .values({self.is_active.key: False})
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0
