"""SQLAlchemy async database models for cartonprice.

Rule tables (margin, freight, currency) are append-only version histories:
a new version is inserted and older ones are superseded by a later
valid_from, never updated in place.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CategoryModel(Base):
    """Item category; selects the margin rule."""

    __tablename__ = "categories"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name_en: Mapped[str | None] = mapped_column(Text)
    name_he: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ItemModel(Base):
    """Catalog item. Maintained by catalog tooling, read-only to pricing."""

    __tablename__ = "items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    item_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    english_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    name_he: Mapped[str | None] = mapped_column(Text)
    category_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )

    # Packaging
    qty_per_carton: Mapped[int | None] = mapped_column(Integer, default=1)
    box_cbm: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), default=0)

    # Supplier cost per carton
    supplier_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=0)
    supplier_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Most recent real sale (price floor)
    last_sales_order_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    last_sales_order_currency: Mapped[str | None] = mapped_column(String(3), default="ILS")
    last_sales_order_number: Mapped[str | None] = mapped_column(Text)
    last_sales_order_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    image_url: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("supplier_price IS NULL OR supplier_price >= 0", name="check_supplier_price_non_negative"),
    )


class MarginRuleModel(Base):
    """Versioned margin percentage per category."""

    __tablename__ = "margin_rules"

    # Autoincrement id doubles as insertion order for valid_from ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    margin_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "margin_percentage >= 0 AND margin_percentage <= 100",
            name="check_margin_percentage_range",
        ),
        # As-of lookups: latest active valid_from per category
        Index("idx_margin_rules_lookup", "category_id", "is_active", "valid_from"),
    )


class FreightRateModel(Base):
    """Versioned freight cost per (port, container size)."""

    __tablename__ = "freight_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    port_of_origin: Mapped[str] = mapped_column(Text, nullable=False)
    container_size_cbm: Mapped[int] = mapped_column(Integer, nullable=False)
    freight_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("freight_cost >= 0", name="check_freight_cost_non_negative"),
        CheckConstraint("container_size_cbm > 0", name="check_container_size_positive"),
        Index(
            "idx_freight_rates_lookup",
            "port_of_origin",
            "container_size_cbm",
            "is_active",
            "valid_from",
        ),
    )


class CurrencyRateModel(Base):
    """Daily USD->ILS rate. One row per calendar day."""

    __tablename__ = "currency_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)
    usd_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    margin_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    usd_rate_with_margin: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False, default="bank")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # Upsert target: concurrent first requests of the day converge on one row
        UniqueConstraint("rate_date", name="uq_currency_rates_date"),
        CheckConstraint("usd_rate >= 0", name="check_usd_rate_non_negative"),
        CheckConstraint("margin_percentage >= 0", name="check_rate_margin_non_negative"),
        CheckConstraint("source IN ('bank', 'manual')", name="check_rate_source"),
    )


class SpecialPriceModel(Base):
    """Negotiated final carton price for a customer/item pair."""

    __tablename__ = "special_prices"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    customer_code: Mapped[str] = mapped_column(Text, nullable=False)
    item_code: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("customer_code", "item_code", name="uq_special_price_pair"),
        CheckConstraint("price >= 0", name="check_special_price_non_negative"),
        CheckConstraint("currency IN ('USD', 'ILS')", name="check_special_price_currency"),
    )
