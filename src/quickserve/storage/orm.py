"""SQLAlchemy ORM models.

Two metadata sets:

- ``Base``: the shared public schema, holding only the tenant registry.
- ``TenantBase``: the per-tenant table set. These tables are declared without
  a schema and land in ``tenant_<slug>`` through ``schema_translate_map`` on
  the tenant's data handle, so one model set serves every tenant.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from quickserve.auth.permissions import Role

STAFF_ROLE_VALUES = tuple(role.value for role in Role)
ORDER_STATUS_VALUES = ("pending", "preparing", "ready", "served", "cancelled")
PAYMENT_STATUS_VALUES = ("unpaid", "paid", "refunded")


class Base(DeclarativeBase):
    """Base class for public-schema models."""


class TenantBase(DeclarativeBase):
    """Base class for models that live inside a tenant schema."""


# ──────────────────────────────────────────────
# Public schema: tenant registry
# ──────────────────────────────────────────────


class Tenant(Base):
    """A restaurant. ``slug`` addresses it in URLs, ``restaurant_code``
    is the human code used for admin re-entry."""

    __tablename__ = "restaurants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    restaurant_code: Mapped[str] = mapped_column(String(16), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(254))
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug='{self.slug}')>"


# ──────────────────────────────────────────────
# Tenant schema: per-restaurant table set
# ──────────────────────────────────────────────


class MenuItem(TenantBase):
    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DiningTable(TenantBase):
    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_number: Mapped[str] = mapped_column(String(50), unique=True)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Order(TenantBase):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_number: Mapped[str | None] = mapped_column(String(50))
    customer_name: Mapped[str | None] = mapped_column(String(100))
    customer_phone: Mapped[str | None] = mapped_column(String(15))
    customer_email: Mapped[str | None] = mapped_column(String(100))
    special_instructions: Mapped[str | None] = mapped_column(String(500))
    items: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    status: Mapped[str] = mapped_column(
        Enum(*ORDER_STATUS_VALUES, name="order_status", native_enum=False),
        default="pending",
    )
    payment_status: Mapped[str] = mapped_column(
        Enum(*PAYMENT_STATUS_VALUES, name="payment_status", native_enum=False),
        default="unpaid",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    ratings: Mapped[list["Rating"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )


class StaffAccount(TenantBase):
    """Staff login for one restaurant. Usernames are unique per tenant schema."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(200))
    username: Mapped[str] = mapped_column(String(100), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(
        Enum(*STAFF_ROLE_VALUES, name="staff_role", native_enum=False)
    )
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<StaffAccount(id={self.id}, username='{self.username}')>"


class Rating(TenantBase):
    __tablename__ = "ratings"
    __table_args__ = (
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_ratings_score_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True
    )
    score: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    order: Mapped["Order | None"] = relationship(back_populates="ratings")
