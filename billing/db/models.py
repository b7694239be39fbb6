"""SQLAlchemy models for the billing module.

Invoices keep their line items as an embedded JSON list and their monetary
fields as exact decimals. Invoices and counties are soft-deleted through a
``deleted_at`` marker so they stay queryable and restorable.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from decimal import ROUND_UP, Decimal
from typing import Any

from pydantic import ValidationError
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Select,
    String,
    Table,
    Text,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship

from billing.db.types import LineItem, MoneyType
from billing.shared.errors import InvoiceItemsMalformedError


def utcnow() -> datetime:
    return datetime.now(UTC)


def minor_unit(precision: int) -> Decimal:
    """Smallest amount representable with ``precision`` decimals (0.01 for 2)."""
    return Decimal(1).scaleb(-precision)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class SoftDeleteMixin:
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        if self.deleted_at is None:
            self.deleted_at = utcnow()

    def restore(self) -> None:
        self.deleted_at = None


def active(stmt: Select[Any], model: type[SoftDeleteMixin]) -> Select[Any]:
    """Exclude soft-deleted rows from a select."""
    return stmt.where(model.deleted_at.is_(None))


class InvoiceStatus(enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceSeries(enum.Enum):
    INV = "inv"
    PRO = "pro"
    CRN = "crn"


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    ADMIN = "admin"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[str | None] = mapped_column(String(32))

    roles: Mapped[list[Role]] = relationship(secondary=user_roles, lazy="selectin")

    def has_role(self, name: str) -> bool:
        return any(role.name == name for role in self.roles)


def users_with_role(session: Session, name: str) -> list[User]:
    """All users holding the named role, ordered by id."""
    stmt = select(User).join(User.roles).where(Role.name == name).order_by(User.id)
    return list(session.scalars(stmt).unique())


class Currency(Base, TimestampMixin):
    """Monetary unit and its display rules. Reference data."""

    __tablename__ = "currencies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    abbr: Mapped[str] = mapped_column(String(3), unique=True)
    symbol: Mapped[str] = mapped_column(String(8))
    precision: Mapped[int] = mapped_column(Integer, default=2)
    decimal_mark: Mapped[str] = mapped_column(String(1), default=".")
    thousands_separator: Mapped[str] = mapped_column(String(1), default=",")
    symbol_first: Mapped[bool] = mapped_column(Boolean, default=True)
    subunit_name: Mapped[str] = mapped_column(String(32), default="cents")


class Account(Base, TimestampMixin):
    """Seller bank account printed on invoices."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bank_name: Mapped[str | None] = mapped_column(String(255))
    number: Mapped[str | None] = mapped_column(String(64))
    bic_swift_code: Mapped[str | None] = mapped_column(String(16))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)


class Profile(Base, TimestampMixin):
    """Seller identity. One row, read once at startup via ``load_seller_profile``."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(String(255))
    logo_path: Mapped[str | None] = mapped_column(String(512))
    exchange_rate_api: Mapped[str | None] = mapped_column(String(128))


class Invoice(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    serial: Mapped[str] = mapped_column(String(64), unique=True)
    serial_number: Mapped[int] = mapped_column(Integer)
    series: Mapped[InvoiceSeries] = mapped_column(Enum(InvoiceSeries), default=InvoiceSeries.INV)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), default=InvoiceStatus.PENDING
    )
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"))
    taxes: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text)

    currency_id: Mapped[int] = mapped_column(ForeignKey("currencies.id"))
    account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))

    currency: Mapped[Currency] = relationship()
    account: Mapped[Account | None] = relationship()
    user: Mapped[User] = relationship()

    @property
    def line_items(self) -> list[LineItem]:
        """Typed view of the stored items.

        Raises:
            InvoiceItemsMalformedError: If a stored item cannot be parsed
        """
        try:
            return [LineItem.model_validate(item) for item in self.items or []]
        except ValidationError as e:
            raise InvoiceItemsMalformedError(self.serial, str(e)) from e

    def replace_items(self, items: list[LineItem]) -> None:
        self.items = [item.model_dump(mode="json") for item in items]

    def tax_amount(self, subtotal: Decimal | None = None, precision: int | None = None) -> Decimal:
        """Tax on ``subtotal`` (defaults to the stored one), rounded up to the minor unit."""
        base = self.subtotal if subtotal is None else subtotal
        if precision is None:
            precision = self.currency.precision
        tax = base * Decimal(self.taxes or 0) / Decimal(100)
        return tax.quantize(minor_unit(precision), rounding=ROUND_UP)

    def recalculate(self) -> None:
        """Derive subtotal from the line items and total from subtotal plus tax."""
        precision = self.currency.precision
        subtotal = sum((item.line_total for item in self.line_items), Decimal("0"))
        self.subtotal = subtotal.quantize(minor_unit(precision), rounding=ROUND_UP)
        self.total = self.subtotal + self.tax_amount(self.subtotal, precision)


class County(Base, TimestampMixin, SoftDeleteMixin):
    """Reference dataset exported from the admin panel."""

    __tablename__ = "counties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    county: Mapped[str | None] = mapped_column(String(128))
    county_code: Mapped[str | None] = mapped_column(String(16))


class Notification(Base):
    """Per-user database notification."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    body: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16), default="info")
    actions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship()

    def mark_as_read(self) -> None:
        if self.read_at is None:
            self.read_at = utcnow()


class Export(Base, TimestampMixin):
    """Record of one export run."""

    __tablename__ = "exports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exporter: Mapped[str] = mapped_column(String(128))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    file_name: Mapped[str | None] = mapped_column(String(255))
    file_disk: Mapped[str | None] = mapped_column(String(32))
    total_rows: Mapped[int] = mapped_column(Integer, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, default=0)
    successful_rows: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    user: Mapped[User] = relationship()

    @property
    def failed_rows_count(self) -> int:
        return self.total_rows - self.successful_rows
