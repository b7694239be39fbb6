"""Column types and embedded structures shared by the ORM models."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import String
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator


class MoneyType(TypeDecorator[Decimal]):
    """Stores monetary amounts as exact decimal strings.

    SQLite has no native decimal type, so amounts are written as text and read
    back as ``Decimal`` to avoid float drift.
    """

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return str(Decimal(str(value)))

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class LineItem(BaseModel):
    """Line item embedded in an invoice's ``items`` JSON column.

    Not independently addressable; lives and dies with its invoice. Discount
    and credit lines carry a negative unit price.
    """

    description: str = Field(..., description="What was sold")
    unit_price: Decimal = Field(..., description="Price per unit in the invoice currency")
    quantity: Decimal = Field(default=Decimal("1"), description="Units sold")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_unit_price(self, unit_price: Decimal) -> "LineItem":
        """Copy of this item with only the unit price replaced."""
        return self.model_copy(update={"unit_price": unit_price})
