"""Exporter definitions for admin CSV exports.

An exporter names the model it exports, the columns to write and the message
shown to the user once the export has finished.
"""

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.db.models import Base, Export


def pluralize(word: str, count: int) -> str:
    return word if count == 1 else f"{word}s"


def number_format(count: int) -> str:
    return f"{count:,}"


class ExportColumn(BaseModel):
    """A model attribute written as one CSV column."""

    name: str
    label: str | None = None

    @property
    def header(self) -> str:
        return self.label or self.name.replace("_", " ").title()

    def format(self, record: Any) -> str:
        value = getattr(record, self.name)
        if value is None:
            return ""
        if isinstance(value, datetime | date):
            return value.isoformat()
        if isinstance(value, Enum):
            return str(value.name)
        if isinstance(value, Decimal):
            return format(value, "f")
        return str(value)


class RowValidationError(ValueError):
    """A record cannot be exported and is counted as failed."""


class Exporter:
    """Base exporter. Subclasses set ``model`` and ``slug`` and define columns."""

    model: ClassVar[type[Base]]
    slug: ClassVar[str]

    @classmethod
    def get_columns(cls) -> list[ExportColumn]:
        raise NotImplementedError

    @classmethod
    def get_completed_notification_body(cls, export: Export) -> str:
        raise NotImplementedError

    @classmethod
    def records(cls, session: Session) -> Iterable[Any]:
        """Records to export, soft-deleted ones included."""
        return session.scalars(select(cls.model).order_by(cls.model.id))  # type: ignore[attr-defined]

    @classmethod
    def validate(cls, record: Any) -> None:
        """Raise RowValidationError if ``record`` must not be exported."""

    @classmethod
    def to_row(cls, record: Any) -> list[str]:
        cls.validate(record)
        return [column.format(record) for column in cls.get_columns()]
