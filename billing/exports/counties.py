from typing import Any

from billing.db.models import County, Export
from billing.exports.base import (
    Exporter,
    ExportColumn,
    RowValidationError,
    number_format,
    pluralize,
)


class CountyExporter(Exporter):
    model = County
    slug = "counties"

    @classmethod
    def get_columns(cls) -> list[ExportColumn]:
        return [
            ExportColumn(name="id", label="ID"),
            ExportColumn(name="county"),
            ExportColumn(name="county_code"),
            ExportColumn(name="created_at"),
            ExportColumn(name="updated_at"),
            ExportColumn(name="deleted_at"),
        ]

    @classmethod
    def validate(cls, record: Any) -> None:
        if not (record.county or "").strip():
            raise RowValidationError(f"County {record.id} has no name")
        if not (record.county_code or "").strip():
            raise RowValidationError(f"County {record.id} has no code")

    @classmethod
    def get_completed_notification_body(cls, export: Export) -> str:
        successful = export.successful_rows
        body = (
            f"Your county export has completed and {number_format(successful)} "
            f"{pluralize('row', successful)} exported."
        )

        failed = export.failed_rows_count
        if failed:
            body += f" {number_format(failed)} {pluralize('row', failed)} failed to export."

        return body
