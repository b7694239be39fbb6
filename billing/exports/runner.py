"""Runs an exporter: writes the CSV, stores it and notifies the requesting user."""

import csv
import io
import logging

from sqlalchemy.orm import Session

from billing.api import metrics
from billing.db.models import Export, User, utcnow
from billing.exports.base import Exporter, RowValidationError
from billing.notifications.service import (
    NotificationAction,
    NotificationMessage,
    NotificationService,
)
from billing.shared.errors import DocumentStorageError
from billing.storage.service import StorageService

logger = logging.getLogger(__name__)

EXPORT_FOLDER = "exports"


class ExportRunner:
    """Executes exporters within the caller's session."""

    def __init__(self, session: Session, storage: StorageService) -> None:
        self.session = session
        self.storage = storage
        self.notifications = NotificationService(session)

    def run(self, exporter: type[Exporter], user: User) -> Export:
        """Export every record of ``exporter.model`` to CSV.

        Rows failing validation are skipped and counted as failed.

        Args:
            exporter: Exporter class to run
            user: User who requested the export and receives the summary

        Returns:
            Completed Export record

        Raises:
            DocumentStorageError: If the CSV could not be stored
        """
        export = Export(
            exporter=exporter.__name__,
            user=user,
            total_rows=0,
            processed_rows=0,
            successful_rows=0,
        )
        self.session.add(export)
        self.session.flush()

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([column.header for column in exporter.get_columns()])

        for record in exporter.records(self.session):
            export.total_rows += 1
            export.processed_rows += 1
            try:
                row = exporter.to_row(record)
            except RowValidationError as e:
                logger.warning(f"Export {export.id}: skipping row: {e}")
                continue
            writer.writerow(row)
            export.successful_rows += 1

        file_name = f"{export.id}-{exporter.slug}.csv"
        object_name = f"{EXPORT_FOLDER}/{file_name}"
        stored = self.storage.save(
            buffer.getvalue().encode("utf-8"), object_name, content_type="text/csv"
        )
        if not stored.success:
            raise DocumentStorageError(object_name, stored.error or "unknown storage error")

        export.file_name = file_name
        export.file_disk = "local" if stored.is_local else "s3"
        export.completed_at = utcnow()

        metrics.export_rows_total.labels(exporter=exporter.slug, status="success").inc(
            export.successful_rows
        )
        metrics.export_rows_total.labels(exporter=exporter.slug, status="failed").inc(
            export.failed_rows_count
        )

        actions = []
        if not stored.is_local:
            link = self.storage.get_presigned_url(object_name)
            if link.success:
                actions.append(NotificationAction(name="download", url=link.url, mark_as_read=True))

        self.notifications.send_to_database(
            user,
            NotificationMessage(
                title="Export completed",
                body=exporter.get_completed_notification_body(export),
                icon="heroicon-o-arrow-down-tray",
                status="success",
                actions=actions,
            ),
        )
        self.session.flush()

        logger.info(
            f"Export {export.id} ({exporter.__name__}) finished: "
            f"{export.successful_rows}/{export.total_rows} rows"
        )
        return export
