"""Billing operations run as single units of work.

Each function opens its own ``session_scope``: all writes of an operation are
committed together, and any error rolls every one of them back. The API and
the background worker both call these.
"""

import logging
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.currency.converter import InvoiceCurrencyConverter
from billing.db.models import Invoice, User, active
from billing.db.session import session_scope
from billing.db.types import LineItem
from billing.documents.builder import InvoiceDocumentBuilder, SavedDocument
from billing.exports.counties import CountyExporter
from billing.exports.runner import ExportRunner
from billing.shared.context import BillingContext
from billing.shared.errors import InvoiceNotFoundError, UserNotFoundError

logger = logging.getLogger(__name__)


class InvoiceView(BaseModel):
    """Read-only snapshot of an invoice."""

    id: int
    serial: str
    status: str
    series: str
    currency: str
    items: list[LineItem]
    subtotal: Decimal
    tax_rate: Decimal
    total: Decimal
    notes: str | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceView":
        return cls(
            id=invoice.id,
            serial=invoice.serial,
            status=invoice.status.name,
            series=invoice.series.name,
            currency=invoice.currency.abbr,
            items=invoice.line_items,
            subtotal=invoice.subtotal,
            tax_rate=invoice.taxes,
            total=invoice.total,
            notes=invoice.notes,
            deleted_at=invoice.deleted_at,
        )


class ExportView(BaseModel):
    """Summary of a finished export."""

    id: int
    file_name: str | None
    total_rows: int
    successful_rows: int
    failed_rows: int
    message: str


def get_invoice(session: Session, invoice_id: int, with_trashed: bool = False) -> Invoice:
    """Load an invoice by id.

    Raises:
        InvoiceNotFoundError: If missing, or soft-deleted and ``with_trashed`` is False
    """
    invoice = session.get(Invoice, invoice_id)
    if invoice is None or (invoice.is_trashed and not with_trashed):
        raise InvoiceNotFoundError(invoice_id)
    return invoice


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def describe_invoice(ctx: BillingContext, invoice_id: int, with_trashed: bool = False) -> InvoiceView:
    with session_scope(ctx.session_factory) as session:
        return InvoiceView.from_invoice(get_invoice(session, invoice_id, with_trashed))


def save_invoice_pdf(ctx: BillingContext, invoice_id: int) -> SavedDocument:
    """Render, store and announce the PDF of an invoice."""
    with session_scope(ctx.session_factory) as session:
        invoice = get_invoice(session, invoice_id)
        builder = InvoiceDocumentBuilder(
            session=session,
            settings=ctx.settings,
            profile=ctx.profile,
            renderer=ctx.renderer,
            storage=ctx.storage,  # type: ignore[arg-type]
        )
        return builder.save_pdf(invoice)


def convert_invoice_currency(ctx: BillingContext, invoice_id: int, currency_id: int) -> InvoiceView:
    """Convert an invoice into another currency and persist it atomically."""
    with session_scope(ctx.session_factory) as session:
        invoice = get_invoice(session, invoice_id)
        converter = InvoiceCurrencyConverter(session, ctx.rate_client())
        converter.convert_currency(invoice, currency_id)
        return InvoiceView.from_invoice(invoice)


def soft_delete_invoice(ctx: BillingContext, invoice_id: int) -> InvoiceView:
    with session_scope(ctx.session_factory) as session:
        invoice = get_invoice(session, invoice_id)
        invoice.soft_delete()
        logger.info(f"Soft-deleted invoice {invoice.serial}")
        return InvoiceView.from_invoice(invoice)


def restore_invoice(ctx: BillingContext, invoice_id: int) -> InvoiceView:
    with session_scope(ctx.session_factory) as session:
        invoice = get_invoice(session, invoice_id, with_trashed=True)
        invoice.restore()
        logger.info(f"Restored invoice {invoice.serial}")
        return InvoiceView.from_invoice(invoice)


def list_invoices(ctx: BillingContext, with_trashed: bool = False) -> list[InvoiceView]:
    with session_scope(ctx.session_factory) as session:
        stmt = select(Invoice).order_by(Invoice.id)
        if not with_trashed:
            stmt = active(stmt, Invoice)
        return [InvoiceView.from_invoice(invoice) for invoice in session.scalars(stmt)]


def export_counties(ctx: BillingContext, user_id: int) -> ExportView:
    """Export the county reference dataset for ``user_id``."""
    with session_scope(ctx.session_factory) as session:
        user = get_user(session, user_id)
        runner = ExportRunner(session, ctx.storage)  # type: ignore[arg-type]
        export = runner.run(CountyExporter, user)
        return ExportView(
            id=export.id,
            file_name=export.file_name,
            total_rows=export.total_rows,
            successful_rows=export.successful_rows,
            failed_rows=export.failed_rows_count,
            message=CountyExporter.get_completed_notification_body(export),
        )
