"""Invoice document builder.

Assembles buyer, seller and line items from an invoice, renders the PDF,
stores it as ``invoices/{serial}.pdf`` and notifies every administrator with
a link to the invoice.
"""

import logging
import time

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.api import metrics
from billing.db.models import Account, Invoice, Role
from billing.documents.renderer import PdfInvoiceRenderer
from billing.documents.schema import Buyer, CurrencyFormat, DocumentItem, InvoiceDocument, Party
from billing.notifications.service import (
    NotificationAction,
    NotificationMessage,
    NotificationService,
)
from billing.shared.config import Settings
from billing.shared.errors import DocumentStorageError
from billing.shared.profile import SellerProfile
from billing.storage.service import StorageService

logger = logging.getLogger(__name__)

INVOICE_FOLDER = "invoices"


class SavedDocument(BaseModel):
    """Outcome of a successful PDF build.

    Attributes:
        invoice_id: Invoice the document belongs to
        object_name: Storage object name
        path: Full storage path
        size: PDF size in bytes
        notified_user_ids: Administrators who received a notification
    """

    invoice_id: int
    object_name: str
    path: str | None
    size: int
    notified_user_ids: list[int]


def invoice_url(settings: Settings, invoice_id: int) -> str:
    """Admin panel URL of the invoice view page."""
    base = settings.admin_base_url.rstrip("/")
    return f"{base}/customer-relations/invoices/{invoice_id}"


class InvoiceDocumentBuilder:
    """Builds, stores and announces invoice PDFs."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        profile: SellerProfile,
        renderer: PdfInvoiceRenderer,
        storage: StorageService,
    ) -> None:
        """Initialize builder.

        Args:
            session: Database session owning the invoice
            settings: Application settings
            profile: Seller profile resolved at startup
            renderer: PDF renderer
            storage: Document storage
        """
        self.session = session
        self.settings = settings
        self.profile = profile
        self.renderer = renderer
        self.storage = storage
        self.notifications = NotificationService(session)

    def bank_account(self, invoice: Invoice) -> Account | None:
        """Invoice's own account, else the first enabled one."""
        if invoice.account is not None:
            return invoice.account
        stmt = select(Account).where(Account.enabled.is_(True)).order_by(Account.id).limit(1)
        return self.session.scalars(stmt).first()

    def build(self, invoice: Invoice) -> InvoiceDocument:
        """Describe ``invoice`` for the renderer.

        Totals are the invoice's stored subtotal and total, so the PDF always
        agrees with the invoice row even after a currency conversion.
        """
        user = invoice.user
        buyer = Buyer(
            name=user.name,
            custom_fields={"email": user.email, "phone": user.phone},
        )

        bank = self.bank_account(invoice)
        seller = Party(
            name=self.profile.name,
            phone=self.profile.phone,
            email=self.profile.email,
            custom_fields={
                "SWIFT": bank.bic_swift_code if bank else None,
                "Bank": bank.bank_name if bank else None,
                "Bank A/c No.": bank.number if bank else None,
            },
        )

        items = [
            DocumentItem(
                title=item.description,
                price_per_unit=item.unit_price,
                quantity=item.quantity,
                sub_total_price=item.unit_price * item.quantity,
            )
            for item in invoice.line_items
        ]

        currency = invoice.currency
        return InvoiceDocument(
            template=self.settings.invoice_template,
            filename=invoice.serial,
            status=invoice.status.name,
            series=invoice.series.name,
            sequence=invoice.serial_number,
            delimiter="-",
            seller=seller,
            buyer=buyer,
            items=items,
            tax_rate=invoice.taxes,
            subtotal=invoice.subtotal,
            total=invoice.total,
            currency=CurrencyFormat(
                code=currency.abbr,
                symbol=currency.symbol,
                decimals=currency.precision,
                decimal_point=currency.decimal_mark,
                thousands_separator=currency.thousands_separator,
                format=CurrencyFormat.pattern(currency.symbol, currency.symbol_first),
                fraction=currency.subunit_name,
            ),
            logo=self.profile.logo_path or "",
            notes=invoice.notes,
        )

    def save_pdf(self, invoice: Invoice) -> SavedDocument:
        """Render and store the invoice PDF, then notify administrators.

        Args:
            invoice: Invoice with user and currency loaded

        Returns:
            SavedDocument describing the stored artifact

        Raises:
            RenderingFailedError: If the PDF could not be rendered
            DocumentStorageError: If the PDF could not be stored
        """
        document = self.build(invoice)

        start = time.time()
        try:
            pdf = self.renderer.render(document)
        except Exception:
            metrics.documents_rendered_total.labels(status="failed").inc()
            raise
        metrics.document_render_duration_seconds.observe(time.time() - start)

        object_name = f"{INVOICE_FOLDER}/{invoice.serial}.pdf"
        stored = self.storage.save(pdf, object_name, content_type="application/pdf")
        if not stored.success:
            metrics.documents_rendered_total.labels(status="failed").inc()
            raise DocumentStorageError(object_name, stored.error or "unknown storage error")
        metrics.documents_rendered_total.labels(status="success").inc()
        logger.info(f"Saved invoice {invoice.serial} to {stored.path}")

        message = NotificationMessage(
            title="Invoice mailed",
            body=f"Invoice mailed to {invoice.user.name}",
            icon="heroicon-o-bolt",
            status="warning",
            actions=[
                NotificationAction(
                    name="view",
                    url=invoice_url(self.settings, invoice.id),
                    color="success",
                    mark_as_read=True,
                )
            ],
        )
        sent = self.notifications.send_to_role(Role.ADMIN, message)

        return SavedDocument(
            invoice_id=invoice.id,
            object_name=object_name,
            path=stored.path,
            size=len(pdf),
            notified_user_ids=[notification.user_id for notification in sent],
        )
