"""PDF rendering of invoice documents using PyMuPDF.

Templates turn an InvoiceDocument into HTML; PyMuPDF's Story API lays the HTML
out on A4 pages and writes the PDF.

Based on PyMuPDF Story documentation:
https://pymupdf.readthedocs.io/en/latest/story-class.html
"""

import html
import io
import logging
from collections.abc import Callable
from pathlib import Path

import fitz

from billing.documents.schema import InvoiceDocument
from billing.shared.errors import RenderingFailedError

logger = logging.getLogger(__name__)

PAGE_MARGIN = 36  # points

INVOICE_CSS = """
* { font-family: sans-serif; font-size: 10pt; }
h1 { font-size: 18pt; }
table { width: 100%; border-collapse: collapse; }
th { text-align: left; border-bottom: 1px solid #333; }
td.amount, th.amount { text-align: right; }
.muted { color: #666; }
"""


def _text(value: object) -> str:
    return html.escape("" if value is None else str(value))


def _party_html(title: str, name: str, phone: str | None, email: str | None,
                custom_fields: dict[str, str | None]) -> str:
    lines = [f"<p><b>{_text(title)}</b></p>", f"<p>{_text(name)}</p>"]
    if phone:
        lines.append(f"<p>Phone: {_text(phone)}</p>")
    if email:
        lines.append(f"<p>Email: {_text(email)}</p>")
    for label, value in custom_fields.items():
        lines.append(f"<p>{_text(label)}: {_text(value)}</p>")
    return "".join(lines)


def render_invoice_html(document: InvoiceDocument) -> str:
    """Default invoice template."""
    money = document.currency.format_money
    rows = "".join(
        "<tr>"
        f"<td>{_text(item.title)}</td>"
        f"<td class='amount'>{_text(money(item.price_per_unit))}</td>"
        f"<td class='amount'>{_text(item.quantity.normalize())}</td>"
        f"<td class='amount'>{_text(money(item.sub_total_price))}</td>"
        "</tr>"
        for item in document.items
    )
    logo = f"<img src='{_text(Path(document.logo).name)}' height='60'/>" if document.logo else ""
    seller = document.seller
    buyer = document.buyer
    notes = f"<p class='muted'>Notes: {_text(document.notes)}</p>" if document.notes else ""

    return (
        f"{logo}"
        f"<h1>{_text(document.name)}</h1>"
        f"<p>Serial: <b>{_text(document.serial_number)}</b></p>"
        f"<p>Status: {_text(document.status)}</p>"
        f"<p>Date: {_text(document.issued_on.isoformat())}</p>"
        + _party_html("Seller", seller.name, seller.phone, seller.email, seller.custom_fields)
        + _party_html("Buyer", buyer.name, buyer.phone, buyer.email, buyer.custom_fields)
        + "<table><tr><th>Description</th><th class='amount'>Price</th>"
        "<th class='amount'>Qty</th><th class='amount'>Sub total</th></tr>"
        f"{rows}</table>"
        f"<p>Taxable amount: {_text(money(document.total_amount_without_taxes))}</p>"
        f"<p>Tax ({_text(document.tax_rate.normalize())}%): "
        f"{_text(money(document.total_taxes))}</p>"
        f"<p><b>Total amount: {_text(money(document.total_amount))}</b></p>"
        f"<p class='muted'>Amount due: "
        f"{_text(document.currency.whole_and_fraction(document.total_amount))}</p>"
        f"{notes}"
    )


TemplateFn = Callable[[InvoiceDocument], str]


class PdfInvoiceRenderer:
    """Renders InvoiceDocuments to PDF bytes.

    Templates are registered by name; ``invoice`` is available by default.
    """

    def __init__(self) -> None:
        self._templates: dict[str, TemplateFn] = {"invoice": render_invoice_html}

    def register_template(self, name: str, template: TemplateFn) -> None:
        self._templates[name] = template
        logger.info(f"Registered document template: {name}")

    def render(self, document: InvoiceDocument) -> bytes:
        """Render ``document`` with its template.

        Args:
            document: Invoice document to render

        Returns:
            PDF file content

        Raises:
            RenderingFailedError: If the template is unknown or PyMuPDF fails
        """
        template = self._templates.get(document.template)
        if template is None:
            available = ", ".join(self._templates)
            raise RenderingFailedError(
                document.filename,
                f"Unknown template '{document.template}'. Available templates: {available}",
            )

        archive = None
        if document.logo:
            if Path(document.logo).exists():
                archive = fitz.Archive(str(Path(document.logo).parent))
            else:
                logger.warning(f"Logo {document.logo} not found, rendering without it")
                document = document.model_copy(update={"logo": ""})

        try:
            body = template(document)
            return self._write_pdf(body, archive)
        except RenderingFailedError:
            raise
        except Exception as e:
            logger.error(f"Rendering {document.filename} failed: {e}")
            raise RenderingFailedError(document.filename, str(e)) from e

    @staticmethod
    def _write_pdf(body: str, archive: "fitz.Archive | None") -> bytes:
        buffer = io.BytesIO()
        story = fitz.Story(html=body, user_css=INVOICE_CSS, archive=archive)
        writer = fitz.DocumentWriter(buffer)
        mediabox = fitz.paper_rect("a4")
        where = mediabox + (PAGE_MARGIN, PAGE_MARGIN, -PAGE_MARGIN, -PAGE_MARGIN)

        more = True
        while more:
            device = writer.begin_page(mediabox)
            more, _ = story.place(where)
            story.draw(device)
            writer.end_page()
        writer.close()
        return buffer.getvalue()
