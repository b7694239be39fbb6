"""Unit tests for invoice document building, formatting and PDF rendering."""

from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.currency.converter import InvoiceCurrencyConverter
from billing.db.models import Notification
from billing.db.types import LineItem
from billing.documents.builder import InvoiceDocumentBuilder, invoice_url
from billing.documents.renderer import PdfInvoiceRenderer, render_invoice_html
from billing.documents.schema import CurrencyFormat, InvoiceDocument
from billing.shared.config import Settings
from billing.shared.errors import DocumentStorageError, RenderingFailedError
from billing.shared.profile import SellerProfile
from billing.storage.service import StorageResult, StorageService


@pytest.fixture
def builder(
    session: Session, settings: Settings, seller_profile: SellerProfile
) -> InvoiceDocumentBuilder:
    return InvoiceDocumentBuilder(
        session=session,
        settings=settings,
        profile=seller_profile,
        renderer=PdfInvoiceRenderer(),
        storage=StorageService(settings),
    )


class TestCurrencyFormat:
    """Test amount formatting with stored currency parameters."""

    def test_symbol_first(self) -> None:
        fmt = CurrencyFormat(code="USD", symbol="$", format=CurrencyFormat.pattern("$", True))
        assert fmt.format_money(Decimal("1234.5")) == "$ 1,234.50"

    def test_symbol_last_with_swapped_separators(self) -> None:
        fmt = CurrencyFormat(
            code="EUR",
            symbol="€",
            decimal_point=",",
            thousands_separator=".",
            format=CurrencyFormat.pattern("€", False),
        )
        assert fmt.format_money(Decimal("1234.5")) == "1.234,50 €"

    def test_zero_decimals(self) -> None:
        fmt = CurrencyFormat(code="JPY", symbol="¥", decimals=0)
        assert fmt.format_money(Decimal("1234567")) == "¥1,234,567"

    def test_code_placeholder(self) -> None:
        fmt = CurrencyFormat(code="KES", symbol="KSh", format="{CODE} {VALUE}")
        assert fmt.format_money(Decimal("10")) == "KES 10.00"

    def test_whole_and_fraction(self) -> None:
        fmt = CurrencyFormat(code="USD", symbol="$", fraction="cents")
        assert fmt.whole_and_fraction(Decimal("225.5")) == "225 USD and 50 cents"

    def test_whole_and_fraction_credit(self) -> None:
        fmt = CurrencyFormat(code="USD", symbol="$", fraction="cents")
        assert fmt.whole_and_fraction(Decimal("-20.05")) == "-20 USD and 5 cents"

    def test_whole_and_fraction_without_subunits(self) -> None:
        fmt = CurrencyFormat(code="JPY", symbol="¥", decimals=0, fraction="sen")
        assert fmt.whole_and_fraction(Decimal("37835")) == "37835 JPY"


class TestBuild:
    """Test InvoiceDocument assembly."""

    def test_buyer_and_seller(self, builder: InvoiceDocumentBuilder, data: SimpleNamespace) -> None:
        document = builder.build(data.invoice)

        assert document.buyer.name == "Jane Customer"
        assert document.buyer.custom_fields == {
            "email": "jane@customer.test",
            "phone": "+254711111111",
        }
        assert document.seller.name == "Acme Ltd"
        assert document.seller.phone == "+254700000000"
        assert document.seller.email == "billing@acme.test"

    def test_falls_back_to_first_enabled_account(
        self, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        document = builder.build(data.invoice)

        assert document.seller.custom_fields == {
            "SWIFT": "EQBLKENA",
            "Bank": "Equity Bank",
            "Bank A/c No.": "0123456789",
        }

    def test_prefers_invoice_account(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        data.invoice.account = data.disabled_account
        session.commit()

        document = builder.build(data.invoice)

        assert document.seller.custom_fields["Bank"] == "Old Bank"

    def test_no_account_leaves_bank_fields_empty(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        data.account.enabled = False
        session.commit()

        document = builder.build(data.invoice)

        assert document.seller.custom_fields == {
            "SWIFT": None,
            "Bank": None,
            "Bank A/c No.": None,
        }

    def test_items_and_serial(self, builder: InvoiceDocumentBuilder, data: SimpleNamespace) -> None:
        document = builder.build(data.invoice)

        assert [item.title for item in document.items] == ["Consulting", "Support"]
        assert [item.sub_total_price for item in document.items] == [
            Decimal("200"),
            Decimal("50"),
        ]
        assert document.serial_number == "INV-00042"
        assert document.filename == "INV-00042"
        assert document.status == "PENDING"
        assert document.total_amount == Decimal("250")

    def test_currency_parameters_passed_through(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        data.invoice.currency = data.eur
        session.commit()

        currency = builder.build(data.invoice).currency

        assert currency.code == "EUR"
        assert currency.symbol == "€"
        assert currency.decimal_point == ","
        assert currency.thousands_separator == "."
        assert currency.format == "{VALUE} €"
        assert currency.fraction == "cents"

    def test_tax_rounded_up(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        data.invoice.taxes = Decimal("16.5")
        data.invoice.recalculate()
        session.commit()

        document = builder.build(data.invoice)

        # 250 * 16.5% = 41.25
        assert document.total_taxes == Decimal("41.25")
        assert document.total_amount == Decimal("291.25")

    def test_totals_match_invoice_after_conversion(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        """Item-level rounding must not leak into the printed totals."""
        invoice = data.invoice
        invoice.replace_items(
            [
                LineItem(description="Odd", unit_price="33.33"),
                LineItem(description="Even", unit_price="33.33"),
            ]
        )
        invoice.recalculate()
        session.commit()
        rates = MagicMock()
        rates.rate.return_value = Decimal("0.7")

        invoice = InvoiceCurrencyConverter(session, rates).convert_currency(invoice, data.eur.id)
        document = builder.build(invoice)

        # items 23.34 + 23.34 = 46.68, converted subtotal 66.66 * 0.7 = 46.662 -> 46.67
        assert sum(item.sub_total_price for item in document.items) == Decimal("46.68")
        assert document.total_amount_without_taxes == invoice.subtotal == Decimal("46.67")
        assert document.total_amount == invoice.total == Decimal("46.67")
        assert document.total_taxes == Decimal("0")
        assert "46,67 €" in render_invoice_html(document)

    def test_item_sum_used_without_stored_totals(
        self, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        document = builder.build(data.invoice).model_copy(
            update={"subtotal": None, "total": None, "tax_rate": Decimal("10")}
        )

        assert document.total_amount_without_taxes == Decimal("250")
        assert document.total_amount == Decimal("275.00")


class TestRenderer:
    """Test HTML templates and PDF output."""

    def test_html_escapes_values(self, builder: InvoiceDocumentBuilder, data: SimpleNamespace) -> None:
        document = builder.build(data.invoice).model_copy(update={"notes": "<b>net 30</b>"})

        body = render_invoice_html(document)

        assert "&lt;b&gt;net 30&lt;/b&gt;" in body
        assert "$ 250.00" in body
        assert "Amount due: 250 USD and 0 cents" in body

    def test_render_pdf(self, builder: InvoiceDocumentBuilder, data: SimpleNamespace) -> None:
        pdf = PdfInvoiceRenderer().render(builder.build(data.invoice))

        assert pdf.startswith(b"%PDF")

    def test_missing_logo_is_skipped(
        self, builder: InvoiceDocumentBuilder, data: SimpleNamespace, tmp_path: Path
    ) -> None:
        document = builder.build(data.invoice).model_copy(
            update={"logo": str(tmp_path / "missing.png")}
        )

        assert PdfInvoiceRenderer().render(document).startswith(b"%PDF")

    def test_unknown_template(self, builder: InvoiceDocumentBuilder, data: SimpleNamespace) -> None:
        document = builder.build(data.invoice).model_copy(update={"template": "receipt"})

        with pytest.raises(RenderingFailedError) as exc_info:
            PdfInvoiceRenderer().render(document)

        assert "receipt" in str(exc_info.value.detail)

    def test_registered_template(self, builder: InvoiceDocumentBuilder, data: SimpleNamespace) -> None:
        renderer = PdfInvoiceRenderer()
        renderer.register_template("receipt", lambda doc: f"<h1>Receipt {doc.serial_number}</h1>")
        document = builder.build(data.invoice).model_copy(update={"template": "receipt"})

        assert renderer.render(document).startswith(b"%PDF")

    def test_template_errors_are_wrapped(
        self, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        def broken(document: InvoiceDocument) -> str:
            raise KeyError("seller")

        renderer = PdfInvoiceRenderer()
        renderer.register_template("broken", broken)
        document = builder.build(data.invoice).model_copy(update={"template": "broken"})

        with pytest.raises(RenderingFailedError):
            renderer.render(document)


class TestSavePdf:
    """Test storing the PDF and notifying administrators."""

    def test_saves_file_and_notifies_admins(
        self,
        session: Session,
        settings: Settings,
        builder: InvoiceDocumentBuilder,
        data: SimpleNamespace,
    ) -> None:
        saved = builder.save_pdf(data.invoice)
        session.commit()

        stored = settings.documents_dir / "invoices" / "INV-00042.pdf"
        assert saved.object_name == "invoices/INV-00042.pdf"
        assert saved.path == str(stored)
        assert stored.read_bytes().startswith(b"%PDF")
        assert saved.size == stored.stat().st_size

        notifications = session.scalars(select(Notification).order_by(Notification.id)).all()
        assert [n.user_id for n in notifications] == [admin.id for admin in data.admins]
        assert saved.notified_user_ids == [admin.id for admin in data.admins]

        url = invoice_url(settings, data.invoice.id)
        assert url == f"http://admin.test/admin/customer-relations/invoices/{data.invoice.id}"
        for notification in notifications:
            assert notification.title == "Invoice mailed"
            assert notification.body == "Invoice mailed to Jane Customer"
            assert notification.icon == "heroicon-o-bolt"
            assert notification.status == "warning"
            assert notification.actions == [
                {
                    "name": "view",
                    "label": "View",
                    "url": url,
                    "color": "success",
                    "mark_as_read": True,
                }
            ]

    def test_storage_failure(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        builder.storage = MagicMock()
        builder.storage.save.return_value = StorageResult(success=False, error="disk full")

        with pytest.raises(DocumentStorageError) as exc_info:
            builder.save_pdf(data.invoice)

        assert exc_info.value.detail == "disk full"
        assert session.scalars(select(Notification)).all() == []

    def test_rendering_failure_sends_nothing(
        self, session: Session, builder: InvoiceDocumentBuilder, data: SimpleNamespace
    ) -> None:
        builder.settings = builder.settings.model_copy(update={"invoice_template": "missing"})

        with pytest.raises(RenderingFailedError):
            builder.save_pdf(data.invoice)

        assert session.scalars(select(Notification)).all() == []
