"""Unit tests for billing operations as units of work."""

from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing import operations
from billing.db.models import County, Export, Invoice, Notification, Profile
from billing.db.session import create_db_engine, init_db
from billing.shared.config import Settings
from billing.shared.context import BillingContext, create_context
from billing.shared.errors import (
    ConfigurationMissingError,
    DocumentStorageError,
    InvoiceItemsMalformedError,
    InvoiceNotFoundError,
    RateDataMalformedError,
)
from billing.storage.service import StorageResult


def count(session_factory: sessionmaker[Session], model: type) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model)) or 0


def reload(session_factory: sessionmaker[Session], invoice_id: int) -> Invoice:
    with session_factory() as session:
        invoice = session.get(Invoice, invoice_id)
        assert invoice is not None
        session.expunge(invoice)
        return invoice


class TestInvoiceOperations:
    """Test invoice lookups, soft delete and conversion."""

    def test_describe_invoice(self, context: BillingContext, data: SimpleNamespace) -> None:
        view = operations.describe_invoice(context, data.invoice.id)

        assert view.serial == "INV-00042"
        assert view.status == "PENDING"
        assert view.series == "INV"
        assert [item.description for item in view.items] == ["Consulting", "Support"]

    def test_describe_invoice_with_discount_line(
        self, context: BillingContext, session: Session, data: SimpleNamespace
    ) -> None:
        data.invoice.items = [
            {"description": "Consulting", "unit_price": "100", "quantity": "2"},
            {"description": "Discount", "unit_price": "-20", "quantity": "1"},
        ]
        data.invoice.recalculate()
        session.commit()

        view = operations.describe_invoice(context, data.invoice.id)

        assert [item.unit_price for item in view.items] == [Decimal("100"), Decimal("-20")]
        assert view.total == Decimal("180.00")
        assert operations.save_invoice_pdf(context, data.invoice.id).size > 0

    def test_unreadable_items_are_reported(
        self, context: BillingContext, session: Session, data: SimpleNamespace
    ) -> None:
        data.invoice.items = [{"unit_price": "100"}]
        session.commit()

        with pytest.raises(InvoiceItemsMalformedError):
            operations.describe_invoice(context, data.invoice.id)

    def test_trashed_invoice_hidden_until_restored(
        self, context: BillingContext, data: SimpleNamespace
    ) -> None:
        operations.soft_delete_invoice(context, data.invoice.id)

        with pytest.raises(InvoiceNotFoundError):
            operations.describe_invoice(context, data.invoice.id)
        assert operations.list_invoices(context) == []
        assert operations.describe_invoice(context, data.invoice.id, with_trashed=True).deleted_at

        operations.restore_invoice(context, data.invoice.id)

        assert [v.id for v in operations.list_invoices(context)] == [data.invoice.id]

    def test_convert_currency_persists(
        self,
        context: BillingContext,
        session_factory: sessionmaker[Session],
        data: SimpleNamespace,
    ) -> None:
        body = {"result": "success", "conversion_rates": {"EUR": "0.90"}}
        context.http_client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        )

        view = operations.convert_invoice_currency(context, data.invoice.id, data.eur.id)

        assert view.currency == "EUR"
        stored = reload(session_factory, data.invoice.id)
        assert stored.currency_id == data.eur.id
        assert stored.subtotal == Decimal("225.00")
        assert stored.total == Decimal("225.00")
        assert [item["unit_price"] for item in stored.items] == ["90.00", "45.00"]

    def test_malformed_rates_leave_invoice_untouched(
        self,
        context: BillingContext,
        session_factory: sessionmaker[Session],
        data: SimpleNamespace,
    ) -> None:
        body = {"result": "success", "conversion_rates": {"GBP": "0.79"}}
        context.http_client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        )

        with pytest.raises(RateDataMalformedError):
            operations.convert_invoice_currency(context, data.invoice.id, data.eur.id)

        stored = reload(session_factory, data.invoice.id)
        assert stored.currency_id == data.usd.id
        assert stored.subtotal == Decimal("250.00")
        assert [item["unit_price"] for item in stored.items] == ["100", "50"]


class TestAtomicity:
    """A failed operation must not leave partial writes behind."""

    def test_failed_export_rolls_back_export_row(
        self,
        context: BillingContext,
        session_factory: sessionmaker[Session],
        data: SimpleNamespace,
        counties: list[County],
    ) -> None:
        context.storage = MagicMock()
        context.storage.save.return_value = StorageResult(success=False, error="bucket gone")

        with pytest.raises(DocumentStorageError):
            operations.export_counties(context, data.customer.id)

        assert count(session_factory, Export) == 0
        assert count(session_factory, Notification) == 0

    def test_successful_export_commits(
        self,
        context: BillingContext,
        session_factory: sessionmaker[Session],
        data: SimpleNamespace,
        counties: list[County],
    ) -> None:
        view = operations.export_counties(context, data.customer.id)

        assert view.total_rows == 10
        assert count(session_factory, Export) == 1
        assert count(session_factory, Notification) == 1

    def test_save_pdf_commits_notifications(
        self,
        context: BillingContext,
        session_factory: sessionmaker[Session],
        data: SimpleNamespace,
    ) -> None:
        saved = operations.save_invoice_pdf(context, data.invoice.id)

        assert saved.size > 0
        assert count(session_factory, Notification) == 3


class TestCreateContext:
    """Test startup wiring."""

    def test_missing_profile(self, tmp_path: Path) -> None:
        settings = Settings(database_url=f"sqlite:///{tmp_path / 'empty.db'}")

        with pytest.raises(ConfigurationMissingError) as exc_info:
            create_context(settings)

        assert exc_info.value.context == {"missing": "seller profile"}

    def test_profile_resolved_once(self, tmp_path: Path) -> None:
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'billing.db'}",
            documents_dir=tmp_path / "storage",
        )
        seeded = create_engine_with_profile(settings)

        context = create_context(settings)
        try:
            assert context.profile.name == "Seeded Ltd"
            assert context.profile.exchange_rate_api_key == "seeded-key"
            assert context.rate_client()._api_key == "seeded-key"
        finally:
            context.close()
            seeded.dispose()


def create_engine_with_profile(settings: Settings) -> Engine:
    engine = create_db_engine(settings)
    init_db(engine)
    with Session(engine) as session:
        session.add(
            Profile(id=settings.profile_id, name="Seeded Ltd", exchange_rate_api="seeded-key")
        )
        session.commit()
    return engine
