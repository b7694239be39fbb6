"""Shared fixtures: in-memory database with reference data and a BillingContext."""

from collections.abc import Generator
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing.db.models import (
    Account,
    County,
    Currency,
    Invoice,
    InvoiceSeries,
    InvoiceStatus,
    Profile,
    Role,
    User,
)
from billing.db.session import create_db_engine, create_session_factory, init_db
from billing.shared.config import Settings
from billing.shared.context import BillingContext
from billing.shared.profile import SellerProfile
from billing.storage.service import StorageService


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test settings: in-memory SQLite, local document storage."""
    return Settings(
        database_url="sqlite://",
        documents_dir=tmp_path / "storage",
        storage_enabled=False,
        admin_base_url="http://admin.test/admin",
        exchange_rate_base_url="https://rates.test/v6",
        queue_enabled=False,
    )


@pytest.fixture
def engine(settings: Settings) -> Generator[Engine, None, None]:
    engine = create_db_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def data(session: Session) -> SimpleNamespace:
    """Reference rows plus one USD invoice: 100 x 2 and 50 x 1, no tax."""
    usd = Currency(
        name="US Dollar", abbr="USD", symbol="$", precision=2,
        decimal_mark=".", thousands_separator=",", symbol_first=True, subunit_name="cents",
    )
    eur = Currency(
        name="Euro", abbr="EUR", symbol="€", precision=2,
        decimal_mark=",", thousands_separator=".", symbol_first=False, subunit_name="cents",
    )
    jpy = Currency(
        name="Japanese Yen", abbr="JPY", symbol="¥", precision=0,
        decimal_mark=".", thousands_separator=",", symbol_first=True, subunit_name="sen",
    )
    profile = Profile(id=1, name="Acme Ltd", phone="+254700000000", email="billing@acme.test",
                      exchange_rate_api="test-key")
    disabled = Account(bank_name="Old Bank", number="000", bic_swift_code="OLDBKE", enabled=False)
    account = Account(bank_name="Equity Bank", number="0123456789", bic_swift_code="EQBLKENA",
                      enabled=True)
    admin_role = Role(name=Role.ADMIN)
    admins = [
        User(name=f"Admin {i}", email=f"admin{i}@acme.test", roles=[admin_role])
        for i in range(1, 4)
    ]
    customer = User(name="Jane Customer", email="jane@customer.test", phone="+254711111111")

    invoice = Invoice(
        serial="INV-00042",
        serial_number=42,
        series=InvoiceSeries.INV,
        status=InvoiceStatus.PENDING,
        items=[
            {"description": "Consulting", "unit_price": "100", "quantity": "2"},
            {"description": "Support", "unit_price": "50", "quantity": "1"},
        ],
        subtotal=Decimal("250.00"),
        taxes=Decimal("0"),
        total=Decimal("250.00"),
        notes="Thank you for your business",
        currency=usd,
        user=customer,
    )

    session.add_all([usd, eur, jpy, profile, disabled, account, customer, invoice, *admins])
    session.commit()

    return SimpleNamespace(
        usd=usd, eur=eur, jpy=jpy, profile=profile, account=account, disabled_account=disabled,
        admins=admins, customer=customer, invoice=invoice,
    )


@pytest.fixture
def counties(session: Session) -> list[County]:
    """Ten counties, two of them missing their code."""
    rows = [County(county=f"County {i}", county_code=f"{i:03d}") for i in range(1, 9)]
    rows.append(County(county="No Code", county_code=None))
    rows.append(County(county="Blank Code", county_code="  "))
    session.add_all(rows)
    session.commit()
    return rows


@pytest.fixture
def seller_profile() -> SellerProfile:
    return SellerProfile(
        name="Acme Ltd",
        phone="+254700000000",
        email="billing@acme.test",
        exchange_rate_api_key="test-key",
    )


@pytest.fixture
def context(
    settings: Settings,
    engine: Engine,
    session_factory: sessionmaker[Session],
    seller_profile: SellerProfile,
) -> BillingContext:
    """BillingContext whose HTTP client is a mock."""
    return BillingContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        profile=seller_profile,
        storage=StorageService(settings),
        http_client=MagicMock(),
    )
