"""Process-wide service wiring.

Built once at startup (API lifespan, worker startup hook, scripts). The seller
profile is read here and injected into every service that needs it.
"""

import logging
from dataclasses import dataclass, field

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing.currency.rates import ExchangeRateClient
from billing.db.session import create_db_engine, create_session_factory, init_db, session_scope
from billing.documents.renderer import PdfInvoiceRenderer
from billing.shared.config import Settings
from billing.shared.profile import SellerProfile, load_seller_profile
from billing.storage.service import StorageService

logger = logging.getLogger(__name__)


@dataclass
class BillingContext:
    """Shared services for billing operations."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    profile: SellerProfile
    renderer: PdfInvoiceRenderer = field(default_factory=PdfInvoiceRenderer)
    storage: StorageService | None = None
    http_client: httpx.Client | None = None

    def __post_init__(self) -> None:
        if self.storage is None:
            self.storage = StorageService(self.settings)
        if self.http_client is None:
            self.http_client = httpx.Client(timeout=self.settings.exchange_rate_timeout)

    def rate_client(self) -> ExchangeRateClient:
        return ExchangeRateClient(
            self.settings,
            api_key=self.profile.exchange_rate_api_key,
            client=self.http_client,
        )

    def close(self) -> None:
        if self.http_client is not None:
            self.http_client.close()
        self.engine.dispose()


def create_context(settings: Settings, create_schema: bool = True) -> BillingContext:
    """Connect to the database and resolve the seller profile.

    Args:
        settings: Application settings
        create_schema: Create missing tables before reading the profile

    Returns:
        Ready BillingContext

    Raises:
        ConfigurationMissingError: If the seller profile row does not exist
    """
    engine = create_db_engine(settings)
    if create_schema:
        init_db(engine)
    factory = create_session_factory(engine)

    with session_scope(factory) as session:
        profile = load_seller_profile(session, settings.profile_id)

    logger.info(f"Billing context ready for {settings.service_name} ({settings.environment})")
    return BillingContext(
        settings=settings,
        engine=engine,
        session_factory=factory,
        profile=profile,
    )
