"""Seller profile resolved once at startup and injected into services."""

import logging

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from billing.db.models import Profile
from billing.shared.errors import ConfigurationMissingError

logger = logging.getLogger(__name__)


class SellerProfile(BaseModel):
    """Seller identity printed on invoices.

    Attributes:
        name: Seller display name
        phone: Seller phone number
        email: Seller email address
        logo_path: Filesystem path of the seller logo, if any
        exchange_rate_api_key: Key for the exchange-rate provider
    """

    model_config = ConfigDict(frozen=True)

    name: str
    phone: str | None = None
    email: str | None = None
    logo_path: str | None = None
    exchange_rate_api_key: str | None = None


def load_seller_profile(session: Session, profile_id: int) -> SellerProfile:
    """Read the seller profile row.

    Args:
        session: Open database session
        profile_id: Primary key of the profile row (``Settings.profile_id``)

    Returns:
        Immutable SellerProfile snapshot

    Raises:
        ConfigurationMissingError: If the profile row does not exist
    """
    profile = session.get(Profile, profile_id)
    if profile is None:
        raise ConfigurationMissingError(
            "seller profile", detail=f"No profile row with id {profile_id}"
        )

    logger.info(f"Loaded seller profile {profile_id}: {profile.name}")
    return SellerProfile(
        name=profile.name,
        phone=profile.phone,
        email=profile.email,
        logo_path=profile.logo_path,
        exchange_rate_api_key=profile.exchange_rate_api,
    )
