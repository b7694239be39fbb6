"""Seed reference data: currencies, seller profile, bank account, admin user and counties.

Usage:
    python scripts/seed_reference_data.py --admin-email admin@example.com \
        --exchange-rate-key YOUR_KEY

Existing rows (matched by natural key) are left untouched.
"""

import argparse
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.db.models import Account, County, Currency, Profile, Role, User
from billing.db.session import create_db_engine, create_session_factory, init_db, session_scope
from billing.shared.config import get_settings

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

CURRENCIES = [
    {"abbr": "USD", "name": "US Dollar", "symbol": "$", "subunit_name": "cents"},
    {"abbr": "EUR", "name": "Euro", "symbol": "€", "decimal_mark": ",",
     "thousands_separator": ".", "symbol_first": False, "subunit_name": "cents"},
    {"abbr": "GBP", "name": "British Pound", "symbol": "£", "subunit_name": "pence"},
    {"abbr": "KES", "name": "Kenyan Shilling", "symbol": "KSh", "subunit_name": "cents"},
    {"abbr": "JPY", "name": "Japanese Yen", "symbol": "¥", "precision": 0, "subunit_name": "sen"},
]

COUNTIES = [
    ("Mombasa", "001"),
    ("Kwale", "002"),
    ("Kilifi", "003"),
    ("Tana River", "004"),
    ("Lamu", "005"),
    ("Nairobi", "047"),
]


def seed_currencies(session: Session) -> None:
    existing = set(session.scalars(select(Currency.abbr)))
    for row in CURRENCIES:
        if row["abbr"] not in existing:
            session.add(Currency(**row))
            logger.info(f"Added currency {row['abbr']}")


def seed_counties(session: Session) -> None:
    existing = set(session.scalars(select(County.county_code)))
    for name, code in COUNTIES:
        if code not in existing:
            session.add(County(county=name, county_code=code))
    logger.info(f"Counties seeded ({len(COUNTIES)} reference rows)")


def seed_profile(session: Session, profile_id: int, name: str, api_key: str | None) -> None:
    if session.get(Profile, profile_id) is None:
        session.add(Profile(id=profile_id, name=name, exchange_rate_api=api_key))
        logger.info(f"Added seller profile {profile_id}")


def seed_admin(session: Session, email: str) -> None:
    role = session.scalars(select(Role).where(Role.name == Role.ADMIN)).first()
    if role is None:
        role = Role(name=Role.ADMIN)
        session.add(role)

    admin = session.scalars(select(User).where(User.email == email)).first()
    if admin is None:
        session.add(User(name="Administrator", email=email, roles=[role]))
        logger.info(f"Added admin user {email}")


def seed_account(
    session: Session, bank_name: str, number: str | None, swift: str | None
) -> None:
    stmt = select(Account).where(Account.bank_name == bank_name)
    stmt = stmt.where(Account.number.is_(None) if number is None else Account.number == number)
    if session.scalars(stmt).first() is None:
        session.add(Account(bank_name=bank_name, number=number, bic_swift_code=swift, enabled=True))
        logger.info(f"Added bank account {bank_name} {number or ''}".rstrip())


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--admin-email", default="admin@example.com")
    parser.add_argument("--seller-name", default="My Company")
    parser.add_argument("--exchange-rate-key", default=None)
    parser.add_argument("--bank-name", default=None)
    parser.add_argument("--bank-account", default=None)
    parser.add_argument("--swift", default=None)
    args = parser.parse_args()

    settings = get_settings()
    engine = create_db_engine(settings)
    init_db(engine)
    factory = create_session_factory(engine)

    with session_scope(factory) as session:
        seed_currencies(session)
        seed_counties(session)
        seed_profile(session, settings.profile_id, args.seller_name, args.exchange_rate_key)
        seed_admin(session, args.admin_email)
        if args.bank_name:
            seed_account(session, args.bank_name, args.bank_account, args.swift)

    logger.info("Reference data ready")


if __name__ == "__main__":
    main()
