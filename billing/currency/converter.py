"""Invoice currency conversion.

Rewrites an invoice into another currency using the provider's current rate:
every line item's unit price, the subtotal and the total. All values are
computed before anything is assigned, so a failure leaves the invoice as it
was; the caller's ``session_scope`` commits the assignment as one update.

Conversion is applied to the invoice's current amounts. Converting twice
compounds, and converting X to Y and back with the inverse rate may leave each
amount up to one minor unit higher per hop because both hops round up.
"""

import logging
from decimal import ROUND_UP

from sqlalchemy.orm import Session

from billing.api import metrics
from billing.currency.money import ConfigurableRateProvider, CurrencyConverter, Money
from billing.currency.rates import ExchangeRateClient
from billing.db.models import Currency, Invoice, minor_unit
from billing.shared.errors import CurrencyNotFoundError

logger = logging.getLogger(__name__)


class InvoiceCurrencyConverter:
    """Converts stored invoices between currencies."""

    def __init__(self, session: Session, rate_client: ExchangeRateClient) -> None:
        """Initialize converter.

        Args:
            session: Database session owning the invoice
            rate_client: Exchange-rate provider client
        """
        self.session = session
        self.rate_client = rate_client

    def convert_currency(self, invoice: Invoice, currency_id: int) -> Invoice:
        """Move ``invoice`` into the currency with id ``currency_id``.

        Args:
            invoice: Persistent invoice to convert
            currency_id: Target currency primary key

        Returns:
            The same invoice with currency, items, subtotal and total replaced

        Raises:
            CurrencyNotFoundError: If the target currency does not exist
            RateProviderUnavailableError: If rates could not be fetched
            RateDataMalformedError: If the rate response is unusable
        """
        target = self.session.get(Currency, currency_id)
        if target is None:
            raise CurrencyNotFoundError(currency_id)

        source = invoice.currency
        if target.id == source.id:
            logger.info(f"Invoice {invoice.serial} already in {target.abbr}, nothing to convert")
            return invoice

        factor = self.rate_client.rate(source.abbr, target.abbr)

        provider = ConfigurableRateProvider()
        provider.set_exchange_rate(source.abbr, target.abbr, factor)
        converter = CurrencyConverter(provider)

        quantum = minor_unit(target.precision)
        items = [
            item.with_unit_price((item.unit_price * factor).quantize(quantum, rounding=ROUND_UP))
            for item in invoice.line_items
        ]

        subtotal = converter.convert(
            Money(amount=invoice.subtotal, currency=source.abbr),
            currency=target.abbr,
            precision=target.precision,
            rounding=ROUND_UP,
        ).amount
        total = subtotal + invoice.tax_amount(subtotal, target.precision)

        invoice.currency = target
        invoice.replace_items(items)
        invoice.subtotal = subtotal
        invoice.total = total
        self.session.flush()

        metrics.currency_conversions_total.labels(source=source.abbr, target=target.abbr).inc()
        logger.info(
            f"Converted invoice {invoice.serial} from {source.abbr} to {target.abbr} "
            f"at {factor}: subtotal={subtotal} total={total}"
        )
        return invoice
