"""Money values and rate-table based currency conversion.

Amounts are ``Decimal`` and conversion rounds with ``ROUND_UP``: any fractional
remainder beyond the target currency's minor unit moves to the next minor unit
away from zero. Positive amounts grow; discount lines grow in magnitude.
"""

from decimal import ROUND_UP, Decimal

from pydantic import BaseModel, ConfigDict

from billing.shared.errors import CurrencyNotFoundError


def to_decimal(value: object) -> Decimal:
    """Convert an int, float, str or Decimal to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class Money(BaseModel):
    """An amount in a given currency."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str

    def rounded(self, precision: int, rounding: str = ROUND_UP) -> "Money":
        quantum = Decimal(1).scaleb(-precision)
        return Money(amount=self.amount.quantize(quantum, rounding=rounding), currency=self.currency)


class ConfigurableRateProvider:
    """Rate table filled explicitly, one pair at a time."""

    def __init__(self) -> None:
        self._rates: dict[tuple[str, str], Decimal] = {}

    def set_exchange_rate(self, source: str, target: str, rate: Decimal | float | str) -> None:
        self._rates[(source.upper(), target.upper())] = to_decimal(rate)

    def get_exchange_rate(self, source: str, target: str) -> Decimal:
        source, target = source.upper(), target.upper()
        if source == target:
            return Decimal(1)
        try:
            return self._rates[(source, target)]
        except KeyError:
            raise CurrencyNotFoundError(f"{source}/{target}") from None


class CurrencyConverter:
    """Converts Money using the rates of a provider."""

    def __init__(self, provider: ConfigurableRateProvider) -> None:
        self.provider = provider

    def convert(
        self,
        money: Money,
        currency: str,
        precision: int,
        rounding: str = ROUND_UP,
    ) -> Money:
        """Convert ``money`` into ``currency``, rounded to ``precision`` decimals.

        Args:
            money: Amount to convert
            currency: Target currency code
            precision: Minor-unit digits of the target currency
            rounding: ``decimal`` rounding mode, round-up by default

        Returns:
            Converted Money in the target currency

        Raises:
            CurrencyNotFoundError: If the provider has no rate for the pair
        """
        rate = self.provider.get_exchange_rate(money.currency, currency)
        converted = Money(amount=money.amount * rate, currency=currency.upper())
        return converted.rounded(precision, rounding)
