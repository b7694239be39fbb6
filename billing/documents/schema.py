"""Invoice document models handed to the PDF renderer.

The document carries formatting parameters exactly as stored on the currency
(symbol position, separators, decimals, subunit name); the builder performs
no formatting of its own.
"""

from datetime import date
from decimal import ROUND_HALF_UP, ROUND_UP, Decimal

from pydantic import BaseModel, Field


class Party(BaseModel):
    """Seller or buyer identity."""

    name: str
    phone: str | None = None
    email: str | None = None
    custom_fields: dict[str, str | None] = Field(default_factory=dict)


class Buyer(Party):
    pass


class DocumentItem(BaseModel):
    """Rendered line item."""

    title: str
    price_per_unit: Decimal
    quantity: Decimal
    sub_total_price: Decimal


class CurrencyFormat(BaseModel):
    """Currency display parameters.

    Attributes:
        code: ISO 4217 code
        symbol: Display symbol
        decimals: Minor-unit digits
        decimal_point: Decimal separator
        thousands_separator: Thousands separator
        format: Pattern with a ``{VALUE}`` placeholder (``{SYMBOL}`` and
            ``{CODE}`` are also substituted)
        fraction: Name of the subunit, e.g. "cents"
    """

    code: str
    symbol: str
    decimals: int = 2
    decimal_point: str = "."
    thousands_separator: str = ","
    format: str = "{SYMBOL}{VALUE}"
    fraction: str = ""

    @classmethod
    def pattern(cls, symbol: str, symbol_first: bool) -> str:
        return f"{symbol} {{VALUE}}" if symbol_first else f"{{VALUE}} {symbol}"

    def format_number(self, amount: Decimal) -> str:
        quantum = Decimal(1).scaleb(-self.decimals)
        rounded = amount.quantize(quantum, rounding=ROUND_HALF_UP)
        text = f"{rounded:,.{self.decimals}f}"
        return (
            text.replace(",", "\x00")
            .replace(".", self.decimal_point)
            .replace("\x00", self.thousands_separator)
        )

    def format_money(self, amount: Decimal) -> str:
        return (
            self.format.replace("{VALUE}", self.format_number(amount))
            .replace("{SYMBOL}", self.symbol)
            .replace("{CODE}", self.code)
        )

    def whole_and_fraction(self, amount: Decimal) -> str:
        """Amount split into whole units and subunits, e.g. ``225 USD and 50 cents``."""
        quantum = Decimal(1).scaleb(-self.decimals)
        rounded = amount.quantize(quantum, rounding=ROUND_HALF_UP)
        sign = "-" if rounded < 0 else ""
        whole = int(abs(rounded))
        minor = int((abs(rounded) - whole) * (10**self.decimals))
        if not self.decimals or not self.fraction:
            return f"{sign}{whole} {self.code}"
        return f"{sign}{whole} {self.code} and {minor} {self.fraction}"


class InvoiceDocument(BaseModel):
    """Everything the renderer needs to produce one invoice PDF."""

    name: str = "Invoice"
    template: str = "invoice"
    filename: str
    status: str
    series: str
    sequence: int
    sequence_padding: int = 5
    delimiter: str = "-"
    issued_on: date = Field(default_factory=date.today)
    seller: Party
    buyer: Buyer
    items: list[DocumentItem]
    tax_rate: Decimal = Decimal("0")
    subtotal: Decimal | None = None
    total: Decimal | None = None
    currency: CurrencyFormat
    logo: str = ""
    notes: str | None = None

    @property
    def serial_number(self) -> str:
        return f"{self.series}{self.delimiter}{self.sequence:0{self.sequence_padding}d}"

    @property
    def total_amount_without_taxes(self) -> Decimal:
        """Stored subtotal when given, otherwise the sum of the item subtotals."""
        if self.subtotal is not None:
            return self.subtotal
        return sum((item.sub_total_price for item in self.items), Decimal("0"))

    @property
    def total_taxes(self) -> Decimal:
        if self.subtotal is not None and self.total is not None:
            return self.total - self.subtotal
        quantum = Decimal(1).scaleb(-self.currency.decimals)
        taxes = self.total_amount_without_taxes * self.tax_rate / Decimal(100)
        return taxes.quantize(quantum, rounding=ROUND_UP)

    @property
    def total_amount(self) -> Decimal:
        if self.total is not None:
            return self.total
        return self.total_amount_without_taxes + self.total_taxes
