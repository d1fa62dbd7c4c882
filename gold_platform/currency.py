"""
Multi-Currency Support Module

Handles the supported currency set, Decimal money values, conversion through
the USD base currency, and locale-aware display formatting.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Dict, Union
from enum import Enum

from .errors import InvalidAmount, InvalidCurrency

# Set global decimal context for financial precision
getcontext().prec = 28  # High precision for financial calculations

TWO_PLACES = Decimal('0.01')


class Currency(Enum):
    """Supported currencies with precision, symbol and display name"""
    USD = ("USD", 2, "$", "US Dollar")
    EUR = ("EUR", 2, "€", "Euro")
    GBP = ("GBP", 2, "£", "British Pound")
    EGP = ("EGP", 2, "E£", "Egyptian Pound")
    SAR = ("SAR", 2, "ر.س", "Saudi Riyal")

    def __init__(self, code: str, precision: int, symbol: str, display_name: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol
        self.display_name = display_name

    @classmethod
    def from_code(cls, value: Union['Currency', str]) -> 'Currency':
        """
        Resolve a Currency from an enum member or an ISO code string

        Raises:
            InvalidCurrency: If the code is not in the supported set
        """
        if isinstance(value, Currency):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        raise InvalidCurrency(value)


BASE_CURRENCY = Currency.USD

CurrencyLike = Union[Currency, str]
Number = Union[Decimal, int, str, float]


def to_decimal(value: Number) -> Decimal:
    """
    Convert a numeric input to a finite Decimal without float artefacts

    Raises:
        InvalidAmount: If the input is not a number, or is NaN or infinite
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise InvalidAmount(f"Cannot convert '{value}' to Decimal")
    if not amount.is_finite():
        raise InvalidAmount(f"Amount must be a finite number, got '{value}'")
    return amount


def quantize_amount(value: Decimal, places: int = 2) -> Decimal:
    """Round a reported amount half-up to the given number of places"""
    return value.quantize(Decimal('0.1') ** places, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    Amounts are rounded to the currency precision on construction, so keep
    raw Decimals for intermediate math and wrap only reported values.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))
        object.__setattr__(self, 'amount', quantize_amount(self.amount, self.currency.precision))

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency.code} and {other.currency.code}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency.code} from {self.currency.code}")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        return Money(self.amount * to_decimal(multiplier), self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __lt__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount < other.amount

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def to_string(self, locale: str = "en-US") -> str:
        """Format for display"""
        return format_currency(self.amount, self.currency, locale)

    def to_dict(self) -> Dict[str, str]:
        return {"amount": str(self.amount), "currency": self.currency.code}


class CurrencyConverter:
    """
    Converts amounts between supported currencies via the base currency.

    Rates come from an exchange rate provider; the converter holds no rate
    state of its own.
    """

    def __init__(self, provider):
        self.provider = provider

    def convert(self, amount: Number, from_currency: CurrencyLike,
                to_currency: CurrencyLike) -> Decimal:
        """
        Convert amount from one currency to another

        Args:
            amount: Amount to convert
            from_currency: Source currency (enum or code)
            to_currency: Target currency (enum or code)

        Returns:
            Converted amount rounded to 2 decimal places; the input amount
            unchanged when both currencies are the same

        Raises:
            InvalidCurrency: If either code is unsupported
            InvalidAmount: If the amount is not a finite number
            RateUnavailable: If the provider cannot supply rates
        """
        source = Currency.from_code(from_currency)
        target = Currency.from_code(to_currency)
        value = to_decimal(amount)

        if source == target:
            return value

        rates = self.provider.get_rates()
        converted = value / rates.rate_for(source) * rates.rate_for(target)
        return quantize_amount(converted, target.precision)

    def convert_money(self, money: Money, to_currency: CurrencyLike) -> Money:
        """Convert a Money value into another currency"""
        target = Currency.from_code(to_currency)
        return Money(self.convert(money.amount, money.currency, target), target)

    def rate(self, from_currency: CurrencyLike, to_currency: CurrencyLike) -> Decimal:
        """
        Cross rate between two currencies

        Same-currency requests return 1 without consulting the provider.
        """
        source = Currency.from_code(from_currency)
        target = Currency.from_code(to_currency)
        if source == target:
            return Decimal('1')

        rates = self.provider.get_rates()
        return rates.rate_for(target) / rates.rate_for(source)

    def all_rates(self) -> Dict[str, Decimal]:
        """Current rates keyed by currency code, relative to the base currency"""
        snapshot = self.provider.get_rates()
        return {currency.code: rate for currency, rate in snapshot.rates.items()}


# Display conventions per locale: thousands separator, decimal separator,
# and whether the symbol precedes the amount.
LOCALE_FORMATS = {
    "en-US": (",", ".", True),
    "en-GB": (",", ".", True),
    "de-DE": (".", ",", False),
    "fr-FR": (" ", ",", False),
    "ar-EG": (",", ".", False),
}
DEFAULT_LOCALE = "en-US"


def _locale_format(locale: str):
    return LOCALE_FORMATS.get(locale, LOCALE_FORMATS[DEFAULT_LOCALE])


def _group_digits(value: Decimal, digits: int, locale: str) -> str:
    """Render abs(value) with grouping and the locale's separators"""
    thousands, decimal_sep, _ = _locale_format(locale)
    rendered = f"{abs(value):,.{digits}f}"
    return rendered.translate(str.maketrans({",": thousands, ".": decimal_sep}))


def format_number(value: Number, decimals: int = 2, locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a number with thousand separators

    Example:
        format_number(Decimal('1234567.891')) -> "1,234,567.89"
    """
    amount = quantize_amount(to_decimal(value), decimals)
    sign = "-" if amount < 0 else ""
    return sign + _group_digits(amount, decimals, locale)


def format_currency(amount: Number, currency: CurrencyLike,
                    locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a currency amount with symbol, fixed at 2 fraction digits

    Examples:
        format_currency(Decimal('1234.56'), 'USD') -> "$1,234.56"
        format_currency(Decimal('1234.56'), 'EUR', 'de-DE') -> "1.234,56 €"
    """
    cur = Currency.from_code(currency)
    value = quantize_amount(to_decimal(amount), 2)
    _, _, symbol_first = _locale_format(locale)
    sign = "-" if value < 0 else ""
    digits = _group_digits(value, 2, locale)
    if symbol_first:
        return f"{sign}{cur.symbol}{digits}"
    return f"{sign}{digits} {cur.symbol}"


def format_gold(grams: Number, locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a gold weight with 2 to 6 fraction digits

    Examples:
        format_gold(Decimal('10.5')) -> "10.50g"
        format_gold(Decimal('0.1234567')) -> "0.123457g"
    """
    value = quantize_amount(to_decimal(grams), 6)
    # Drop trailing zeros past the second fraction digit
    exponent = value.normalize().as_tuple().exponent
    digits = min(max(-exponent, 2), 6) if isinstance(exponent, int) else 2
    sign = "-" if value < 0 else ""
    return f"{sign}{_group_digits(value, digits, locale)}g"


def format_percentage(value: Number, decimals: int = 2) -> str:
    """
    Format a fraction as a percentage

    Example:
        format_percentage(Decimal('0.1523')) -> "15.23%"
    """
    percent = quantize_amount(to_decimal(value) * 100, decimals)
    return f"{percent:.{decimals}f}%"
