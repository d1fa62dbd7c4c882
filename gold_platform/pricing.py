"""
Gold Pricing Engine Module

Derives price per gram from the spot troy-ounce price and computes buy, sell
and delivery quotes using a configurable fee schedule. Also carries the
deposit/withdrawal fee tables, profit/loss math and trading limits.

All monetary values are Decimal; quotes round to 2 places only when reported.
"""

import httpx
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING
from enum import Enum
from typing import Dict, Optional

from .currency import (
    Currency, CurrencyConverter, CurrencyLike, Number,
    BASE_CURRENCY, to_decimal, quantize_amount
)
from .errors import InvalidAmount, InvalidDeliveryType, RateUnavailable

logger = logging.getLogger("gold_platform.pricing")

GRAMS_PER_TROY_OUNCE = Decimal('31.1034768')


class QuoteSide(Enum):
    """Direction of a gold trade"""
    BUY = "buy"
    SELL = "sell"


class DeliveryType(Enum):
    """Physical delivery service levels"""
    STANDARD = "standard"
    EXPRESS = "express"
    INSURED = "insured"

    @classmethod
    def from_value(cls, value) -> 'DeliveryType':
        if isinstance(value, DeliveryType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidDeliveryType(f"Unknown delivery type: {value}")


DELIVERY_ESTIMATED_DAYS = {
    DeliveryType.STANDARD: 7,
    DeliveryType.EXPRESS: 3,
    DeliveryType.INSURED: 5,
}


class PaymentMethod(Enum):
    """Funding and payout channels"""
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    WIRE_TRANSFER = "wire_transfer"
    CRYPTO = "crypto"


class TransactionKind(Enum):
    """Transaction kinds with amount limits"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    GOLD_PURCHASE = "gold_purchase"
    GOLD_SALE = "gold_sale"


# Percentage of the amount charged on deposit
DEPOSIT_FEE_PERCENT = {
    PaymentMethod.BANK_TRANSFER: Decimal('0'),
    PaymentMethod.CREDIT_CARD: Decimal('2.9'),
    PaymentMethod.DEBIT_CARD: Decimal('1.5'),
    PaymentMethod.WIRE_TRANSFER: Decimal('0'),
    PaymentMethod.CRYPTO: Decimal('1'),
}

# (flat fee, percentage) charged on withdrawal
WITHDRAWAL_FEES = {
    PaymentMethod.BANK_TRANSFER: (Decimal('5'), Decimal('0')),
    PaymentMethod.WIRE_TRANSFER: (Decimal('25'), Decimal('0')),
    PaymentMethod.CRYPTO: (Decimal('0'), Decimal('1')),
}

# Inclusive (min, max); money kinds in USD, gold kinds in grams
TRANSACTION_LIMITS = {
    TransactionKind.DEPOSIT: (Decimal('10'), Decimal('100000')),
    TransactionKind.WITHDRAWAL: (Decimal('10'), Decimal('50000')),
    TransactionKind.GOLD_PURCHASE: (Decimal('1'), Decimal('1000')),
    TransactionKind.GOLD_SALE: (Decimal('1'), Decimal('1000')),
}


@dataclass
class FeeSchedule:
    """Trading and delivery fee policy, all percentages in percent units"""
    buy_fee_percent: Decimal = Decimal('2')
    sell_fee_percent: Decimal = Decimal('1.5')
    delivery_base_cost: Dict[DeliveryType, Decimal] = field(default_factory=lambda: {
        DeliveryType.STANDARD: Decimal('25'),
        DeliveryType.EXPRESS: Decimal('50'),
        DeliveryType.INSURED: Decimal('75'),
    })
    delivery_increment_grams: Decimal = Decimal('100')
    delivery_increment_cost: Decimal = Decimal('10')

    def __post_init__(self):
        self.buy_fee_percent = to_decimal(self.buy_fee_percent)
        self.sell_fee_percent = to_decimal(self.sell_fee_percent)
        self.delivery_increment_grams = to_decimal(self.delivery_increment_grams)
        self.delivery_increment_cost = to_decimal(self.delivery_increment_cost)
        self.delivery_base_cost = {
            DeliveryType.from_value(k): to_decimal(v)
            for k, v in self.delivery_base_cost.items()
        }

        for name in ("buy_fee_percent", "sell_fee_percent"):
            value = getattr(self, name)
            if value < 0 or value >= 100:
                raise ValueError(f"{name} must be in [0, 100), got {value}")

        missing = [d.value for d in DeliveryType if d not in self.delivery_base_cost]
        if missing:
            raise ValueError(f"Missing delivery base cost for: {', '.join(missing)}")

        standard = self.delivery_base_cost[DeliveryType.STANDARD]
        express = self.delivery_base_cost[DeliveryType.EXPRESS]
        insured = self.delivery_base_cost[DeliveryType.INSURED]
        if not standard < express < insured:
            raise ValueError("Delivery base costs must increase: standard < express < insured")

        if self.delivery_increment_grams <= 0:
            raise ValueError("delivery_increment_grams must be positive")

    @classmethod
    def from_config(cls, cfg) -> 'FeeSchedule':
        """Build a schedule from GoldPlatformConfig"""
        return cls(
            buy_fee_percent=to_decimal(cfg.buy_fee_percent),
            sell_fee_percent=to_decimal(cfg.sell_fee_percent),
            delivery_base_cost=dict(cfg.delivery_base_cost),
            delivery_increment_grams=to_decimal(cfg.delivery_increment_grams),
            delivery_increment_cost=to_decimal(cfg.delivery_increment_cost),
        )


@dataclass(frozen=True)
class GoldQuote:
    """Buy or sell breakdown. Derived on demand, never persisted."""
    side: QuoteSide
    grams: Decimal
    price_per_gram: Decimal
    subtotal: Decimal
    fee: Decimal
    fee_percentage: Decimal
    total: Decimal
    currency: Currency

    def to_dict(self) -> Dict[str, str]:
        return {
            "side": self.side.value,
            "grams": str(self.grams),
            "price_per_gram": str(self.price_per_gram),
            "subtotal": str(self.subtotal),
            "fee": str(self.fee),
            "fee_percentage": str(self.fee_percentage),
            "total": str(self.total),
            "currency": self.currency.code,
        }


@dataclass(frozen=True)
class DeliveryQuote:
    """Physical delivery cost; base_cost in USD, cost in the requested currency"""
    grams: Decimal
    delivery_type: DeliveryType
    base_cost: Decimal
    cost: Decimal
    currency: Currency
    estimated_days: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "grams": str(self.grams),
            "delivery_type": self.delivery_type.value,
            "base_cost": str(self.base_cost),
            "cost": str(self.cost),
            "currency": self.currency.code,
            "estimated_days": self.estimated_days,
        }


@dataclass(frozen=True)
class ProfitLoss:
    total_investment: Decimal
    current_value: Decimal
    profit_loss: Decimal
    profit_loss_percentage: Decimal


class SpotPriceProvider(ABC):
    """Source of the gold spot price in USD per troy ounce"""

    @abstractmethod
    def get_spot_price(self) -> Decimal:
        pass


class StaticSpotPriceProvider(SpotPriceProvider):
    """Fixed spot price for development and tests"""

    def __init__(self, price_per_ounce: Number):
        price = to_decimal(price_per_ounce)
        if price <= 0:
            raise ValueError("Spot price must be positive")
        self.price_per_ounce = price

    def get_spot_price(self) -> Decimal:
        return self.price_per_ounce


class HttpSpotPriceProvider(SpotPriceProvider):
    """REST client for a live gold market-data feed"""

    def __init__(self, base_url: str, timeout: float = 5.0,
                 client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def get_spot_price(self) -> Decimal:
        """Fetch `{base_url}/spot/XAU`, expecting {"price": <USD per ounce>}"""
        try:
            response = self._client.get(f"{self.base_url}/spot/XAU", params={"currency": "USD"})
        except httpx.HTTPError as e:
            logger.error(f"Spot price feed connection failed: {e}")
            raise RateUnavailable(f"Spot price feed unreachable: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Spot price feed returned {response.status_code}: {response.text}")
            raise RateUnavailable(f"Spot price feed returned HTTP {response.status_code}")

        try:
            price = Decimal(str(response.json()["price"]))
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise RateUnavailable(f"Invalid spot price payload: {e}") from e

        if price <= 0:
            raise RateUnavailable(f"Spot price feed returned non-positive price {price}")
        return price

    def close(self) -> None:
        self._client.close()


def _positive(value: Number, label: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError:
        raise InvalidAmount(f"{label} must be a number, got {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"{label} must be greater than zero, got {amount}")
    return amount


class GoldPricingEngine:
    """
    Computes gold prices and trade/delivery quotes.

    Depends on a spot price provider (USD/oz), a currency converter and a
    fee schedule. Currency codes are validated before any provider call.
    """

    def __init__(
        self,
        spot_provider: SpotPriceProvider,
        converter: CurrencyConverter,
        fees: Optional[FeeSchedule] = None
    ):
        self.spot_provider = spot_provider
        self.converter = converter
        self.fees = fees or FeeSchedule()

    def _price_per_gram_raw(self, currency: Currency) -> Decimal:
        usd_per_gram = self.spot_provider.get_spot_price() / GRAMS_PER_TROY_OUNCE
        if currency == BASE_CURRENCY:
            return usd_per_gram
        return usd_per_gram * self.converter.rate(BASE_CURRENCY, currency)

    def price_per_gram(self, currency: CurrencyLike = BASE_CURRENCY) -> Decimal:
        """
        Current gold price per gram

        Args:
            currency: Target currency (default USD)

        Returns:
            Price per gram rounded to 2 decimal places

        Raises:
            InvalidCurrency: If the currency is unsupported
            RateUnavailable: If the spot or rate feed fails
        """
        target = Currency.from_code(currency)
        return quantize_amount(self._price_per_gram_raw(target))

    def price_per_ounce(self, currency: CurrencyLike = BASE_CURRENCY) -> Decimal:
        """Current gold price per troy ounce, rounded to 2 decimal places"""
        target = Currency.from_code(currency)
        return quantize_amount(self._price_per_gram_raw(target) * GRAMS_PER_TROY_OUNCE)

    def _quote(self, side: QuoteSide, grams: Number, currency: CurrencyLike) -> GoldQuote:
        target = Currency.from_code(currency)
        weight = _positive(grams, "Grams")

        fee_percentage = (
            self.fees.buy_fee_percent if side == QuoteSide.BUY else self.fees.sell_fee_percent
        )
        price = self.price_per_gram(target)
        subtotal = quantize_amount(weight * price)
        fee = quantize_amount(subtotal * fee_percentage / Decimal('100'))
        total = subtotal + fee if side == QuoteSide.BUY else subtotal - fee

        logger.debug(
            f"{side.value} quote: {weight}g @ {price} {target.code} = {total} (fee {fee})"
        )

        return GoldQuote(
            side=side,
            grams=weight,
            price_per_gram=price,
            subtotal=subtotal,
            fee=fee,
            fee_percentage=fee_percentage,
            total=total,
            currency=target,
        )

    def quote_buy(self, grams: Number, currency: CurrencyLike = BASE_CURRENCY) -> GoldQuote:
        """
        Cost breakdown for buying gold

        Raises:
            InvalidCurrency: If the currency is unsupported
            InvalidAmount: If grams is not greater than zero
        """
        return self._quote(QuoteSide.BUY, grams, currency)

    def quote_sell(self, grams: Number, currency: CurrencyLike = BASE_CURRENCY) -> GoldQuote:
        """Proceeds breakdown for selling gold, using the sell fee schedule"""
        return self._quote(QuoteSide.SELL, grams, currency)

    def delivery_base_cost(self, grams: Number, delivery_type) -> Decimal:
        """
        Delivery cost in USD before conversion

        Every started block of `delivery_increment_grams` above the first one
        adds `delivery_increment_cost`: 100g costs the base fee, 100.01g adds
        one increment.
        """
        kind = DeliveryType.from_value(delivery_type)
        weight = _positive(grams, "Grams")

        base = self.fees.delivery_base_cost[kind]
        threshold = self.fees.delivery_increment_grams
        if weight > threshold:
            increments = ((weight - threshold) / threshold).to_integral_value(rounding=ROUND_CEILING)
            base += increments * self.fees.delivery_increment_cost
        return base

    def quote_delivery(self, grams: Number, delivery_type,
                       currency: CurrencyLike = BASE_CURRENCY) -> DeliveryQuote:
        """
        Physical delivery cost breakdown

        Raises:
            InvalidCurrency: If the currency is unsupported
            InvalidDeliveryType: If the delivery type is unknown
            InvalidAmount: If grams is not greater than zero
        """
        target = Currency.from_code(currency)
        kind = DeliveryType.from_value(delivery_type)
        weight = _positive(grams, "Grams")

        base_cost = quantize_amount(self.delivery_base_cost(weight, kind))
        cost = quantize_amount(self.converter.convert(base_cost, BASE_CURRENCY, target))

        return DeliveryQuote(
            grams=weight,
            delivery_type=kind,
            base_cost=base_cost,
            cost=cost,
            currency=target,
            estimated_days=DELIVERY_ESTIMATED_DAYS[kind],
        )

    def profit_loss(self, grams: Number, average_purchase_price: Number,
                    current_price: Optional[Number] = None) -> ProfitLoss:
        """
        Profit or loss on a holding, in USD

        Args:
            grams: Grams held
            average_purchase_price: Average USD price paid per gram
            current_price: USD price per gram; current market price when None
        """
        weight = to_decimal(grams)
        paid = to_decimal(average_purchase_price)
        price = to_decimal(current_price) if current_price is not None else self.price_per_gram(BASE_CURRENCY)

        total_investment = quantize_amount(weight * paid)
        current_value = quantize_amount(weight * price)
        profit_loss = current_value - total_investment

        percentage = Decimal('0')
        if total_investment > 0:
            percentage = quantize_amount(profit_loss / total_investment * Decimal('100'))

        return ProfitLoss(
            total_investment=total_investment,
            current_value=current_value,
            profit_loss=profit_loss,
            profit_loss_percentage=percentage,
        )


def deposit_fee(amount: Number, method) -> Decimal:
    """Fee charged on a deposit for the given payment method"""
    payment = PaymentMethod(method) if not isinstance(method, PaymentMethod) else method
    value = _positive(amount, "Amount")
    return quantize_amount(value * DEPOSIT_FEE_PERCENT[payment] / Decimal('100'))


def withdrawal_fee(amount: Number, method) -> Decimal:
    """
    Fee charged on a withdrawal

    Raises:
        ValueError: If the method cannot be used for withdrawals
    """
    payment = PaymentMethod(method) if not isinstance(method, PaymentMethod) else method
    if payment not in WITHDRAWAL_FEES:
        raise ValueError(f"Withdrawals are not supported via {payment.value}")
    value = _positive(amount, "Amount")
    flat, percent = WITHDRAWAL_FEES[payment]
    return quantize_amount(flat + value * percent / Decimal('100'))


def validate_transaction_amount(amount: Number, kind) -> Decimal:
    """
    Check an amount against the limits for its transaction kind

    Returns:
        The amount as Decimal

    Raises:
        InvalidAmount: With a message naming the violated bound
    """
    transaction_kind = TransactionKind(kind) if not isinstance(kind, TransactionKind) else kind
    value = _positive(amount, "Amount")
    minimum, maximum = TRANSACTION_LIMITS[transaction_kind]
    label = transaction_kind.value.replace("_", " ")

    if value < minimum:
        raise InvalidAmount(f"Minimum {label} amount is {minimum}")
    if value > maximum:
        raise InvalidAmount(f"Maximum {label} amount is {maximum}")
    return value
