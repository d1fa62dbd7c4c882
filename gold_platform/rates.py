"""
Exchange Rate Provider Module

Supplies immutable exchange-rate snapshots relative to the USD base currency.
Includes a static table, an HTTP feed client, and a caching wrapper with a
bounded staleness window.
"""

import httpx
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .currency import Currency, BASE_CURRENCY, to_decimal
from .errors import RateUnavailable

logger = logging.getLogger("gold_platform.rates")


# Reference rates relative to one USD
DEFAULT_RATES: Dict[Currency, Decimal] = {
    Currency.USD: Decimal('1.0'),
    Currency.EUR: Decimal('0.92'),
    Currency.GBP: Decimal('0.79'),
    Currency.EGP: Decimal('48.5'),
    Currency.SAR: Decimal('3.75'),
}


@dataclass(frozen=True)
class ExchangeRateSnapshot:
    """
    Rates for every supported currency at a point in time.

    The base currency is always exactly 1 and every rate is strictly
    positive. A refresh produces a new snapshot; snapshots are never mutated.
    """
    rates: Mapping[Currency, Decimal]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        normalized = {}
        for currency, rate in self.rates.items():
            value = to_decimal(rate)
            if value <= 0:
                raise ValueError(f"Exchange rate for {currency.code} must be positive, got {value}")
            normalized[currency] = value

        missing = [c.code for c in Currency if c not in normalized]
        if missing:
            raise RateUnavailable(f"Missing exchange rates for: {', '.join(missing)}")

        if normalized[BASE_CURRENCY] != Decimal('1'):
            raise ValueError(f"Base currency {BASE_CURRENCY.code} rate must be 1")

        object.__setattr__(self, 'rates', MappingProxyType(normalized))

    def rate_for(self, currency: Currency) -> Decimal:
        """Rate of one base-currency unit expressed in the given currency"""
        return self.rates[currency]

    def age(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return now - self.fetched_at

    def to_dict(self) -> Dict[str, object]:
        return {
            "base": BASE_CURRENCY.code,
            "rates": {c.code: str(r) for c, r in self.rates.items()},
            "fetched_at": self.fetched_at.isoformat(),
        }


class ExchangeRateProvider(ABC):
    """Source of exchange-rate snapshots"""

    @abstractmethod
    def get_rates(self) -> ExchangeRateSnapshot:
        """
        Return the current snapshot

        Raises:
            RateUnavailable: If the upstream source cannot be reached
        """
        pass


class StaticExchangeRateProvider(ExchangeRateProvider):
    """Fixed rate table for development and tests. Never fails."""

    def __init__(self, rates: Optional[Mapping[Currency, Decimal]] = None):
        self._snapshot = ExchangeRateSnapshot(dict(rates or DEFAULT_RATES))

    def get_rates(self) -> ExchangeRateSnapshot:
        return self._snapshot


class HttpExchangeRateProvider(ExchangeRateProvider):
    """REST client for a live exchange-rate feed"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def get_rates(self) -> ExchangeRateSnapshot:
        """
        Fetch latest rates from `{base_url}/latest?base=USD`

        Expected body: {"rates": {"EUR": 0.92, ...}}. The base currency entry
        is forced to 1 when the feed omits it.
        """
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        symbols = ",".join(c.code for c in Currency if c != BASE_CURRENCY)
        try:
            response = self._client.get(
                f"{self.base_url}/latest",
                params={"base": BASE_CURRENCY.code, "symbols": symbols},
                headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Exchange rate feed connection failed: {e}")
            raise RateUnavailable(f"Exchange rate feed unreachable: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Exchange rate feed returned {response.status_code}: {response.text}")
            raise RateUnavailable(f"Exchange rate feed returned HTTP {response.status_code}")

        try:
            payload = response.json()
            raw_rates = payload["rates"]
            rates = {BASE_CURRENCY: Decimal('1')}
            for currency in Currency:
                if currency == BASE_CURRENCY:
                    continue
                rates[currency] = Decimal(str(raw_rates[currency.code]))
            return ExchangeRateSnapshot(rates)
        except RateUnavailable:
            raise
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"Invalid exchange rate payload: {e}")
            raise RateUnavailable(f"Invalid exchange rate payload: {e}") from e

    def close(self) -> None:
        self._client.close()


class CachedExchangeRateProvider(ExchangeRateProvider):
    """
    Caches snapshots from another provider for a bounded staleness window.

    When the upstream fails after the window has passed, the last good
    snapshot is served if `serve_stale` is set; otherwise the failure is
    re-raised and the caller decides.
    """

    def __init__(
        self,
        upstream: ExchangeRateProvider,
        ttl: timedelta = timedelta(hours=1),
        serve_stale: bool = True,
        clock=None
    ):
        self.upstream = upstream
        self.ttl = ttl
        self.serve_stale = serve_stale
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._snapshot: Optional[ExchangeRateSnapshot] = None
        self._cached_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def get_rates(self) -> ExchangeRateSnapshot:
        with self._lock:
            now = self._clock()
            if self._snapshot is not None and now - self._cached_at < self.ttl:
                return self._snapshot

            try:
                snapshot = self.upstream.get_rates()
            except RateUnavailable:
                if self._snapshot is not None and self.serve_stale:
                    logger.warning(
                        f"Serving stale exchange rates cached at {self._cached_at.isoformat()}"
                    )
                    return self._snapshot
                raise

            self._snapshot = snapshot
            self._cached_at = now
            return snapshot

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next call re-fetches"""
        with self._lock:
            self._snapshot = None
            self._cached_at = None
