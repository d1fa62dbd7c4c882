"""
System container and request dependencies
"""

from datetime import timedelta
from typing import Optional

from fastapi import Header

from ..storage import InMemoryStorage, SQLiteStorage, StorageInterface
from ..audit import AuditTrail
from ..events import EventDispatcher
from ..rates import StaticExchangeRateProvider, HttpExchangeRateProvider, CachedExchangeRateProvider
from ..currency import CurrencyConverter
from ..pricing import FeeSchedule, GoldPricingEngine, StaticSpotPriceProvider, HttpSpotPriceProvider
from ..kyc_service import KYCRepository, KYCService
from ..rbac import CallerIdentity
from ..errors import Unauthorized
from ..config import GoldPlatformConfig, get_config


class GoldPlatform:
    """Gold platform core with all components initialized"""

    def __init__(self, cfg: Optional[GoldPlatformConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = cfg or get_config()

        # Initialize storage
        if storage is not None:
            self.storage = storage
        elif self.config.storage_backend == "memory":
            self.storage = InMemoryStorage()
        else:
            self.storage = SQLiteStorage(self.config.storage_path)

        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.events = EventDispatcher()

        # Market data
        self.rate_provider = self._create_rate_provider()
        self.spot_provider = self._create_spot_provider()
        self.converter = CurrencyConverter(self.rate_provider)
        self.pricing_engine = GoldPricingEngine(
            self.spot_provider, self.converter, FeeSchedule.from_config(self.config)
        )

        # KYC
        self.kyc_repository = KYCRepository(self.storage)
        self.kyc_service = KYCService(
            self.kyc_repository,
            audit_trail=self.audit_trail,
            events=self.events,
            expiry_days=self.config.kyc_expiry_days,
            renewal_window_days=self.config.kyc_renewal_window_days,
            max_document_bytes=self.config.kyc_max_document_bytes
        )

    def _create_rate_provider(self):
        """Static table unless a feed URL is configured"""
        if not self.config.exchange_rate_url:
            return StaticExchangeRateProvider()

        feed = HttpExchangeRateProvider(
            base_url=self.config.exchange_rate_url,
            timeout=self.config.exchange_rate_timeout,
            api_key=self.config.exchange_rate_api_key or None
        )
        return CachedExchangeRateProvider(
            feed,
            ttl=timedelta(seconds=self.config.rate_cache_ttl_seconds),
            serve_stale=self.config.rate_serve_stale
        )

    def _create_spot_provider(self):
        if not self.config.spot_price_url:
            return StaticSpotPriceProvider(self.config.spot_price_usd_per_ounce)
        return HttpSpotPriceProvider(
            base_url=self.config.spot_price_url,
            timeout=self.config.spot_price_timeout
        )

    def close(self) -> None:
        for provider in (self.spot_provider, getattr(self.rate_provider, "upstream", None)):
            if hasattr(provider, "close"):
                provider.close()
        self.storage.close()


_platform: Optional[GoldPlatform] = None


# Dependency to get the platform
def get_platform() -> GoldPlatform:
    global _platform
    if _platform is None:
        _platform = GoldPlatform()
    return _platform


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> CallerIdentity:
    """Identity forwarded by the authenticating gateway"""
    if not x_user_id or not x_user_role:
        raise Unauthorized("Missing caller identity headers")
    return CallerIdentity.of(x_user_id, x_user_role)

