"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Fee schedules live here rather than in the pricing logic.
"""

from pydantic_settings import BaseSettings
from typing import Dict, Optional


class GoldPlatformConfig(BaseSettings):
    """Gold platform core configuration"""
    
    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    storage_path: str = "gold_platform.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Exchange rate feed
    exchange_rate_url: str = ""  # Empty = static rate table
    exchange_rate_api_key: str = ""
    exchange_rate_timeout: float = 5.0
    rate_cache_ttl_seconds: int = 3600
    rate_serve_stale: bool = True
    
    # Gold spot price (USD per troy ounce)
    spot_price_url: str = ""  # Empty = static spot price below
    spot_price_timeout: float = 5.0
    spot_price_usd_per_ounce: str = "2037.28"
    
    # Fee schedule (percentages as Decimal strings)
    buy_fee_percent: str = "2"
    sell_fee_percent: str = "1.5"
    delivery_base_cost: Dict[str, str] = {
        "standard": "25",
        "express": "50",
        "insured": "75",
    }
    delivery_increment_grams: str = "100"
    delivery_increment_cost: str = "10"
    
    # KYC policy
    kyc_expiry_days: int = 365
    kyc_renewal_window_days: int = 30
    kyc_max_document_bytes: int = 10 * 1024 * 1024  # 10MB
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "GOLD_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = GoldPlatformConfig()


def get_config() -> GoldPlatformConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> GoldPlatformConfig:
    """Reload configuration from environment"""
    global config
    config = GoldPlatformConfig()
    return config
