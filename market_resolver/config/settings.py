"""
Market Resolver: Central Configuration
All settings are loaded from environment variables with sensible defaults.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional


class ProviderSettings(BaseSettings):
    """Public provider endpoints and default request policy."""
    model_config = SettingsConfigDict(env_prefix="RESOLVER_", env_file=".env", extra="ignore")

    binance_us_base_url: str = "https://api.binance.us"
    kraken_base_url: str = "https://api.kraken.com"
    dexscreener_base_url: str = "https://api.dexscreener.com"
    user_agent: str = "market-resolver/1.0"

    timeout_ms: int = Field(default=15000, ge=1000, le=60000)
    retries: int = Field(default=3, ge=0, le=8)
    retry_delay_ms: int = Field(default=700, ge=100, le=10000)

    # Fallback order when the caller supplies no preference
    default_providers: List[str] = ["binance_us", "kraken"]

    candle_min_limit: int = 5
    candle_max_limit: int = 1000


class AppSettings(BaseSettings):
    """Top-level application settings."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Market Resolver"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    providers: ProviderSettings = ProviderSettings()


# Singleton
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings
