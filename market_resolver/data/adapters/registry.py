"""
Market Resolver: Provider Adapter Registry
"""
from typing import Callable, Dict, Optional, Type

from market_resolver.data.adapters.base import BaseProviderAdapter
from market_resolver.data.adapters.binance_adapter import BinanceUSAdapter
from market_resolver.data.adapters.kraken_adapter import KrakenAdapter
from market_resolver.data.models import ProviderId
from market_resolver.data.transport import Transport
from market_resolver.config.settings import ProviderSettings, get_settings

ADAPTERS: Dict[ProviderId, Type[BaseProviderAdapter]] = {
    ProviderId.BINANCE_US: BinanceUSAdapter,
    ProviderId.KRAKEN: KrakenAdapter,
}

_BASE_URL_SETTING: Dict[ProviderId, str] = {
    ProviderId.BINANCE_US: "binance_us_base_url",
    ProviderId.KRAKEN: "kraken_base_url",
}

AdapterFactory = Callable[[ProviderId, Transport], BaseProviderAdapter]


def build_adapter(
    provider: ProviderId, transport: Transport, settings: Optional[ProviderSettings] = None
) -> BaseProviderAdapter:
    """Instantiate the adapter for ``provider`` bound to ``transport``."""
    settings = settings or get_settings().providers
    return ADAPTERS[provider](transport, getattr(settings, _BASE_URL_SETTING[provider]))
