"""
Market Resolver: Single-Market Service
Validated wrappers around one-endpoint lookups (Binance US market data,
DexScreener pairs). No fallback or consensus here; each call opens and
closes its own transport.
"""
from typing import List, Optional

from market_resolver.data.adapters.binance_adapter import BinanceUSAdapter
from market_resolver.data.adapters.dexscreener_adapter import DexScreenerAdapter
from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.errors import InputValidationError
from market_resolver.data.models import (
    AggregateTrade,
    AveragePrice,
    BookTicker,
    DexFeed,
    DexPair,
    ExchangeInfo,
    OrderBook,
    RequestPolicy,
    Ticker24h,
    Trade,
)
from market_resolver.data.symbols import normalize_symbol
from market_resolver.data.transport import Transport, default_policy
from market_resolver.config.settings import ProviderSettings, get_settings
from market_resolver.utils.logger import get_logger

logger = get_logger("market_service")

DEX_BOOST_MODES = ("latest", "top")


def _check_range(name: str, value: int, lo: int, hi: int) -> int:
    if not lo <= value <= hi:
        raise InputValidationError(f"{name} must be between {lo} and {hi}, got {value}")
    return value


def _market_symbol(symbol: str) -> str:
    normalized = normalize_symbol(symbol or "")
    if not normalized:
        raise InputValidationError("symbol must contain at least one letter or digit")
    return normalized


def _optional_symbol(symbol: Optional[str]) -> Optional[str]:
    return _market_symbol(symbol) if symbol else None


def _required_text(name: str, value: str, min_length: int = 1) -> str:
    value = (value or "").strip()
    if len(value) < min_length:
        raise InputValidationError(f"{name} must be at least {min_length} characters")
    return value


class MarketInfoService:
    """Binance US market metadata/depth/trades and DexScreener lookups."""

    def __init__(self, settings: Optional[ProviderSettings] = None):
        self.settings = settings or get_settings().providers

    def _transport(self, policy: Optional[RequestPolicy]) -> Transport:
        return Transport(policy or default_policy(self.settings), user_agent=self.settings.user_agent)

    def _binance(self, transport: Transport) -> BinanceUSAdapter:
        return BinanceUSAdapter(transport, self.settings.binance_us_base_url)

    def _dex(self, transport: Transport) -> DexScreenerAdapter:
        return DexScreenerAdapter(transport, self.settings.dexscreener_base_url)

    # ─── Binance US ─────────────────────────────────────────────

    async def exchange_info(
        self,
        symbol: Optional[str] = None,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> ExchangeInfo:
        normalized = _optional_symbol(symbol)
        async with self._transport(policy) as transport:
            info = await self._binance(transport).exchange_info(normalized, signal)
        logger.info("exchange_info_fetched", symbol=normalized, symbols=info.symbol_count)
        return info

    async def order_book(
        self,
        symbol: str,
        limit: int = 100,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> OrderBook:
        normalized = _market_symbol(symbol)
        _check_range("limit", limit, 5, 5000)
        async with self._transport(policy) as transport:
            return await self._binance(transport).order_book(normalized, limit, signal)

    async def ticker_24h(
        self,
        symbol: Optional[str] = None,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[Ticker24h]:
        normalized = _optional_symbol(symbol)
        async with self._transport(policy) as transport:
            return await self._binance(transport).ticker_24h(normalized, signal)

    async def recent_trades(
        self,
        symbol: str,
        limit: int = 100,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[Trade]:
        normalized = _market_symbol(symbol)
        _check_range("limit", limit, 1, 1000)
        async with self._transport(policy) as transport:
            return await self._binance(transport).recent_trades(normalized, limit, signal)

    async def aggregate_trades(
        self,
        symbol: str,
        limit: int = 100,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[AggregateTrade]:
        normalized = _market_symbol(symbol)
        _check_range("limit", limit, 1, 1000)
        async with self._transport(policy) as transport:
            return await self._binance(transport).aggregate_trades(normalized, limit, signal)

    async def book_ticker(
        self,
        symbol: Optional[str] = None,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[BookTicker]:
        normalized = _optional_symbol(symbol)
        async with self._transport(policy) as transport:
            return await self._binance(transport).book_ticker(normalized, signal)

    async def average_price(
        self,
        symbol: str,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> AveragePrice:
        normalized = _market_symbol(symbol)
        async with self._transport(policy) as transport:
            return await self._binance(transport).average_price(normalized, signal)

    # ─── DexScreener ────────────────────────────────────────────

    async def dex_search(
        self,
        query: str,
        limit: int = 10,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[DexPair]:
        query = _required_text("query", query, min_length=2)
        _check_range("limit", limit, 1, 25)
        async with self._transport(policy) as transport:
            pairs = await self._dex(transport).search(query, limit, signal)
        logger.info("dex_search_completed", query=query, count=len(pairs))
        return pairs

    async def dex_pair(
        self,
        chain_id: str,
        pair_address: str,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[DexPair]:
        chain_id = _required_text("chain_id", chain_id)
        pair_address = _required_text("pair_address", pair_address)
        async with self._transport(policy) as transport:
            return await self._dex(transport).pair(chain_id, pair_address, signal)

    async def dex_token_pairs(
        self,
        token_address: str,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> List[DexPair]:
        token_address = _required_text("token_address", token_address)
        async with self._transport(policy) as transport:
            return await self._dex(transport).token_pairs(token_address, signal)

    async def dex_token_profiles(
        self,
        limit: int = 20,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> DexFeed:
        _check_range("limit", limit, 1, 100)
        async with self._transport(policy) as transport:
            return await self._dex(transport).token_profiles(limit, signal)

    async def dex_boosts(
        self,
        mode: str = "latest",
        limit: int = 20,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> DexFeed:
        if mode not in DEX_BOOST_MODES:
            raise InputValidationError(f"mode must be one of: {', '.join(DEX_BOOST_MODES)}")
        _check_range("limit", limit, 1, 100)
        async with self._transport(policy) as transport:
            return await self._dex(transport).boosts(mode, limit, signal)


# Singleton
_service: Optional[MarketInfoService] = None


def get_market_service() -> MarketInfoService:
    global _service
    if _service is None:
        _service = MarketInfoService()
    return _service
