"""
Market Resolver: Data Models for Market Data
Canonical data structures returned by adapters, the resolver and the API.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime
from enum import Enum


class ProviderId(str, Enum):
    BINANCE_US = "binance_us"
    KRAKEN = "kraken"


class CandleInterval(str, Enum):
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1w"

    @property
    def minutes(self) -> int:
        return INTERVAL_MINUTES[self]


INTERVAL_MINUTES: Dict[CandleInterval, int] = {
    CandleInterval.M1: 1,
    CandleInterval.M5: 5,
    CandleInterval.M15: 15,
    CandleInterval.M30: 30,
    CandleInterval.H1: 60,
    CandleInterval.H4: 240,
    CandleInterval.D1: 1440,
    CandleInterval.W1: 10080,
}


class RequestPolicy(BaseModel):
    """Per-call network behaviour: deadline, retry budget and fixed retry delay."""
    model_config = ConfigDict(frozen=True)

    timeout_ms: int = Field(default=15000, ge=1000, le=60000)
    retries: int = Field(default=3, ge=0, le=8)
    retry_delay_ms: int = Field(default=700, ge=100, le=10000)


class PairCandidate(BaseModel):
    """A concrete provider-facing market identifier."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    provider: ProviderId
    rank: int


class Quote(BaseModel):
    """Single provider's price observation."""
    model_config = ConfigDict(frozen=True)

    provider: ProviderId
    base_asset: str
    quote_asset: str
    symbol: str
    price: float
    timestamp: datetime


class ProviderAttempt(BaseModel):
    """Record of one provider invocation during a resolution."""
    provider: ProviderId
    success: bool
    price: Optional[float] = None
    error: Optional[str] = None


class SpotPriceResult(BaseModel):
    """Outcome of fallback resolution."""
    base_asset: str
    quote_asset: str
    selected_provider: ProviderId
    price: float
    timestamp: datetime
    attempts: List[ProviderAttempt]


class ConsensusSummary(BaseModel):
    median: float
    min: float
    max: float
    spread_percent: float


class ConsensusResult(BaseModel):
    """Order statistics over independently sourced quotes."""
    base_asset: str
    quote_asset: str
    quotes: List[Quote]
    summary: ConsensusSummary
    attempts: List[ProviderAttempt]
    timestamp: datetime


class Candle(BaseModel):
    """Single OHLCV interval in canonical units."""
    open_time: str
    close_time: str
    open: float
    high: float
    low: float
    close: float
    volume: float


class CandleSeries(BaseModel):
    base_asset: str
    quote_asset: str
    interval: CandleInterval
    selected_provider: ProviderId
    point_count: int
    points: List[Candle]
    attempts: List[ProviderAttempt]


# ─── Single-market payloads (provider decimal strings kept verbatim) ───

class ExchangeSymbol(BaseModel):
    symbol: str
    status: str
    base_asset: str
    quote_asset: str


class ExchangeInfo(BaseModel):
    timezone: str
    server_time: int
    symbol_count: int
    symbols: List[ExchangeSymbol]


class OrderBook(BaseModel):
    symbol: str
    last_update_id: int
    bid_count: int
    ask_count: int
    bids: List[Tuple[str, str]]
    asks: List[Tuple[str, str]]


class Ticker24h(BaseModel):
    symbol: str
    price_change_percent: str
    last_price: str
    volume: str


class Trade(BaseModel):
    id: int
    price: str
    qty: str
    quote_qty: Optional[str] = None
    time: int
    is_buyer_maker: bool


class AggregateTrade(BaseModel):
    aggregate_trade_id: int
    price: str
    quantity: str
    first_trade_id: int
    last_trade_id: int
    timestamp: int
    is_buyer_maker: bool


class BookTicker(BaseModel):
    symbol: str
    bid_price: str
    bid_qty: str
    ask_price: str
    ask_qty: str


class AveragePrice(BaseModel):
    symbol: str
    mins: int
    price: str


class DexPair(BaseModel):
    """DEX pair summary from DexScreener."""
    chain_id: str
    dex_id: str
    pair_address: str
    base_symbol: str
    quote_symbol: str
    price_usd: Optional[str] = None
    volume_24h: Optional[float] = None
    liquidity_usd: Optional[float] = None
    fdv: Optional[float] = None
    market_cap: Optional[float] = None
    url: Optional[str] = None


class DexFeed(BaseModel):
    """Raw DexScreener feed items (profiles, boosts)."""
    count: int
    items: List[Dict[str, Any]]
