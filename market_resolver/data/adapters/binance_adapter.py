"""
Market Resolver: Binance US Data Adapter
Direct-symbol provider: one concatenated symbol per call. Also serves the
single-market endpoints (depth, trades, tickers, exchange metadata), which
keep Binance's decimal strings untouched.
"""
from typing import Any, Dict, List, Optional

from market_resolver.data.adapters.base import BaseProviderAdapter
from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.candles import BINANCE_KLINE_LAYOUT, normalize_candles
from market_resolver.data.errors import PermanentProviderError
from market_resolver.data.models import (
    AggregateTrade,
    AveragePrice,
    BookTicker,
    Candle,
    CandleInterval,
    ExchangeInfo,
    ExchangeSymbol,
    OrderBook,
    PairCandidate,
    ProviderId,
    Quote,
    Ticker24h,
    Trade,
)
from market_resolver.data.transport import Transport
from market_resolver.config.settings import get_settings
from market_resolver.utils.helpers import clamp, finite_float, utc_now
from market_resolver.utils.logger import get_logger

logger = get_logger("binance_adapter")

KLINES_MAX_LIMIT = 1000


def _malformed(what: str, error: Exception) -> PermanentProviderError:
    return PermanentProviderError(f"Binance US {what} response malformed: {type(error).__name__}: {error}")


class BinanceUSAdapter(BaseProviderAdapter):
    """Binance US public REST adapter."""

    provider = ProviderId.BINANCE_US

    def __init__(self, transport: Transport, base_url: Optional[str] = None):
        super().__init__(transport, base_url or get_settings().providers.binance_us_base_url)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v3/{path}"

    async def fetch_spot_price(
        self, base: str, quote: str, signal: Optional[CancellationSignal] = None
    ) -> Quote:
        async def fetch_one(candidate: PairCandidate) -> Quote:
            data = await self.transport.get_json(
                self._url("ticker/price"), params={"symbol": candidate.symbol}, signal=signal
            )
            try:
                price = finite_float(data["price"])
                symbol = data.get("symbol", candidate.symbol)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise _malformed("ticker", e) from e
            return Quote(
                provider=self.provider,
                base_asset=base,
                quote_asset=quote,
                symbol=symbol,
                price=price,
                timestamp=utc_now(),
            )

        return await self.probe(self.candidates(base, quote), fetch_one)

    async def fetch_candles(
        self,
        base: str,
        quote: str,
        interval: CandleInterval,
        limit: int,
        signal: Optional[CancellationSignal] = None,
    ) -> List[Candle]:
        async def fetch_one(candidate: PairCandidate) -> List[Candle]:
            rows = await self.transport.get_json(
                self._url("klines"),
                params={
                    "symbol": candidate.symbol,
                    "interval": interval.value,
                    "limit": clamp(limit, 1, KLINES_MAX_LIMIT),
                },
                signal=signal,
            )
            if not isinstance(rows, list):
                raise PermanentProviderError("Binance US klines response is not a list")
            candles = normalize_candles(rows, BINANCE_KLINE_LAYOUT, interval, limit)
            logger.debug("binance_klines_fetched", symbol=candidate.symbol, rows=len(rows), kept=len(candles))
            return candles

        return await self.probe(self.candidates(base, quote), fetch_one)

    # ─── Single-market endpoints ────────────────────────────────

    async def exchange_info(
        self, symbol: Optional[str] = None, signal: Optional[CancellationSignal] = None
    ) -> ExchangeInfo:
        params = {"symbol": symbol} if symbol else None
        data = await self.transport.get_json(self._url("exchangeInfo"), params=params, signal=signal)
        try:
            symbols = [
                ExchangeSymbol(
                    symbol=s["symbol"],
                    status=s["status"],
                    base_asset=s["baseAsset"],
                    quote_asset=s["quoteAsset"],
                )
                for s in data["symbols"]
            ]
            return ExchangeInfo(
                timezone=data["timezone"],
                server_time=data["serverTime"],
                symbol_count=len(symbols),
                symbols=symbols,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise _malformed("exchangeInfo", e) from e

    async def order_book(
        self, symbol: str, limit: int, signal: Optional[CancellationSignal] = None
    ) -> OrderBook:
        data = await self.transport.get_json(
            self._url("depth"), params={"symbol": symbol, "limit": limit}, signal=signal
        )
        try:
            bids = [(str(p), str(q)) for p, q in data["bids"]]
            asks = [(str(p), str(q)) for p, q in data["asks"]]
            return OrderBook(
                symbol=symbol,
                last_update_id=data["lastUpdateId"],
                bid_count=len(bids),
                ask_count=len(asks),
                bids=bids,
                asks=asks,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise _malformed("depth", e) from e

    async def ticker_24h(
        self, symbol: Optional[str] = None, signal: Optional[CancellationSignal] = None
    ) -> List[Ticker24h]:
        params = {"symbol": symbol} if symbol else None
        data = await self.transport.get_json(self._url("ticker/24hr"), params=params, signal=signal)
        rows: List[Dict[str, Any]] = data if isinstance(data, list) else [data]
        try:
            return [
                Ticker24h(
                    symbol=t["symbol"],
                    price_change_percent=t["priceChangePercent"],
                    last_price=t["lastPrice"],
                    volume=t["volume"],
                )
                for t in rows
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise _malformed("ticker/24hr", e) from e

    async def recent_trades(
        self, symbol: str, limit: int, signal: Optional[CancellationSignal] = None
    ) -> List[Trade]:
        data = await self.transport.get_json(
            self._url("trades"), params={"symbol": symbol, "limit": limit}, signal=signal
        )
        try:
            return [
                Trade(
                    id=t["id"],
                    price=t["price"],
                    qty=t["qty"],
                    quote_qty=t.get("quoteQty"),
                    time=t["time"],
                    is_buyer_maker=t["isBuyerMaker"],
                )
                for t in data
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise _malformed("trades", e) from e

    async def aggregate_trades(
        self, symbol: str, limit: int, signal: Optional[CancellationSignal] = None
    ) -> List[AggregateTrade]:
        data = await self.transport.get_json(
            self._url("aggTrades"), params={"symbol": symbol, "limit": limit}, signal=signal
        )
        try:
            return [
                AggregateTrade(
                    aggregate_trade_id=t["a"],
                    price=t["p"],
                    quantity=t["q"],
                    first_trade_id=t["f"],
                    last_trade_id=t["l"],
                    timestamp=t["T"],
                    is_buyer_maker=t["m"],
                )
                for t in data
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise _malformed("aggTrades", e) from e

    async def book_ticker(
        self, symbol: Optional[str] = None, signal: Optional[CancellationSignal] = None
    ) -> List[BookTicker]:
        params = {"symbol": symbol} if symbol else None
        data = await self.transport.get_json(self._url("ticker/bookTicker"), params=params, signal=signal)
        rows: List[Dict[str, Any]] = data if isinstance(data, list) else [data]
        try:
            return [
                BookTicker(
                    symbol=t["symbol"],
                    bid_price=t["bidPrice"],
                    bid_qty=t["bidQty"],
                    ask_price=t["askPrice"],
                    ask_qty=t["askQty"],
                )
                for t in rows
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise _malformed("ticker/bookTicker", e) from e

    async def average_price(
        self, symbol: str, signal: Optional[CancellationSignal] = None
    ) -> AveragePrice:
        data = await self.transport.get_json(
            self._url("avgPrice"), params={"symbol": symbol}, signal=signal
        )
        try:
            return AveragePrice(symbol=symbol, mins=data["mins"], price=data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise _malformed("avgPrice", e) from e
