"""
Market Resolver: Kraken Data Adapter
Alias-probing provider. Kraken's pair namespace mixes legacy X/Z-prefixed
codes with modern ones, so each candidate pair is tried until one answers.
Unknown pairs come back as HTTP 200 with a populated ``error`` list.
"""
from typing import Any, Dict, List, Optional

from market_resolver.data.adapters.base import BaseProviderAdapter
from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.candles import KRAKEN_OHLC_LAYOUT, normalize_candles
from market_resolver.data.errors import PermanentProviderError
from market_resolver.data.models import Candle, CandleInterval, PairCandidate, ProviderId, Quote
from market_resolver.data.transport import Transport
from market_resolver.config.settings import get_settings
from market_resolver.utils.helpers import finite_float, utc_now
from market_resolver.utils.logger import get_logger

logger = get_logger("kraken_adapter")

# Kraken OHLC intervals are expressed in minutes
KRAKEN_INTERVALS: Dict[CandleInterval, int] = {interval: interval.minutes for interval in CandleInterval}


def _result(data: Any) -> Dict[str, Any]:
    """Unwrap Kraken's {error: [...], result: {...}} envelope."""
    if not isinstance(data, dict):
        raise PermanentProviderError("Kraken response is not an object")
    errors = data.get("error") or []
    if errors:
        raise PermanentProviderError("; ".join(str(e) for e in errors))
    result = data.get("result")
    if not isinstance(result, dict) or not result:
        raise PermanentProviderError("Kraken response missing result")
    return result


class KrakenAdapter(BaseProviderAdapter):
    """Kraken public REST adapter."""

    provider = ProviderId.KRAKEN

    def __init__(self, transport: Transport, base_url: Optional[str] = None):
        super().__init__(transport, base_url or get_settings().providers.kraken_base_url)

    async def fetch_spot_price(
        self, base: str, quote: str, signal: Optional[CancellationSignal] = None
    ) -> Quote:
        async def fetch_one(candidate: PairCandidate) -> Quote:
            data = await self.transport.get_json(
                f"{self.base_url}/0/public/Ticker", params={"pair": candidate.symbol}, signal=signal
            )
            first = next(iter(_result(data).values()))
            try:
                price = finite_float(first["c"][0])
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise PermanentProviderError(f"Kraken close price malformed: {e}") from e
            if candidate.rank > 0:
                logger.debug("kraken_alias_resolved", pair=candidate.symbol, base=base, quote=quote)
            return Quote(
                provider=self.provider,
                base_asset=base,
                quote_asset=quote,
                symbol=candidate.symbol,
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
            data = await self.transport.get_json(
                f"{self.base_url}/0/public/OHLC",
                params={"pair": candidate.symbol, "interval": KRAKEN_INTERVALS[interval]},
                signal=signal,
            )
            result = _result(data)
            key = next((k for k in result if k != "last"), None)
            if key is None or not isinstance(result[key], list):
                raise PermanentProviderError("Kraken OHLC response missing result key")
            return normalize_candles(result[key], KRAKEN_OHLC_LAYOUT, interval, limit)

        return await self.probe(self.candidates(base, quote), fetch_one)
