"""
Market Resolver: DexScreener Data Adapter
On-chain pair lookups. Not a spot price provider, so it stands outside the
resolver's fallback and consensus rotation.
"""
from typing import Any, Dict, List, Optional

from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.errors import PermanentProviderError
from market_resolver.data.models import DexFeed, DexPair
from market_resolver.data.transport import Transport
from market_resolver.config.settings import get_settings


def _pair_from_raw(p: Dict[str, Any]) -> DexPair:
    return DexPair(
        chain_id=p["chainId"],
        dex_id=p["dexId"],
        pair_address=p["pairAddress"],
        base_symbol=(p.get("baseToken") or {}).get("symbol") or "UNKNOWN",
        quote_symbol=(p.get("quoteToken") or {}).get("symbol") or "UNKNOWN",
        price_usd=p.get("priceUsd"),
        volume_24h=(p.get("volume") or {}).get("h24"),
        liquidity_usd=(p.get("liquidity") or {}).get("usd"),
        fdv=p.get("fdv"),
        market_cap=p.get("marketCap"),
        url=p.get("url"),
    )


def _pairs(raw: Any) -> List[DexPair]:
    try:
        return [_pair_from_raw(p) for p in raw or []]
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise PermanentProviderError(f"DexScreener pair payload malformed: {e}") from e


class DexScreenerAdapter:
    """DexScreener public API adapter."""

    def __init__(self, transport: Transport, base_url: Optional[str] = None):
        self.transport = transport
        self.base_url = (base_url or get_settings().providers.dexscreener_base_url).rstrip("/")

    async def search(
        self, query: str, limit: int, signal: Optional[CancellationSignal] = None
    ) -> List[DexPair]:
        data = await self.transport.get_json(
            f"{self.base_url}/latest/dex/search", params={"q": query}, signal=signal
        )
        return _pairs(data.get("pairs") if isinstance(data, dict) else None)[:limit]

    async def pair(
        self, chain_id: str, pair_address: str, signal: Optional[CancellationSignal] = None
    ) -> List[DexPair]:
        data = await self.transport.get_json(
            f"{self.base_url}/latest/dex/pairs/{chain_id}/{pair_address}", signal=signal
        )
        return _pairs(data.get("pairs") if isinstance(data, dict) else None)

    async def token_pairs(
        self, token_address: str, signal: Optional[CancellationSignal] = None
    ) -> List[DexPair]:
        data = await self.transport.get_json(
            f"{self.base_url}/token-pairs/v1/{token_address}", signal=signal
        )
        # The token-pairs endpoint answers with a bare list; older deployments wrap it
        raw = data.get("pairs") if isinstance(data, dict) else data
        return _pairs(raw)

    async def feed(
        self, path: str, limit: int, signal: Optional[CancellationSignal] = None
    ) -> DexFeed:
        data = await self.transport.get_json(f"{self.base_url}/{path}", signal=signal)
        if not isinstance(data, list):
            raise PermanentProviderError(f"DexScreener {path} response is not a list")
        items = data[:limit]
        return DexFeed(count=len(items), items=items)

    async def token_profiles(self, limit: int, signal: Optional[CancellationSignal] = None) -> DexFeed:
        return await self.feed("token-profiles/latest/v1", limit, signal)

    async def boosts(
        self, mode: str, limit: int, signal: Optional[CancellationSignal] = None
    ) -> DexFeed:
        path = "token-boosts/top/v1" if mode == "top" else "token-boosts/latest/v1"
        return await self.feed(path, limit, signal)
