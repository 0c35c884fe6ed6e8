"""
Market Resolver: Symbol Normalization and Provider Aliasing
Maps a canonical ticker to the spellings each provider recognizes and builds
the ordered list of pair identifiers to probe.
"""
import re
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from market_resolver.data.models import PairCandidate, ProviderId
from market_resolver.utils.helpers import ordered_unique

_NON_ALPHANUMERIC = re.compile(r"[^A-Z0-9]")

AliasTable = Mapping[str, Tuple[str, ...]]


def normalize_symbol(ticker: str) -> str:
    """Uppercase and drop everything outside [A-Z0-9]: ' btc-usd ' -> 'BTCUSD'."""
    return _NON_ALPHANUMERIC.sub("", ticker.strip().upper())


# Kraken still serves legacy X/Z-prefixed codes for older assets and fiat,
# plus renamed tokens under both spellings.
_KRAKEN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "BTC": ("XBT", "BTC"),
    "DOGE": ("XDG", "DOGE"),
    "MATIC": ("MATIC", "POL"),
    "POL": ("POL", "MATIC"),
    "RENDER": ("RENDER", "RNDR"),
    "RNDR": ("RNDR", "RENDER"),
    "USD": ("USD", "ZUSD"),
    "EUR": ("EUR", "ZEUR"),
    "GBP": ("GBP", "ZGBP"),
    "JPY": ("JPY", "ZJPY"),
    "CHF": ("CHF", "ZCHF"),
    "AUD": ("AUD", "ZAUD"),
    "CAD": ("CAD", "ZCAD"),
}


def _freeze(table: Dict[str, Tuple[str, ...]]) -> AliasTable:
    for asset, spellings in table.items():
        if normalize_symbol(asset) != asset:
            raise ValueError(f"alias table key {asset!r} is not normalized")
        if asset not in spellings:
            raise ValueError(f"alias table entry {asset!r} must list its canonical spelling")
        for spelling in spellings:
            if not spelling or normalize_symbol(spelling) != spelling:
                raise ValueError(f"alias {spelling!r} for {asset!r} is not normalized")
    return MappingProxyType(dict(table))


ALIAS_TABLES: Mapping[ProviderId, AliasTable] = MappingProxyType({
    ProviderId.KRAKEN: _freeze(_KRAKEN_ALIASES),
})


def aliases_for(provider: ProviderId, asset: str) -> Tuple[str, ...]:
    """Ordered spellings of ``asset`` on ``provider``; unknown assets map to themselves."""
    canonical = normalize_symbol(asset)
    table = ALIAS_TABLES.get(provider)
    if table is None:
        return (canonical,)
    return table.get(canonical, (canonical,))


def pair_candidates(provider: ProviderId, base: str, quote: str) -> List[PairCandidate]:
    """Base aliases outer, quote aliases inner, first occurrence wins."""
    symbols = ordered_unique(
        f"{b}{q}"
        for b in aliases_for(provider, base)
        for q in aliases_for(provider, quote)
    )
    return [
        PairCandidate(symbol=symbol, provider=provider, rank=rank)
        for rank, symbol in enumerate(symbols)
    ]
