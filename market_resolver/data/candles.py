"""
Market Resolver: Candle Normalizer
Maps raw provider OHLCV rows, which differ in field order, time units and
whether the close time is explicit, onto the canonical Candle shape.
"""
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import pandas as pd

from market_resolver.data.models import Candle, CandleInterval
from market_resolver.utils.helpers import epoch_ms_to_iso, finite_float
from market_resolver.utils.logger import get_logger

logger = get_logger("candles")


@dataclass(frozen=True)
class CandleRowLayout:
    """Positions of OHLCV fields inside a provider's array row."""
    open_time: int
    open: int
    high: int
    low: int
    close: int
    volume: int
    close_time: Optional[int] = None
    time_unit_ms: int = 1  # 1000 when the provider reports epoch seconds


# [openTime, open, high, low, close, volume, closeTime, ...], epoch ms
BINANCE_KLINE_LAYOUT = CandleRowLayout(
    open_time=0, open=1, high=2, low=3, close=4, volume=5, close_time=6
)

# [time, open, high, low, close, vwap, volume, count], epoch seconds
KRAKEN_OHLC_LAYOUT = CandleRowLayout(
    open_time=0, open=1, high=2, low=3, close=4, volume=6, time_unit_ms=1000
)


def _row_to_candle(row: Sequence[Any], layout: CandleRowLayout, interval: CandleInterval):
    if not isinstance(row, (list, tuple)):
        raise TypeError(f"candle row must be an array, got {type(row).__name__}")
    open_ms = finite_float(row[layout.open_time]) * layout.time_unit_ms
    if layout.close_time is not None:
        close_ms = finite_float(row[layout.close_time]) * layout.time_unit_ms
    else:
        close_ms = open_ms + interval.minutes * 60 * 1000
    candle = Candle(
        open_time=epoch_ms_to_iso(open_ms),
        close_time=epoch_ms_to_iso(close_ms),
        open=finite_float(row[layout.open]),
        high=finite_float(row[layout.high]),
        low=finite_float(row[layout.low]),
        close=finite_float(row[layout.close]),
        volume=finite_float(row[layout.volume]),
    )
    return open_ms, candle


def normalize_candles(
    rows: Sequence[Sequence[Any]],
    layout: CandleRowLayout,
    interval: CandleInterval,
    limit: Optional[int] = None,
) -> List[Candle]:
    """
    Convert raw rows to candles ordered oldest to newest.
    Malformed rows are skipped; when ``limit`` is given only the most recent
    ``limit`` candles are kept.
    """
    parsed = []
    skipped = 0
    for row in rows:
        try:
            parsed.append(_row_to_candle(row, layout, interval))
        except (ValueError, TypeError, IndexError, KeyError, OverflowError, OSError):
            skipped += 1

    if skipped:
        logger.warning("candle_rows_skipped", skipped=skipped, total=len(rows))

    parsed.sort(key=lambda item: item[0])
    candles = [candle for _, candle in parsed]
    if limit is not None and limit >= 0:
        candles = candles[-limit:] if limit else []
    return candles


def candles_to_dataframe(candles: List[Candle]) -> pd.DataFrame:
    """Convert a list of candles to a DataFrame indexed by open time."""
    columns = ["open", "high", "low", "close", "volume", "close_time"]
    if not candles:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame([c.model_dump() for c in candles])
    df["open_time"] = pd.to_datetime(df["open_time"], utc=True)
    df["close_time"] = pd.to_datetime(df["close_time"], utc=True)
    df.set_index("open_time", inplace=True)
    df.sort_index(inplace=True)
    return df[columns]
