"""
Market Resolver: Common Utility Functions
"""
import math
from datetime import datetime, timezone
from typing import Any, Hashable, Iterable, List, TypeVar

T = TypeVar("T", bound=Hashable)


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def epoch_ms_to_iso(epoch_ms: float) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC string with a Z suffix."""
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ordered_unique(items: Iterable[T]) -> List[T]:
    """Drop duplicates, keeping the first occurrence of each item."""
    return list(dict.fromkeys(items))


def clamp(value: int, min_val: int, max_val: int) -> int:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def finite_float(value: Any) -> float:
    """Parse a numeric or decimal-string field; raises ValueError on junk, NaN or infinity."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    parsed = float(value)
    if not math.isfinite(parsed):
        raise ValueError(f"not a finite number: {value!r}")
    return parsed
