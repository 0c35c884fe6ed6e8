"""
Market Resolver: Consensus Calculator
Simple order statistics over quotes for the same pair.
"""
from typing import Sequence

from market_resolver.data.errors import InputValidationError
from market_resolver.data.models import ConsensusSummary


def compute_consensus(prices: Sequence[float]) -> ConsensusSummary:
    """Median, min, max and spread (as a percentage of the median)."""
    if not prices:
        raise InputValidationError("consensus requires at least one price")

    ordered = sorted(float(p) for p in prices)
    n = len(ordered)
    mid = n // 2
    if n % 2 == 1:
        median = ordered[mid]
    else:
        median = (ordered[mid - 1] + ordered[mid]) / 2

    low, high = ordered[0], ordered[-1]
    spread = 0.0 if median == 0 else (high - low) / median * 100

    return ConsensusSummary(median=median, min=low, max=high, spread_percent=spread)
