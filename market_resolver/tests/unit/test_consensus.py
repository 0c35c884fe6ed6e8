"""
Market Resolver: Unit Tests for the Consensus Calculator
"""
import math

import pytest

from market_resolver.data.consensus import compute_consensus
from market_resolver.data.errors import InputValidationError


class TestConsensus:
    def test_odd_count(self):
        summary = compute_consensus([100, 110, 105])
        assert summary.median == 105
        assert summary.min == 100
        assert summary.max == 110
        assert summary.spread_percent == pytest.approx(9.5238, rel=1e-4)

    def test_even_count_averages_middle_pair(self):
        summary = compute_consensus([10, 40, 20, 30])
        assert summary.median == 25
        assert summary.min == 10
        assert summary.max == 40
        assert summary.spread_percent == pytest.approx(120.0)

    def test_single_price_has_zero_spread(self):
        summary = compute_consensus([42000.5])
        assert summary.median == summary.min == summary.max == 42000.5
        assert summary.spread_percent == 0

    def test_all_zero_prices(self):
        summary = compute_consensus([0, 0, 0])
        assert summary.median == 0
        assert summary.spread_percent == 0
        assert math.isfinite(summary.spread_percent)

    def test_zero_median_with_nonzero_range(self):
        summary = compute_consensus([-1, 0, 1])
        assert summary.median == 0
        assert summary.spread_percent == 0

    def test_input_order_irrelevant(self):
        assert compute_consensus([3, 1, 2]) == compute_consensus([1, 2, 3])

    def test_empty_rejected(self):
        with pytest.raises(InputValidationError):
            compute_consensus([])

    def test_empty_rejection_is_a_value_error(self):
        with pytest.raises(ValueError):
            compute_consensus([])
