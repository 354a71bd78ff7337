"""Tests for sector resolution and percentile bucketing."""

import pytest

from stock_advisor.engines.sector import (
    assess_metric,
    get_benchmark,
    ranking_tier,
    resolve_sector,
    sector_percentile,
)


class TestResolveSector:
    """Tests for resolve_sector."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Technology", "Technology"),
            ("Financial Services", "Banking"),
            ("Consumer Defensive", "Consumer Goods"),
            ("Communication Services", "Telecommunications"),
            ("Basic Materials", "Materials"),
            ("Healthcare", "Healthcare"),
        ],
    )
    def test_known(self, raw, expected):
        assert resolve_sector(raw) == expected

    def test_unknown_defaults(self):
        assert resolve_sector("Shipping") == "Technology"
        assert resolve_sector(None) == "Technology"

    def test_benchmark_fallback(self):
        assert get_benchmark("Nowhere") == get_benchmark("Technology")


class TestPercentiles:
    """Tests for benchmark-relative buckets."""

    def test_lower_better_monotonic(self):
        """Higher PE never earns a higher percentile."""
        values = [5, 10, 18, 20, 25, 30, 40, 100]
        percentiles = [sector_percentile(v, 25, "lower_better") for v in values]
        assert percentiles == sorted(percentiles, reverse=True)
        assert percentiles[0] == 90
        assert percentiles[-1] == 10

    def test_higher_better_monotonic(self):
        values = [1, 5, 10, 15, 18, 25, 40]
        percentiles = [sector_percentile(v, 18, "higher_better") for v in values]
        assert percentiles == sorted(percentiles)
        assert percentiles[-1] == 90

    def test_non_positive_lower_better_unranked(self):
        assert sector_percentile(-8.0, 25, "lower_better") is None
        assert assess_metric(0.0, 0.3, "lower_better") is None

    def test_missing_value(self):
        assert sector_percentile(None, 25, "lower_better") is None

    def test_at_benchmark_is_average(self):
        assert assess_metric(25, 25, "lower_better") == "average"
        assert assess_metric(18, 18, "higher_better") == "average"


class TestRankingTier:
    """Tests for ranking_tier."""

    @pytest.mark.parametrize(
        "percentile,tier",
        [(90, "Top Tier"), (75, "Above Average"), (50, "Average"), (25, "Below Average"), (10, "Bottom Tier")],
    )
    def test_tiers(self, percentile, tier):
        assert ranking_tier(percentile) == tier

    def test_unknown(self):
        assert ranking_tier(None) == "Unknown"
