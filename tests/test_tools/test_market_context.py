"""Tests for the market context attached to deep analyses."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from conftest import FakeFundamentalsProvider, FakePriceProvider, FakeSentimentProvider
from stock_advisor.tools.recommendations import RecommendationEngine, get_market_state


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestSessions:
    """Session boundaries on the New York clock."""

    @pytest.mark.parametrize(
        "now, expected",
        [
            (_utc(2024, 1, 8, 8, 0), "closed"),  # Mon 03:00 ET
            (_utc(2024, 1, 8, 12, 0), "pre_market"),  # Mon 07:00 ET
            (_utc(2024, 1, 8, 14, 29), "pre_market"),  # Mon 09:29 ET
            (_utc(2024, 1, 8, 14, 30), "regular"),  # Mon 09:30 ET
            (_utc(2024, 1, 8, 21, 0), "after_hours"),  # Mon 16:00 ET
            (_utc(2024, 1, 9, 1, 0), "closed"),  # Mon 20:00 ET
            (_utc(2024, 1, 6, 15, 0), "closed"),  # Sat 10:00 ET
            (_utc(2024, 1, 8, 1, 0), "closed"),  # Sun 20:00 ET, already Monday in UTC
            (_utc(2024, 7, 8, 13, 30), "regular"),  # Mon 09:30 EDT
        ],
    )
    def test_state(self, now: datetime, expected: str) -> None:
        assert get_market_state(now)["state"] == expected

    def test_reports_exchange_local_time(self) -> None:
        state = get_market_state(_utc(2024, 1, 8, 15, 0))
        assert state["checked_at"] == "2024-01-08T10:00:00-05:00"
        assert state["method"] == "clock_only_no_holidays"


class TestDeepAnalysisContext:
    """Market state as reported by deep_analyze."""

    @pytest.fixture
    def engine(self, uptrend_df, strong_financials) -> RecommendationEngine:
        return RecommendationEngine(
            FakePriceProvider({"GOOD": uptrend_df}),
            FakeFundamentalsProvider({"GOOD": strong_financials}),
            FakeSentimentProvider(),
            universe=("GOOD",),
        )

    @pytest.mark.parametrize(
        "now, expected",
        [
            (_utc(2024, 1, 8, 15, 0), "regular"),
            (_utc(2024, 1, 6, 15, 0), "closed"),
        ],
    )
    def test_uses_current_clock(self, engine, now: datetime, expected: str) -> None:
        with patch("stock_advisor.tools.recommendations.datetime", wraps=datetime) as clock:
            clock.now.return_value = now
            analysis = asyncio.run(engine.deep_analyze("GOOD", "weekly"))

        context = analysis.market_context
        assert context["market_state"]["state"] == expected
        assert context["sector"] == "Technology"
        assert context["price_trend"] == analysis.record.technical.trend
