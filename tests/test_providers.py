"""Tests for the yfinance-backed data providers."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from conftest import FakeFundamentalsProvider, FakePriceProvider, FakeSentimentProvider, make_ohlcv
from stock_advisor.data.cache import SnapshotCache
from stock_advisor.data.providers import (
    FundamentalsProvider,
    PriceProvider,
    SentimentProvider,
    YFinanceFundamentalsProvider,
    YFinancePriceProvider,
    YFinanceSentimentProvider,
    financials_from_yfinance,
)

YEARS = ["2024-12-31", "2023-12-31", "2022-12-31", "2021-12-31"]


@pytest.fixture
def cache(tmp_path) -> SnapshotCache:
    return SnapshotCache(cache_dir=str(tmp_path / "snapshots"), ttl=60)


@pytest.fixture
def info() -> dict:
    return {
        "longName": "Acme Corp",
        "sector": "Technology",
        "quoteType": "EQUITY",
        "currentPrice": 42.5,
        "trailingPE": 20.0,
        "debtToEquity": 150.0,
        "dividendYield": 0.5,
        "returnOnEquity": 0.2,
        "totalRevenue": 133.1,
    }


@pytest.fixture
def income_statement() -> pd.DataFrame:
    """Line items as rows, newest period first, like yfinance."""
    return pd.DataFrame(
        [
            [133.1, 121.0, 110.0, 100.0],
            [20.0, 15.0, 12.0, 10.0],
            [30.0, 25.0, 20.0, 18.0],
            [-3.0, -3.0, -2.5, -2.0],
        ],
        index=["Total Revenue", "Net Income", "EBIT", "Interest Expense"],
        columns=YEARS,
    )


@pytest.fixture
def balance_sheet() -> pd.DataFrame:
    return pd.DataFrame(
        [
            [500.0, 450.0, 400.0, 380.0],
            [300.0, 280.0, 260.0, 250.0],
            [100.0, 100.0, 100.0, 100.0],
            [80.0, 60.0, 40.0, 20.0],
        ],
        index=["Total Assets", "Total Liabilities Net Minority Interest", "Stockholders Equity", "Retained Earnings"],
        columns=YEARS,
    )


class TestFinancialsFromYFinance:
    """Tests for financials_from_yfinance."""

    def test_info_units(self, info):
        fin = financials_from_yfinance("ACME", info)
        assert fin.name == "Acme Corp"
        assert fin.pe_ratio == 20.0
        assert fin.debt_to_equity == 1.5
        assert fin.dividend_yield == pytest.approx(0.005)
        assert fin.return_on_equity == 0.2

    def test_statements(self, info, balance_sheet, income_statement):
        fin = financials_from_yfinance("ACME", info, balance_sheet, income_statement)

        assert fin.revenue_history == (100.0, 110.0, 121.0, 133.1)
        assert fin.profit_history == (10.0, 12.0, 15.0, 20.0)
        assert fin.roe_history == pytest.approx((0.10, 0.12, 0.15, 0.20))
        assert fin.revenue_growth_3y == pytest.approx(0.1)
        assert fin.revenue_growth_1y == pytest.approx(0.1)
        assert fin.interest_coverage == pytest.approx(10.0)
        assert fin.total_assets == 500.0
        assert fin.retained_earnings == 80.0
        assert fin.ebit == 30.0

    def test_gaps_pair_by_fiscal_year(self, info):
        """A blank cell in one line item never shifts another item's years."""
        nan = float("nan")
        income = pd.DataFrame(
            [[133.1, nan, 110.0, 100.0], [10.0, 20.0, nan, 40.0]],
            index=["Total Revenue", "Net Income"],
            columns=YEARS,
        )
        balance = pd.DataFrame(
            [[100.0, nan, 100.0, 100.0]],
            index=["Stockholders Equity"],
            columns=YEARS,
        )
        fin = financials_from_yfinance("ACME", info, balance, income)

        # 2021 and 2024 are the only years with both net income and equity
        assert fin.roe_history == pytest.approx((0.4, 0.1))
        assert fin.profit_history == (40.0, 20.0, 10.0)
        # 2021 -> 2024 is three fiscal years even with 2023 missing
        assert fin.revenue_growth_3y == pytest.approx(0.1)
        assert fin.revenue_growth_1y is None
        assert fin.net_margin_history == pytest.approx((0.4, 10.0 / 133.1))

    def test_margin_and_return_histories(self, info, balance_sheet):
        income = pd.DataFrame(
            [
                [200.0, 160.0, 125.0, 100.0],
                [120.0, 90.0, 70.0, 50.0],
                [50.0, 36.0, 25.0, 20.0],
                [20.0, 16.0, 10.0, 8.0],
                [0.2, 0.2, 0.2, 0.2],
            ],
            index=["Total Revenue", "Cost Of Revenue", "EBIT", "Net Income", "Tax Rate For Calcs"],
            columns=YEARS,
        )
        balance = pd.concat([
            balance_sheet,
            pd.DataFrame([[400.0, 400.0, 400.0, 400.0]], index=["Invested Capital"], columns=YEARS),
        ])
        fin = financials_from_yfinance("ACME", info, balance, income)

        assert fin.gross_margin_history == pytest.approx((0.5, 0.44, 0.4375, 0.4))
        assert fin.operating_margin_history == pytest.approx((0.2, 0.2, 0.225, 0.25))
        assert fin.net_margin_history == pytest.approx((0.08, 0.08, 0.1, 0.1))
        assert fin.roa_history == pytest.approx((8 / 380, 10 / 400, 16 / 450, 20 / 500))
        assert fin.roic_history == pytest.approx((0.04, 0.05, 0.072, 0.1))

    def test_missing_statements(self, info):
        fin = financials_from_yfinance("ACME", info, pd.DataFrame(), None)
        assert fin.revenue_history == ()
        assert fin.revenue_growth_3y is None
        assert fin.total_revenue == 133.1


class TestProtocols:
    """Real and fake providers satisfy the provider protocols."""

    def test_yfinance_providers(self, cache):
        assert isinstance(YFinancePriceProvider(cache), PriceProvider)
        assert isinstance(YFinanceFundamentalsProvider(cache), FundamentalsProvider)
        assert isinstance(YFinanceSentimentProvider(), SentimentProvider)

    def test_fakes(self):
        assert isinstance(FakePriceProvider({}), PriceProvider)
        assert isinstance(FakeFundamentalsProvider({}), FundamentalsProvider)
        assert isinstance(FakeSentimentProvider(), SentimentProvider)


class TestPriceProvider:
    """Tests for YFinancePriceProvider."""

    def test_history_reads_through_cache(self, cache):
        df = make_ohlcv([10.0, 11.0, 12.0])
        provider = YFinancePriceProvider(cache)

        with patch("stock_advisor.data.providers.fetch_history", new=AsyncMock(return_value=df)) as fetch:
            first = asyncio.run(provider.get_historical_series("AAPL", "1mo"))
            second = asyncio.run(provider.get_historical_series("AAPL", "1mo"))

        assert fetch.await_count == 1
        assert list(first["close"]) == list(second["close"]) == [10.0, 11.0, 12.0]

    def test_current_price_falls_back_to_current_price(self, cache, info):
        provider = YFinancePriceProvider(cache)
        with patch("stock_advisor.data.providers.fetch_info", new=AsyncMock(return_value=info)):
            assert asyncio.run(provider.get_current_price("ACME")) == 42.5

    def test_no_price(self, cache):
        provider = YFinancePriceProvider(cache)
        with patch("stock_advisor.data.providers.fetch_info", new=AsyncMock(return_value={"quoteType": "ETF"})):
            with pytest.raises(ValueError, match="No current price"):
                asyncio.run(provider.get_current_price("ACME"))


class TestFundamentalsProvider:
    """Tests for YFinanceFundamentalsProvider."""

    def test_combines_info_and_statements(self, cache, info, balance_sheet, income_statement):
        statements = {"balance_sheet": balance_sheet, "income_statement": income_statement}
        provider = YFinanceFundamentalsProvider(cache)

        with patch("stock_advisor.data.providers.fetch_info", new=AsyncMock(return_value=info)), patch(
            "stock_advisor.data.providers.fetch_statements", new=AsyncMock(return_value=statements)
        ):
            fin = asyncio.run(provider.get_company_financials("ACME"))

        assert fin.sector == "Technology"
        assert fin.revenue_history == (100.0, 110.0, 121.0, 133.1)

    def test_statement_failure_keeps_info(self, cache, info, caplog):
        provider = YFinanceFundamentalsProvider(cache)

        with patch("stock_advisor.data.providers.fetch_info", new=AsyncMock(return_value=info)), patch(
            "stock_advisor.data.providers.fetch_statements",
            new=AsyncMock(side_effect=ValueError("statements missing")),
        ):
            with caplog.at_level(logging.WARNING):
                fin = asyncio.run(provider.get_company_financials("ACME"))

        assert fin.pe_ratio == 20.0
        assert fin.revenue_history == ()
        assert "Statements unavailable for ACME" in caplog.text


class TestSentimentProvider:
    """Tests for YFinanceSentimentProvider."""

    def test_scores_recent_news(self):
        published = int((datetime.now(timezone.utc) - timedelta(hours=6)).timestamp())
        news = [
            {"title": "Acme beats estimates, raises outlook", "providerPublishTime": published},
            {"title": "Acme shares surge to record", "providerPublishTime": published},
        ]
        with patch("stock_advisor.data.providers.fetch_news", new=AsyncMock(return_value=news)):
            reading = asyncio.run(YFinanceSentimentProvider().get_sentiment("ACME"))

        assert reading.label == "positive"
        assert reading.article_count == 2
        assert reading.score == 100.0

    def test_no_news(self):
        with patch("stock_advisor.data.providers.fetch_news", new=AsyncMock(return_value=[])):
            reading = asyncio.run(YFinanceSentimentProvider().get_sentiment("ACME"))
        assert reading.label == "neutral"
        assert reading.score == 50.0
