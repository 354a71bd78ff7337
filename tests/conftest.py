"""Pytest configuration and fixtures."""

import asyncio

import numpy as np
import pandas as pd
import pytest

from stock_advisor.models import CompanyFinancials, SentimentReading


def make_ohlcv(closes, volume: float = 1_000_000.0) -> pd.DataFrame:
    """Standardized OHLCV frame around a close series (high/low +/-1%)."""
    closes = pd.Series(closes, dtype=float)
    return pd.DataFrame(
        {
            "date": pd.date_range("2024-01-01", periods=len(closes), freq="D").strftime("%Y-%m-%d"),
            "open": closes.shift(1).fillna(closes.iloc[0]).to_numpy(),
            "high": (closes * 1.01).to_numpy(),
            "low": (closes * 0.99).to_numpy(),
            "close": closes.to_numpy(),
            "volume": [volume] * len(closes),
        }
    )


def trending_closes(n: int = 250, start: float = 100.0, step: float = 0.5) -> list[float]:
    """Linear trend with a small oscillation so not every bar moves the same way."""
    i = np.arange(n)
    return list(start + step * i + np.sin(i))


@pytest.fixture
def sample_ohlcv_df() -> pd.DataFrame:
    """Sample OHLCV DataFrame for testing."""
    return pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")


@pytest.fixture
def sample_ohlcv_df_with_adj_close() -> pd.DataFrame:
    """Sample OHLCV DataFrame with Adj Close column."""
    df = pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Adj Close": [100.0, 101.5, 101.0, 101.5, 103.5, 103.0, 104.0, 105.5, 105.0, 105.5],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")
    return df


@pytest.fixture
def sample_price_series() -> pd.Series:
    """Sample price series for indicator testing."""
    return pd.Series(
        [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5,
         107.0, 108.0, 107.5, 109.0, 110.0, 109.5, 111.0, 112.0, 111.5, 113.0,
         114.0, 113.5, 115.0, 116.0, 115.5, 117.0, 118.0, 117.5, 119.0, 120.0]
    )


@pytest.fixture
def sample_returns_series() -> pd.Series:
    """Sample returns series for indicator testing."""
    prices = pd.Series(
        [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5,
         107.0, 108.0, 107.5, 109.0, 110.0, 109.5, 111.0, 112.0, 111.5, 113.0,
         114.0, 113.5, 115.0, 116.0, 115.5, 117.0, 118.0, 117.5, 119.0, 120.0]
    )
    return prices.pct_change().dropna()


@pytest.fixture
def uptrend_df() -> pd.DataFrame:
    """250 bars of a rising market."""
    return make_ohlcv(trending_closes())


@pytest.fixture
def downtrend_df() -> pd.DataFrame:
    """250 bars of a falling market."""
    return make_ohlcv(trending_closes(start=250.0, step=-0.5))


@pytest.fixture
def random_walk_df() -> pd.DataFrame:
    """Seeded random walk, 120 bars."""
    rng = np.random.default_rng(42)
    closes = 100 * np.exp(np.cumsum(rng.normal(0, 0.02, 120)))
    return make_ohlcv(closes)


@pytest.fixture
def strong_financials() -> CompanyFinancials:
    """A profitable, growing, lightly levered technology company."""
    return CompanyFinancials(
        symbol="GOOD",
        name="Good Corp",
        sector="Technology",
        pe_ratio=18.0,
        forward_pe=16.0,
        peg_ratio=0.9,
        price_to_book=3.0,
        price_to_sales=2.0,
        profit_margin=0.28,
        operating_margin=0.32,
        gross_margin=0.60,
        return_on_equity=0.30,
        return_on_assets=0.15,
        dividend_yield=0.01,
        current_ratio=2.0,
        quick_ratio=1.6,
        cash_ratio=0.5,
        debt_to_equity=0.2,
        debt_ratio=0.25,
        interest_coverage=25.0,
        asset_turnover=0.9,
        inventory_turnover=10.0,
        receivables_turnover=8.0,
        revenue_growth_1y=0.25,
        revenue_growth_3y=0.18,
        earnings_growth_1y=0.30,
        earnings_growth_3y=0.20,
        total_assets=1000.0,
        total_liabilities=250.0,
        working_capital=200.0,
        retained_earnings=400.0,
        ebit=200.0,
        total_revenue=900.0,
        market_cap=5000.0,
        revenue_history=(500.0, 600.0, 720.0, 900.0),
        profit_history=(100.0, 130.0, 170.0, 230.0),
        roe_history=(0.20, 0.24, 0.27, 0.30),
    )


@pytest.fixture
def weak_financials() -> CompanyFinancials:
    """An expensive, shrinking, highly levered company."""
    return CompanyFinancials(
        symbol="WEAK",
        sector="Industrials",
        pe_ratio=45.0,
        price_to_book=6.0,
        price_to_sales=5.0,
        profit_margin=0.02,
        return_on_equity=0.04,
        current_ratio=0.8,
        debt_to_equity=2.5,
        interest_coverage=1.2,
        revenue_growth_1y=-0.10,
        revenue_growth_3y=0.02,
        earnings_growth_1y=-0.30,
        earnings_growth_3y=0.05,
        revenue_history=(1000.0, 950.0, 900.0, 800.0),
        profit_history=(100.0, 70.0, 40.0, 20.0),
        roe_history=(0.12, 0.09, 0.06, 0.04),
    )


class FakePriceProvider:
    """In-memory price provider; ``fail`` symbols raise, ``delay`` slows every call."""

    def __init__(self, histories, prices=None, fail=(), delay: float = 0.0):
        self.histories = histories
        self.prices = prices or {}
        self.fail = set(fail)
        self.delay = delay
        self.history_calls: list[tuple[str, str]] = []

    async def _pause(self, symbol: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol in self.fail:
            raise ConnectionError(f"price feed down for {symbol}")

    async def get_current_price(self, symbol: str) -> float:
        await self._pause(symbol)
        if symbol in self.prices:
            return self.prices[symbol]
        if symbol not in self.histories:
            raise ValueError(f"No current price available for {symbol}")
        return float(self.histories[symbol]["close"].iloc[-1])

    async def get_historical_series(self, symbol: str, period: str) -> pd.DataFrame:
        self.history_calls.append((symbol, period))
        await self._pause(symbol)
        if symbol not in self.histories:
            raise ValueError(f"No data returned for {symbol}")
        return self.histories[symbol]


class FakeFundamentalsProvider:
    def __init__(self, financials, fail=(), delay: float = 0.0):
        self.financials = financials
        self.fail = set(fail)
        self.delay = delay
        self.calls: list[str] = []

    async def get_company_financials(self, symbol: str) -> CompanyFinancials:
        self.calls.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol in self.fail:
            raise RuntimeError(f"fundamentals unavailable for {symbol}")
        if symbol not in self.financials:
            raise ValueError(f"Invalid symbol: {symbol}")
        return self.financials[symbol]


class FakeSentimentProvider:
    def __init__(self, readings=None, fail=(), delay: float = 0.0):
        self.readings = readings or {}
        self.fail = set(fail)
        self.delay = delay
        self.calls: list[str] = []

    async def get_sentiment(self, symbol: str) -> SentimentReading:
        self.calls.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol in self.fail:
            raise ConnectionError(f"news feed down for {symbol}")
        return self.readings.get(
            symbol, SentimentReading(label="neutral", score=50.0, article_count=0)
        )
