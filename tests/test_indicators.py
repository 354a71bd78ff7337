"""Tests for technical indicators."""

import math

import numpy as np
import pandas as pd
import pytest

from stock_advisor.utils.indicators import (
    calculate_atr,
    calculate_bollinger_bands,
    calculate_cci,
    calculate_ema,
    calculate_macd,
    calculate_max_drawdown,
    calculate_obv,
    calculate_returns,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
    calculate_volatility,
    calculate_williams_r,
    find_pivots,
)


class TestSMA:
    """Tests for SMA calculation."""

    def test_sma_basic(self, sample_price_series: pd.Series) -> None:
        """Test basic SMA calculation."""
        sma = calculate_sma(sample_price_series, 5)

        # SMA should have NaN for first (period-1) values
        assert sma.iloc[:4].isna().all()

        # Check a known value
        # SMA of first 5 values: (100 + 101 + 102 + 101.5 + 103) / 5 = 101.5
        assert abs(sma.iloc[4] - 101.5) < 0.01

    def test_sma_insufficient_data(self) -> None:
        """Test SMA with insufficient data."""
        prices = pd.Series([100, 101, 102])
        sma = calculate_sma(prices, 5)

        # All values should be NaN
        assert sma.isna().all()


class TestEMA:
    """Tests for EMA calculation."""

    def test_ema_basic(self, sample_price_series: pd.Series) -> None:
        """Test basic EMA calculation."""
        ema = calculate_ema(sample_price_series, 5)

        # EMA should have values starting from period
        assert not pd.isna(ema.iloc[4])

        # EMA should be smoother than SMA
        sma = calculate_sma(sample_price_series, 5)
        assert ema.std() <= sma.std() * 1.1  # Allow small tolerance


class TestRSI:
    """Tests for RSI calculation."""

    def test_rsi_range(self, sample_price_series: pd.Series) -> None:
        """Test RSI stays in 0-100 range."""
        rsi = calculate_rsi(sample_price_series, 14)

        valid_rsi = rsi.dropna()
        assert (valid_rsi >= 0).all()
        assert (valid_rsi <= 100).all()

    def test_rsi_uptrend(self) -> None:
        """Test RSI in strong uptrend."""
        # Consistently rising prices
        prices = pd.Series([100 + i for i in range(30)])
        rsi = calculate_rsi(prices, 14)

        # RSI should be high (overbought territory)
        assert rsi.iloc[-1] > 70

    def test_rsi_downtrend(self) -> None:
        """Test RSI in strong downtrend."""
        # Consistently falling prices
        prices = pd.Series([100 - i for i in range(30)])
        rsi = calculate_rsi(prices, 14)

        # RSI should be low (oversold territory)
        assert rsi.iloc[-1] < 30

    def test_rsi_flat_prices_is_neutral(self) -> None:
        """No gains and no losses reads 50."""
        rsi = calculate_rsi(pd.Series([100.0] * 20), 14)
        assert rsi.iloc[-1] == 50.0

    def test_rsi_needs_period_plus_one(self) -> None:
        """Fewer than period + 1 closes yields no values."""
        rsi = calculate_rsi(pd.Series([100.0 + i for i in range(14)]), 14)
        assert rsi.isna().all()


class TestEMASeed:
    """Tests for EMA seeding."""

    def test_first_value_is_sma(self) -> None:
        """The first EMA value equals the SMA of the first period closes."""
        prices = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        ema = calculate_ema(prices, 3)
        assert ema.iloc[:2].isna().all()
        assert ema.iloc[2] == pytest.approx(2.0)
        # 2/(3+1) multiplier
        assert ema.iloc[3] == pytest.approx(4.0 * 0.5 + 2.0 * 0.5)


class TestATR:
    """Tests for ATR calculation."""

    def test_atr_basic(self, sample_ohlcv_df: pd.DataFrame) -> None:
        """Test basic ATR calculation."""
        high = sample_ohlcv_df["High"]
        low = sample_ohlcv_df["Low"]
        close = sample_ohlcv_df["Close"]

        atr = calculate_atr(high, low, close, 5)

        # ATR should be positive
        valid_atr = atr.dropna()
        assert (valid_atr > 0).all()

    def test_atr_increases_with_volatility(self) -> None:
        """Test ATR increases with higher volatility."""
        # Low volatility
        low_vol = pd.DataFrame(
            {
                "high": [101, 101, 101, 101, 101, 101, 101, 101, 101, 101],
                "low": [99, 99, 99, 99, 99, 99, 99, 99, 99, 99],
                "close": [100, 100, 100, 100, 100, 100, 100, 100, 100, 100],
            }
        )

        # High volatility
        high_vol = pd.DataFrame(
            {
                "high": [110, 110, 110, 110, 110, 110, 110, 110, 110, 110],
                "low": [90, 90, 90, 90, 90, 90, 90, 90, 90, 90],
                "close": [100, 100, 100, 100, 100, 100, 100, 100, 100, 100],
            }
        )

        atr_low = calculate_atr(low_vol["high"], low_vol["low"], low_vol["close"], 5)
        atr_high = calculate_atr(high_vol["high"], high_vol["low"], high_vol["close"], 5)

        assert atr_high.iloc[-1] > atr_low.iloc[-1]


class TestReturns:
    """Tests for returns calculation."""

    def test_returns_basic(self, sample_price_series: pd.Series) -> None:
        """Test basic returns calculation."""
        ret = calculate_returns(sample_price_series, 5)

        assert ret is not None
        # 5-day return from index -6 to -1
        expected = (sample_price_series.iloc[-1] - sample_price_series.iloc[-6]) / sample_price_series.iloc[-6]
        assert abs(ret - expected) < 0.0001

    def test_returns_insufficient_data(self) -> None:
        """Test returns with insufficient data."""
        prices = pd.Series([100, 101, 102])
        ret = calculate_returns(prices, 5)

        assert ret is None


class TestVolatility:
    """Tests for volatility calculation."""

    def test_volatility_annualized(self, sample_returns_series: pd.Series) -> None:
        """Test annualized volatility calculation."""
        vol = calculate_volatility(sample_returns_series, annualize=True)

        assert vol is not None
        # Annualized vol should be larger than daily
        daily_vol = calculate_volatility(sample_returns_series, annualize=False)
        assert vol > daily_vol

    def test_volatility_annualization_factor(self, sample_returns_series: pd.Series) -> None:
        """Test that annualization uses sqrt(252)."""
        vol_ann = calculate_volatility(sample_returns_series, annualize=True)
        vol_daily = calculate_volatility(sample_returns_series, annualize=False)

        expected_ann = vol_daily * math.sqrt(252)
        assert abs(vol_ann - expected_ann) < 0.0001


class TestDrawdown:
    """Tests for drawdown calculations."""

    def test_max_drawdown_basic(self) -> None:
        """Test max drawdown calculation."""
        # Price goes up then crashes
        prices = pd.Series([100, 110, 120, 100, 90, 95])
        dd = calculate_max_drawdown(prices)

        # Max drawdown from 120 to 90 = -25%
        assert dd is not None
        assert abs(dd - (-0.25)) < 0.01

    def test_max_drawdown_monotonic_rise(self) -> None:
        """A series that never falls has zero drawdown."""
        assert calculate_max_drawdown(pd.Series([1.0, 2.0, 3.0])) == 0.0


class TestBands:
    """Tests for Bollinger Bands."""

    def test_band_ordering(self, sample_price_series: pd.Series) -> None:
        """Upper > middle > lower wherever the bands are defined."""
        bands = calculate_bollinger_bands(sample_price_series, 20)
        valid = bands["upper"].notna() & bands["lower"].notna()
        assert valid.any()
        assert (bands["upper"][valid] > bands["middle"][valid]).all()
        assert (bands["middle"][valid] > bands["lower"][valid]).all()

    def test_flat_prices_have_no_bands(self) -> None:
        """Zero variance leaves upper and lower undefined around the middle."""
        bands = calculate_bollinger_bands(pd.Series([50.0] * 25), 20)
        assert bands["middle"].iloc[-1] == 50.0
        assert pd.isna(bands["upper"].iloc[-1])
        assert pd.isna(bands["lower"].iloc[-1])


class TestOscillators:
    """Tests for Stochastic, Williams %R and CCI."""

    @pytest.fixture
    def noisy(self) -> pd.DataFrame:
        rng = np.random.default_rng(7)
        close = pd.Series(100 + np.cumsum(rng.normal(0, 1, 80)))
        return pd.DataFrame({"high": close + 1, "low": close - 1, "close": close})

    def test_stochastic_bounds(self, noisy: pd.DataFrame) -> None:
        """%K and %D stay within 0-100."""
        stoch = calculate_stochastic(noisy["high"], noisy["low"], noisy["close"])
        for key in ("k", "d"):
            values = stoch[key].dropna()
            assert len(values) > 0
            assert ((values >= 0) & (values <= 100)).all()

    def test_williams_bounds(self, noisy: pd.DataFrame) -> None:
        """Williams %R stays within -100 to 0."""
        wr = calculate_williams_r(noisy["high"], noisy["low"], noisy["close"]).dropna()
        assert len(wr) > 0
        assert ((wr >= -100) & (wr <= 0)).all()

    def test_zero_range_defaults(self) -> None:
        """A window with no high-low range reads mid-scale."""
        flat = pd.Series([10.0] * 20)
        assert calculate_stochastic(flat, flat, flat)["k"].iloc[-1] == 50.0
        assert calculate_williams_r(flat, flat, flat).iloc[-1] == -50.0
        assert calculate_cci(flat, flat, flat).iloc[-1] == 0.0


class TestVolumeAccumulators:
    """Tests for OBV."""

    def test_obv_direction(self) -> None:
        """Up days add volume, down days subtract, first bar is zero."""
        close = pd.Series([10.0, 11.0, 10.5, 10.5])
        volume = pd.Series([100.0, 200.0, 50.0, 70.0])
        obv = calculate_obv(close, volume)
        assert list(obv) == [0.0, 200.0, 150.0, 150.0]


class TestPivots:
    """Tests for pivot detection."""

    def test_single_peak_and_trough(self) -> None:
        """A strict peak and trough are found with a 2-bar lookback."""
        high = pd.Series([1.0, 2.0, 5.0, 2.0, 1.0, 1.5, 2.0])
        low = pd.Series([1.0, 0.8, 0.9, 0.5, 0.1, 0.6, 0.7])
        pivot_highs, pivot_lows = find_pivots(high, low, lookback=2)
        assert pivot_highs == [5.0]
        assert pivot_lows == [0.1]

    def test_equal_neighbors_are_not_pivots(self) -> None:
        """Ties with a neighbor disqualify a pivot."""
        high = pd.Series([1.0, 3.0, 3.0, 1.0, 1.0])
        low = pd.Series([1.0, 1.0, 1.0, 1.0, 1.0])
        pivot_highs, pivot_lows = find_pivots(high, low, lookback=1)
        assert pivot_highs == []
        assert pivot_lows == []


class TestMACD:
    """Tests for MACD calculation."""

    def test_macd_components(self, sample_price_series: pd.Series) -> None:
        """Test MACD returns all components."""
        macd = calculate_macd(sample_price_series, 12, 26, 9)

        assert "macd_line" in macd
        assert "signal_line" in macd
        assert "histogram" in macd

        # Histogram should equal MACD - Signal
        valid_idx = ~(macd["histogram"].isna())
        diff = macd["macd_line"][valid_idx] - macd["signal_line"][valid_idx]
        assert (abs(macd["histogram"][valid_idx] - diff) < 0.0001).all()

    def test_macd_positive_in_uptrend(self) -> None:
        """Fast EMA sits above slow EMA in a steady rise."""
        prices = pd.Series([100.0 + i for i in range(60)])
        macd = calculate_macd(prices)
        assert macd["macd_line"].iloc[-1] > 0
