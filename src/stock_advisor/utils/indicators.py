"""Technical indicator calculations on pandas series.

All functions return series aligned to the input index, with NaN where the
indicator is not yet defined. Signal interpretation lives in
``stock_advisor.engines.technical``.
"""

import math

import numpy as np
import pandas as pd


def calculate_sma(prices: pd.Series, period: int) -> pd.Series:
    """
    Calculate Simple Moving Average.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        SMA series
    """
    return prices.rolling(window=period, min_periods=period).mean()


def calculate_ema(prices: pd.Series, period: int) -> pd.Series:
    """
    Calculate Exponential Moving Average.

    The first defined value is the SMA of the first ``period`` points;
    subsequent values use the standard 2/(period+1) multiplier.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        EMA series
    """
    values = prices.dropna()
    if len(values) < period:
        return pd.Series(np.nan, index=prices.index, dtype=float)

    seed = values.iloc[:period].mean()
    seeded = pd.concat(
        [pd.Series([seed], index=[values.index[period - 1]]), values.iloc[period:]]
    )
    ema = seeded.ewm(span=period, adjust=False).mean()
    return ema.reindex(prices.index)


def calculate_rsi(prices: pd.Series, period: int = 14) -> pd.Series:
    """
    Calculate Relative Strength Index.

    Seeds average gain/loss with a simple mean over the first ``period``
    changes, then applies Wilder's smoothing. A window with neither gains
    nor losses reads 50; gains with no losses read 100.

    Args:
        prices: Price series (typically close prices)
        period: RSI period (default: 14)

    Returns:
        RSI series (0-100 scale)
    """
    closes = prices.to_numpy(dtype=float)
    rsi = np.full(len(closes), np.nan)
    if len(closes) < period + 1:
        return pd.Series(rsi, index=prices.index)

    delta = np.diff(closes)
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    rsi[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, len(delta)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi[i + 1] = _rsi_from_averages(avg_gain, avg_loss)

    return pd.Series(rsi, index=prices.index)


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def calculate_macd(
    prices: pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> dict[str, pd.Series]:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    Args:
        prices: Price series (typically close prices)
        fast: Fast EMA period (default: 12)
        slow: Slow EMA period (default: 26)
        signal: Signal line period (default: 9)

    Returns:
        Dict with 'macd_line', 'signal_line', 'histogram' series
    """
    ema_fast = calculate_ema(prices, fast)
    ema_slow = calculate_ema(prices, slow)

    macd_line = ema_fast - ema_slow
    signal_line = calculate_ema(macd_line, signal)
    histogram = macd_line - signal_line

    return {
        "macd_line": macd_line,
        "signal_line": signal_line,
        "histogram": histogram,
    }


def calculate_bollinger_bands(
    prices: pd.Series,
    period: int = 20,
    num_std: float = 2.0,
) -> dict[str, pd.Series]:
    """
    Calculate Bollinger Bands using population standard deviation.

    Windows with zero variance have no bands: upper and lower are NaN there
    while the middle stays defined.

    Returns:
        Dict with 'upper', 'middle', 'lower' series
    """
    middle = calculate_sma(prices, period)
    std = prices.rolling(window=period, min_periods=period).std(ddof=0)
    std = std.where(std > 0)
    return {
        "upper": middle + num_std * std,
        "middle": middle,
        "lower": middle - num_std * std,
    }


def calculate_stochastic(
    high: pd.Series,
    low: pd.Series,
    close: pd.Series,
    k_period: int = 14,
    d_period: int = 3,
) -> dict[str, pd.Series]:
    """
    Calculate Stochastic Oscillator %K and %D.

    A window with zero high-low range reads 50 (mid-range).

    Returns:
        Dict with 'k' and 'd' series (0-100 scale)
    """
    highest = high.rolling(window=k_period, min_periods=k_period).max()
    lowest = low.rolling(window=k_period, min_periods=k_period).min()
    span = highest - lowest

    k = ((close - lowest) / span.replace(0, np.nan)) * 100
    k = k.where(span != 0, 50.0).where(span.notna())
    k = k.clip(lower=0, upper=100)
    d = calculate_sma(k, d_period)
    return {"k": k, "d": d}


def calculate_williams_r(
    high: pd.Series,
    low: pd.Series,
    close: pd.Series,
    period: int = 14,
) -> pd.Series:
    """
    Calculate Williams %R (-100 to 0 scale).

    A window with zero high-low range reads -50.
    """
    highest = high.rolling(window=period, min_periods=period).max()
    lowest = low.rolling(window=period, min_periods=period).min()
    span = highest - lowest

    wr = ((highest - close) / span.replace(0, np.nan)) * -100
    wr = wr.where(span != 0, -50.0).where(span.notna())
    return wr.clip(lower=-100, upper=0)


def calculate_cci(
    high: pd.Series,
    low: pd.Series,
    close: pd.Series,
    period: int = 20,
) -> pd.Series:
    """
    Calculate Commodity Channel Index.

    Uses typical price and the 0.015 mean-deviation constant. A window with
    zero mean deviation reads 0.
    """
    typical = (high + low + close) / 3
    sma = calculate_sma(typical, period)
    mean_dev = typical.rolling(window=period, min_periods=period).apply(
        lambda window: np.mean(np.abs(window - window.mean())), raw=True
    )
    cci = (typical - sma) / (0.015 * mean_dev.replace(0, np.nan))
    return cci.where(mean_dev != 0, 0.0).where(mean_dev.notna())


def calculate_roc(prices: pd.Series, period: int = 12) -> pd.Series:
    """Rate of change over ``period`` bars, in percent."""
    past = prices.shift(period)
    return ((prices - past) / past.replace(0, np.nan)) * 100


def calculate_obv(close: pd.Series, volume: pd.Series) -> pd.Series:
    """On-Balance Volume, starting at 0 on the first bar."""
    direction = np.sign(close.diff()).fillna(0)
    return (direction * volume).cumsum()


def calculate_vpt(close: pd.Series, volume: pd.Series) -> pd.Series:
    """Volume-Price Trend, starting at 0 on the first bar."""
    pct = close.pct_change().replace([np.inf, -np.inf], np.nan).fillna(0)
    return (pct * volume).cumsum()


def find_pivots(
    high: pd.Series,
    low: pd.Series,
    lookback: int = 10,
) -> tuple[list[float], list[float]]:
    """
    Find strict pivot highs and lows.

    A pivot high is a bar whose high exceeds every other high within
    ``lookback`` bars on both sides (pivot lows mirror this).

    Returns:
        Tuple of (pivot_highs, pivot_lows) in chronological order
    """
    highs = high.to_numpy(dtype=float)
    lows = low.to_numpy(dtype=float)
    pivot_highs: list[float] = []
    pivot_lows: list[float] = []

    for i in range(lookback, len(highs) - lookback):
        window_h = np.delete(highs[i - lookback : i + lookback + 1], lookback)
        window_l = np.delete(lows[i - lookback : i + lookback + 1], lookback)
        if (window_h < highs[i]).all():
            pivot_highs.append(float(highs[i]))
        if (window_l > lows[i]).all():
            pivot_lows.append(float(lows[i]))

    return pivot_highs, pivot_lows


def calculate_atr(
    high: pd.Series,
    low: pd.Series,
    close: pd.Series,
    period: int = 14,
) -> pd.Series:
    """
    Calculate Average True Range.

    Args:
        high: High price series
        low: Low price series
        close: Close price series
        period: ATR period (default: 14)

    Returns:
        ATR series
    """
    prev_close = close.shift(1)

    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()

    true_range = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)

    # Wilder's smoothing for ATR
    return true_range.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()


def calculate_returns(prices: pd.Series, periods: int) -> float | None:
    """
    Calculate return over a specific number of periods.

    Args:
        prices: Price series
        periods: Number of periods to look back

    Returns:
        Return as decimal (0.15 = 15%), or None if insufficient data
    """
    if len(prices) < periods + 1:
        return None

    current = prices.iloc[-1]
    past = prices.iloc[-periods - 1]

    if pd.isna(current) or pd.isna(past) or past == 0:
        return None

    return float((current - past) / past)


def calculate_volatility(returns: pd.Series, annualize: bool = True) -> float | None:
    """
    Calculate volatility (standard deviation of returns).

    Args:
        returns: Returns series
        annualize: Whether to annualize (assumes daily data, 252 trading days)

    Returns:
        Volatility as decimal, or None if insufficient data
    """
    if len(returns) < 20:
        return None

    std = returns.std()
    if pd.isna(std):
        return None

    if annualize:
        return float(std * math.sqrt(252))
    return float(std)


def calculate_max_drawdown(prices: pd.Series) -> float | None:
    """
    Calculate maximum drawdown.

    Returns:
        Max drawdown as negative decimal (-0.20 = 20% drawdown), or None
    """
    if len(prices) < 2:
        return None

    cummax = prices.cummax()
    drawdown = (prices - cummax) / cummax

    min_dd = drawdown.min()
    if pd.isna(min_dd):
        return None

    return float(min_dd)
