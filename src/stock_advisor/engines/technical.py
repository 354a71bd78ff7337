"""Technical indicator engine.

Turns an OHLCV frame into indicator values, per-indicator signals, support
and resistance levels and an aggregated trend. Pure functions: no I/O, and an
indicator without enough history reports ``insufficient_data`` on its own
without affecting the others.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import pandas as pd

from stock_advisor.models import TechnicalSnapshot, Trend
from stock_advisor.utils import indicators as ind
from stock_advisor.utils.normalize import round_half_up

logger = logging.getLogger(__name__)

INSUFFICIENT = "insufficient_data"

# Aggregated trend requires this share of weighted votes
_TREND_THRESHOLD = 0.6

# Bars used for short/medium/long momentum labels
_MOMENTUM_WINDOWS = {"short_term": 5, "medium_term": 20, "long_term": 60}
_MOMENTUM_BAND = 0.01


@dataclass(frozen=True)
class IndicatorResult:
    """Latest value, full defined history and the interpreted signal."""

    current: float | None
    values: list[float]
    signal: str
    components: dict[str, float | str | None] = field(default_factory=dict)

    @property
    def defined(self) -> bool:
        return self.signal != INSUFFICIENT


def _as_series(values: Sequence[float] | pd.Series) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float).reset_index(drop=True)
    return pd.Series(list(values), dtype=float)


def _last(series: pd.Series, decimals: int = 2) -> float | None:
    if series.empty or pd.isna(series.iloc[-1]):
        return None
    return round(float(series.iloc[-1]), decimals)


def _defined(series: pd.Series, decimals: int = 2) -> list[float]:
    return [round(float(v), decimals) for v in series.dropna()]


def _insufficient(**components: float | str | None) -> IndicatorResult:
    return IndicatorResult(
        current=None, values=[], signal=INSUFFICIENT, components=dict(components)
    )


def _price_vs_level(price: float, level: float) -> str:
    if price > level:
        return "bullish"
    if price < level:
        return "bearish"
    return "neutral"


def calculate_sma(prices: Sequence[float] | pd.Series, period: int) -> IndicatorResult:
    """
    Simple moving average with a price-vs-average signal.

    >>> calculate_sma([1, 2, 3, 4, 5], 3).values
    [2.0, 3.0, 4.0]
    """
    closes = _as_series(prices)
    if len(closes) < period:
        return _insufficient(period=period)
    sma = ind.calculate_sma(closes, period)
    return IndicatorResult(
        current=_last(sma),
        values=_defined(sma),
        signal=_price_vs_level(float(closes.iloc[-1]), float(sma.iloc[-1])),
        components={"period": period},
    )


def calculate_ema(prices: Sequence[float] | pd.Series, period: int) -> IndicatorResult:
    """Exponential moving average (SMA-seeded) with a price-vs-average signal."""
    closes = _as_series(prices)
    if len(closes) < period:
        return _insufficient(period=period)
    ema = ind.calculate_ema(closes, period)
    return IndicatorResult(
        current=_last(ema),
        values=_defined(ema),
        signal=_price_vs_level(float(closes.iloc[-1]), float(ema.iloc[-1])),
        components={"period": period},
    )


def calculate_rsi(prices: Sequence[float] | pd.Series, period: int = 14) -> IndicatorResult:
    """
    RSI with overbought (>70) / oversold (<30) bands.

    Between the bands the signal is bullish above 50 and bearish otherwise.
    Needs period + 1 closes.
    """
    closes = _as_series(prices)
    if len(closes) < period + 1:
        return _insufficient(period=period)

    rsi = ind.calculate_rsi(closes, period)
    current = _last(rsi)
    if current is None:
        return _insufficient(period=period)

    if current > 70:
        signal = "overbought"
    elif current < 30:
        signal = "oversold"
    elif current > 50:
        signal = "bullish"
    else:
        signal = "bearish"

    return IndicatorResult(
        current=current, values=_defined(rsi), signal=signal, components={"period": period}
    )


def calculate_macd(
    prices: Sequence[float] | pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> IndicatorResult:
    """
    MACD line, signal line and histogram.

    Bullish when MACD is above its signal line with a positive histogram,
    bearish in the mirrored case. Needs slow + signal closes.
    """
    closes = _as_series(prices)
    empty = {"macd_line": None, "signal_line": None, "histogram": None}
    if len(closes) < slow + signal:
        return _insufficient(**empty)

    macd = ind.calculate_macd(closes, fast=fast, slow=slow, signal=signal)
    macd_line = _last(macd["macd_line"], 4)
    signal_line = _last(macd["signal_line"], 4)
    histogram = _last(macd["histogram"], 4)
    if macd_line is None or signal_line is None or histogram is None:
        return _insufficient(**empty)

    label = "neutral"
    if macd_line > signal_line and histogram > 0:
        label = "bullish"
    elif macd_line < signal_line and histogram < 0:
        label = "bearish"

    return IndicatorResult(
        current=macd_line,
        values=_defined(macd["macd_line"], 4),
        signal=label,
        components={"macd_line": macd_line, "signal_line": signal_line, "histogram": histogram},
    )


def calculate_bollinger_bands(
    prices: Sequence[float] | pd.Series,
    period: int = 20,
    num_std: float = 2.0,
) -> IndicatorResult:
    """
    Bollinger Bands (population std) with band-touch signals.

    A window too flat to separate the bands at cent precision is
    insufficient_data with only the middle reported.
    """
    closes = _as_series(prices)
    empty = {"upper": None, "middle": None, "lower": None}
    if len(closes) < period:
        return _insufficient(**empty)

    bands = ind.calculate_bollinger_bands(closes, period=period, num_std=num_std)
    middle = float(bands["middle"].iloc[-1])
    upper = _last(bands["upper"])
    lower = _last(bands["lower"])
    if upper is None or lower is None or not upper > round(middle, 2) > lower:
        return _insufficient(upper=None, middle=round(middle, 2), lower=None)
    price = float(closes.iloc[-1])

    if price >= upper:
        signal = "overbought"
    elif price <= lower:
        signal = "oversold"
    elif price > middle:
        signal = "bullish"
    else:
        signal = "bearish"

    return IndicatorResult(
        current=round(middle, 2),
        values=_defined(bands["middle"]),
        signal=signal,
        components={
            "upper": upper,
            "middle": round(middle, 2),
            "lower": lower,
        },
    )


def calculate_support_resistance(
    high: Sequence[float] | pd.Series,
    low: Sequence[float] | pd.Series,
    close: Sequence[float] | pd.Series,
    lookback: int = 10,
) -> tuple[list[float], list[float], str]:
    """
    Support and resistance from the five most recent pivot lows/highs.

    Returns:
        (support ascending, resistance descending, signal). Signal is
        near_resistance within 2% below the top resistance level,
        near_support within 2% above the lowest support level.
    """
    highs = _as_series(high)
    lows = _as_series(low)
    closes = _as_series(close)
    if len(highs) < lookback * 2 + 1:
        return [], [], INSUFFICIENT

    pivot_highs, pivot_lows = ind.find_pivots(highs, lows, lookback=lookback)
    resistance = sorted((round(p, 2) for p in pivot_highs[-5:]), reverse=True)
    support = sorted(round(p, 2) for p in pivot_lows[-5:])

    price = float(closes.iloc[-1])
    signal = "neutral"
    if resistance and price >= resistance[0] * 0.98:
        signal = "near_resistance"
    elif support and price <= support[0] * 1.02:
        signal = "near_support"

    return support, resistance, signal


def calculate_volume_analysis(
    volume: Sequence[float] | pd.Series,
    close: Sequence[float] | pd.Series,
    period: int = 20,
) -> IndicatorResult:
    """
    Volume ratio against its moving average, OBV and VPT accumulators.

    Trend is increasing when OBV rose over the last five bars. Signal is
    strong_bullish/bullish when volume runs 1.5x/1.2x average on an
    increasing OBV, strong_bearish/bearish on a decreasing one.
    """
    volumes = _as_series(volume)
    closes = _as_series(close)
    empty = {"average_volume": None, "volume_ratio": None, "volume_trend": None}
    if len(volumes) < period or len(closes) < period or volumes.isna().all():
        return _insufficient(**empty)

    volumes = volumes.fillna(0)
    average = ind.calculate_sma(volumes, period).iloc[-1]
    if pd.isna(average) or average <= 0:
        return _insufficient(**empty)

    ratio = float(volumes.iloc[-1] / average)
    obv = ind.calculate_obv(closes, volumes)
    vpt = ind.calculate_vpt(closes, volumes)
    recent = obv.iloc[-5:]
    trend = "increasing" if recent.iloc[-1] > recent.iloc[0] else "decreasing"

    signal = "neutral"
    if ratio > 1.5:
        signal = "strong_bullish" if trend == "increasing" else "strong_bearish"
    elif ratio > 1.2:
        signal = "bullish" if trend == "increasing" else "bearish"

    return IndicatorResult(
        current=round(ratio, 2),
        values=_defined(obv),
        signal=signal,
        components={
            "average_volume": round(float(average)),
            "current_volume": round(float(volumes.iloc[-1])),
            "volume_ratio": round(ratio, 2),
            "volume_trend": trend,
            "on_balance_volume": round(float(obv.iloc[-1])),
            "volume_price_trend": round(float(vpt.iloc[-1]), 2),
        },
    )


def calculate_stochastic(
    high: Sequence[float] | pd.Series,
    low: Sequence[float] | pd.Series,
    close: Sequence[float] | pd.Series,
    k_period: int = 14,
    d_period: int = 3,
) -> IndicatorResult:
    """Stochastic %K/%D; overbought when both exceed 80, oversold when both are below 20."""
    closes = _as_series(close)
    if len(closes) < k_period + d_period - 1:
        return _insufficient(k=None, d=None)

    stoch = ind.calculate_stochastic(
        _as_series(high), _as_series(low), closes, k_period=k_period, d_period=d_period
    )
    k = _last(stoch["k"])
    d = _last(stoch["d"])
    if k is None or d is None:
        return _insufficient(k=None, d=None)

    if k > 80 and d > 80:
        signal = "overbought"
    elif k < 20 and d < 20:
        signal = "oversold"
    elif k > d:
        signal = "bullish"
    else:
        signal = "bearish"

    return IndicatorResult(
        current=k, values=_defined(stoch["k"]), signal=signal, components={"k": k, "d": d}
    )


def calculate_williams_r(
    high: Sequence[float] | pd.Series,
    low: Sequence[float] | pd.Series,
    close: Sequence[float] | pd.Series,
    period: int = 14,
) -> IndicatorResult:
    """Williams %R in [-100, 0]; oversold at -80 and below, overbought at -20 and above."""
    closes = _as_series(close)
    if len(closes) < period:
        return _insufficient()

    wr = ind.calculate_williams_r(_as_series(high), _as_series(low), closes, period=period)
    current = _last(wr)
    if current is None:
        return _insufficient()

    if current <= -80:
        signal = "oversold"
    elif current >= -20:
        signal = "overbought"
    elif current > -50:
        signal = "bullish"
    else:
        signal = "bearish"

    return IndicatorResult(current=current, values=_defined(wr), signal=signal)


def calculate_cci(
    high: Sequence[float] | pd.Series,
    low: Sequence[float] | pd.Series,
    close: Sequence[float] | pd.Series,
    period: int = 20,
) -> IndicatorResult:
    """Commodity Channel Index with +/-100 overbought/oversold bands."""
    closes = _as_series(close)
    if len(closes) < period:
        return _insufficient()

    cci = ind.calculate_cci(_as_series(high), _as_series(low), closes, period=period)
    current = _last(cci)
    if current is None:
        return _insufficient()

    if current > 100:
        signal = "overbought"
    elif current < -100:
        signal = "oversold"
    elif current > 0:
        signal = "bullish"
    else:
        signal = "bearish"

    return IndicatorResult(current=current, values=_defined(cci), signal=signal)


def calculate_roc(prices: Sequence[float] | pd.Series, period: int = 12) -> IndicatorResult:
    """Rate of change in percent over ``period`` bars."""
    closes = _as_series(prices)
    if len(closes) < period + 1:
        return _insufficient()
    roc = ind.calculate_roc(closes, period)
    current = _last(roc)
    if current is None:
        return _insufficient()
    signal = "bullish" if current > 0 else "bearish" if current < 0 else "neutral"
    return IndicatorResult(current=current, values=_defined(roc), signal=signal)


def aggregate_signals(
    rsi: IndicatorResult,
    macd: IndicatorResult,
    sma_short: IndicatorResult,
    sma_long: IndicatorResult,
    volume: IndicatorResult,
    bollinger: IndicatorResult,
) -> tuple[Trend, int]:
    """
    Vote the indicator signals into an overall trend and a 0-100 strength.

    Band extremes (oversold/overbought) and MACD/MA/volume direction count one
    vote; RSI and Bollinger position relative to their midpoint count half.
    Indicators without data do not vote. A side needs more than 60% of the
    votes to set the trend; anything else, including no votes, is neutral.
    """
    bullish = 0.0
    bearish = 0.0
    total = 0

    for banded in (rsi, bollinger):
        if not banded.defined:
            continue
        total += 1
        if banded.signal == "oversold":
            bullish += 1
        elif banded.signal == "overbought":
            bearish += 1
        elif banded.signal == "bullish":
            bullish += 0.5
        elif banded.signal == "bearish":
            bearish += 0.5

    if macd.defined:
        total += 1
        if macd.signal == "bullish":
            bullish += 1
        elif macd.signal == "bearish":
            bearish += 1

    if sma_short.current is not None and sma_long.current is not None:
        total += 1
        if sma_short.current > sma_long.current:
            bullish += 1
        else:
            bearish += 1

    if volume.defined:
        total += 1
        if "bullish" in volume.signal:
            bullish += 1
        elif "bearish" in volume.signal:
            bearish += 1

    if total == 0:
        return "neutral", 0

    bullish_ratio = bullish / total
    bearish_ratio = bearish / total
    strength = round_half_up(abs(bullish_ratio - bearish_ratio) * 100)

    trend: Trend = "neutral"
    if bullish_ratio > _TREND_THRESHOLD:
        trend = "bullish"
    elif bearish_ratio > _TREND_THRESHOLD:
        trend = "bearish"
    return trend, strength


def summarize_momentum(closes: pd.Series, volume_ratio: float | None) -> dict[str, str | None]:
    """Volume regime plus short/medium/long return direction labels."""
    if volume_ratio is None:
        volume_label = "normal"
    elif volume_ratio > 1.5:
        volume_label = "high"
    elif volume_ratio < 0.5:
        volume_label = "low"
    else:
        volume_label = "normal"

    summary: dict[str, str | None] = {"volume": volume_label}
    for name, bars in _MOMENTUM_WINDOWS.items():
        ret = ind.calculate_returns(closes, bars)
        if ret is None:
            summary[name] = None
        elif ret > _MOMENTUM_BAND:
            summary[name] = "positive"
        elif ret < -_MOMENTUM_BAND:
            summary[name] = "negative"
        else:
            summary[name] = "neutral"
    return summary


def analyze_technicals(df: pd.DataFrame) -> TechnicalSnapshot:
    """
    Build a TechnicalSnapshot from a standardized OHLCV frame.

    Args:
        df: Frame with close (required) and open/high/low/volume columns,
            ascending by date

    Returns:
        TechnicalSnapshot

    Raises:
        ValueError: If the frame has no close prices at all
    """
    if df is None or "close" not in df.columns or df["close"].dropna().empty:
        raise ValueError("No close prices available for technical analysis")

    frame = df.dropna(subset=["close"]).reset_index(drop=True)
    closes = frame["close"].astype(float)
    highs = frame["high"].astype(float).fillna(closes) if "high" in frame else closes
    lows = frame["low"].astype(float).fillna(closes) if "low" in frame else closes
    volumes = (
        frame["volume"].astype(float)
        if "volume" in frame
        else pd.Series(float("nan"), index=closes.index)
    )

    rsi = calculate_rsi(closes)
    macd = calculate_macd(closes)
    sma20 = calculate_sma(closes, 20)
    sma50 = calculate_sma(closes, 50)
    sma200 = calculate_sma(closes, 200)
    ema12 = calculate_ema(closes, 12)
    ema26 = calculate_ema(closes, 26)
    bollinger = calculate_bollinger_bands(closes)
    volume = calculate_volume_analysis(volumes, closes)
    stochastic = calculate_stochastic(highs, lows, closes)
    williams = calculate_williams_r(highs, lows, closes)
    cci = calculate_cci(highs, lows, closes)
    roc = calculate_roc(closes)
    support, resistance, sr_signal = calculate_support_resistance(highs, lows, closes)

    trend, strength = aggregate_signals(rsi, macd, sma20, sma50, volume, bollinger)

    indicators: dict[str, float | None] = {
        "current_price": round(float(closes.iloc[-1]), 2),
        "rsi": rsi.current,
        "macd": macd.components.get("macd_line"),
        "macd_signal": macd.components.get("signal_line"),
        "macd_histogram": macd.components.get("histogram"),
        "sma20": sma20.current,
        "sma50": sma50.current,
        "sma200": sma200.current,
        "ema12": ema12.current,
        "ema26": ema26.current,
        "bb_upper": bollinger.components.get("upper"),
        "bb_middle": bollinger.components.get("middle"),
        "bb_lower": bollinger.components.get("lower"),
        "volume_ratio": volume.components.get("volume_ratio"),
        "average_volume": volume.components.get("average_volume"),
        "on_balance_volume": volume.components.get("on_balance_volume"),
        "volume_price_trend": volume.components.get("volume_price_trend"),
        "roc": roc.current,
        "stochastic_k": stochastic.components.get("k"),
        "stochastic_d": stochastic.components.get("d"),
        "williams_r": williams.current,
        "cci": cci.current,
    }
    signals = {
        "rsi": rsi.signal,
        "macd": macd.signal,
        "sma20": sma20.signal,
        "sma50": sma50.signal,
        "sma200": sma200.signal,
        "ema12": ema12.signal,
        "ema26": ema26.signal,
        "bollinger": bollinger.signal,
        "volume": volume.signal,
        "support_resistance": sr_signal,
        "stochastic": stochastic.signal,
        "williams_r": williams.signal,
        "cci": cci.signal,
        "roc": roc.signal,
    }

    logger.debug(f"Technical snapshot over {len(closes)} bars: trend={trend} strength={strength}")

    return TechnicalSnapshot(
        indicators=indicators,
        signals=signals,
        trend=trend,
        strength=strength,
        support=tuple(support),
        resistance=tuple(resistance),
        momentum=summarize_momentum(closes, volume.components.get("volume_ratio")),
    )
