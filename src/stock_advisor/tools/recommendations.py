"""Recommendation orchestrator: per-horizon analysis, batch ranking, best picks."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import Any, Awaitable, Mapping, Sequence

import pandas as pd
import pytz

from stock_advisor.config import (
    BATCH_TIMEOUT_SECONDS,
    BRANCH_TIMEOUT_SECONDS,
    DEFAULT_UNIVERSE,
    HORIZON_POLICIES,
    HORIZON_WEIGHTS,
    MAX_CONCURRENCY,
    MIN_CONFIDENCE,
    SECTOR_BENCHMARKS,
    HorizonPolicy,
    SectorBenchmark,
    WeightProfile,
)
from stock_advisor.data.providers import (
    FundamentalsProvider,
    PriceProvider,
    SentimentProvider,
    YFinanceFundamentalsProvider,
    YFinancePriceProvider,
    YFinanceSentimentProvider,
)
from stock_advisor.engines.fundamental import analyze_fundamentals
from stock_advisor.engines.quality import analyze_quality
from stock_advisor.engines.technical import analyze_technicals
from stock_advisor.models import (
    BestPick,
    CompanyFinancials,
    DeepAnalysis,
    FundamentalSnapshot,
    QualityAnalysis,
    QualitySummary,
    RankedBatch,
    RecommendationRecord,
    SentimentReading,
    SubScore,
    TechnicalSnapshot,
    TradingStrategy,
    action_for_score,
)
from stock_advisor.utils import indicators as ind
from stock_advisor.utils.normalize import clamp, round_half_up, safe_round
from stock_advisor.utils.validators import (
    validate_horizon,
    validate_limit,
    validate_symbol,
    validate_universe,
)

logger = logging.getLogger(__name__)

# Fewer bars than this and the technical branch is treated as failed
MIN_TECHNICAL_BARS = 20

BRANCHES = ("technical", "fundamental", "sentiment")

# best_pick batch sizes
WEEKLY_PICK_LIMIT = 30
MONTHLY_PICK_LIMIT = 40
MONTHLY_PICK_MIN_FUNDAMENTAL = 60

BUY_ACTIONS = ("buy", "strong_buy")


def action_for_confidence(confidence: float) -> str:
    """strong_buy >= 80, buy >= 65, hold >= 45, sell >= 30, else strong_sell."""
    return action_for_score(confidence)


def technical_score(snapshot: TechnicalSnapshot, horizon: str) -> float:
    """
    Score a technical snapshot for a horizon.

    Daily favors RSI extremes (mean reversion); longer horizons favor RSI in
    the 40-60 band and penalize extremes.
    """
    score = 50.0
    ind_ = snapshot.indicators
    rsi = ind_.get("rsi")

    if rsi is not None:
        if horizon == "daily":
            if rsi < 30:
                score += 20
            elif rsi > 70:
                score -= 20
            elif 40 <= rsi <= 60:
                score += 10
        else:
            if 40 <= rsi <= 60:
                score += 15
            elif rsi < 30 or rsi > 70:
                score -= 10

    macd, macd_signal = ind_.get("macd"), ind_.get("macd_signal")
    if macd is not None and macd_signal is not None:
        score += 15 if macd > macd_signal else -10

    sma20, sma50 = ind_.get("sma20"), ind_.get("sma50")
    if sma20 is not None and sma50 is not None:
        score += 10 if sma20 > sma50 else -10

    if snapshot.trend == "bullish":
        score += 15
    elif snapshot.trend == "bearish":
        score -= 15

    if snapshot.momentum.get("volume") == "high":
        score += 10

    return round_half_up(clamp(score))


def _weighted(parts: Sequence[tuple[float | None, float]]) -> float | None:
    present = [(v, w) for v, w in parts if v is not None]
    weight_sum = sum(w for _, w in present)
    if not present or weight_sum == 0:
        return None
    return sum(v * w for v, w in present) / weight_sum


def fundamental_score(snapshot: FundamentalSnapshot, horizon: str) -> float | None:
    """
    Horizon-specific blend of the fundamental sub-scores.

    yearly: 0.4 quality + 0.3 growth + 0.3 value; monthly: composite;
    daily/weekly: 0.7 composite + 0.3 momentum. Then +5 for strong health
    and -10 for high risk. None when the snapshot carries no scores.
    """
    scores = snapshot.scores
    if horizon == "yearly":
        base = _weighted([(scores.quality, 0.4), (scores.growth, 0.3), (scores.value, 0.3)])
    elif horizon == "monthly":
        base = scores.composite
    else:
        base = _weighted([(scores.composite, 0.7), (scores.momentum, 0.3)])

    if base is None:
        return None

    health = snapshot.financial_health
    if health.overall_score is not None and health.overall_score > 70:
        base += 5
    if health.risk_level == "high":
        base -= 10
    return round_half_up(clamp(base))


def sentiment_score(reading: SentimentReading, horizon: str) -> float:
    score = reading.score
    if horizon == "daily":
        if reading.label == "positive":
            score += 10
        elif reading.label == "negative":
            score -= 15
        if reading.article_count > 5:
            score += 5
    elif horizon == "weekly":
        if reading.label == "positive":
            score += 5
        elif reading.label == "negative":
            score -= 10
    else:
        if reading.label == "positive":
            score += 3
        elif reading.label == "negative":
            score -= 5
    return round_half_up(clamp(score))


def composite_confidence(scores: Mapping[str, SubScore], weights: WeightProfile) -> int:
    """
    Weighted mean of effective branch scores over branches with weight > 0.

    Neutral defaults count as 50; skipped branches drop out of both sums.
    """
    total = 0.0
    weight_sum = 0.0
    for name, weight in weights.as_dict().items():
        sub = scores.get(name)
        value = sub.effective if sub is not None else None
        if weight > 0 and value is not None:
            total += value * weight
            weight_sum += weight
    if weight_sum == 0:
        return 50
    return int(clamp(round_half_up(total / weight_sum)))


def price_targets(
    price: float | None,
    confidence: float,
    policy: HorizonPolicy,
    support: Sequence[float] = (),
) -> tuple[float | None, float | None, float | None]:
    """
    (target, stop_loss, entry) for a price and confidence.

    Entry snaps to the highest support level within 5% below the price.
    """
    if price is None:
        return None, None, None

    offset = confidence - 50
    target = round(price * (policy.target_base + offset * policy.target_sensitivity), 2)
    stop = round(price * (policy.stop_base - offset * policy.stop_sensitivity), 2)

    nearby = [s for s in support if price * 0.95 < s < price]
    entry = max(nearby) if nearby else price
    return target, stop, round(entry, 2)


def build_reasons(
    horizon: str,
    scores: Mapping[str, SubScore],
    technical: TechnicalSnapshot | None,
    fundamental: FundamentalSnapshot | None,
    sentiment: SentimentReading | None,
) -> tuple[str, ...]:
    reasons = []
    tech = scores["technical"].effective if "technical" in scores else None
    fund = scores["fundamental"].effective if "fundamental" in scores else None
    sent = scores["sentiment"].effective if "sentiment" in scores else None

    if technical is not None:
        if tech is not None and tech > 60 and technical.trend == "bullish":
            reasons.append("Strong bullish technical trend")
        rsi = technical.indicators.get("rsi")
        if rsi is not None and rsi < 40:
            reasons.append("Oversold conditions present buying opportunity")
        if technical.momentum.get("volume") == "high":
            reasons.append("High volume supports price movement")

    if fundamental is not None:
        growth = fundamental.scores.growth
        if fund is not None and fund > 60 and growth is not None and growth > 70:
            reasons.append("Strong growth prospects")
        if fundamental.scores.quality is not None and fundamental.scores.quality > 70:
            reasons.append("High-quality business fundamentals")
        health = fundamental.financial_health.overall_score
        if health is not None and health > 70:
            reasons.append("Excellent financial health")

    if sentiment is not None:
        if sent is not None and sent > 60 and sentiment.label == "positive":
            reasons.append("Positive market sentiment and news coverage")
        if sentiment.article_count > 5:
            reasons.append("High media attention and investor interest")

    if horizon == "daily" and technical is not None:
        reasons.append("Short-term technical setup favorable for day trading")
    elif horizon == "yearly" and fundamental is not None:
        reasons.append("Strong long-term fundamentals support investment thesis")

    if not reasons:
        reasons.append("Based on comprehensive multi-factor analysis")
    return tuple(reasons)


def build_risks(
    horizon: str,
    scores: Mapping[str, SubScore],
    technical: TechnicalSnapshot | None,
    fundamental: FundamentalSnapshot | None,
    sentiment: SentimentReading | None,
) -> tuple[str, ...]:
    risks = []
    tech = scores["technical"].effective if "technical" in scores else None
    fund = scores["fundamental"].effective if "fundamental" in scores else None
    sent = scores["sentiment"].effective if "sentiment" in scores else None

    if technical is not None:
        if tech is not None and tech < 40 and technical.trend == "bearish":
            risks.append("Bearish technical trend indicates downside risk")
        rsi = technical.indicators.get("rsi")
        if rsi is not None and rsi > 70:
            risks.append("Overbought conditions may lead to correction")

    if fundamental is not None:
        if fund is not None and fund < 40 and fundamental.financial_health.risk_level == "high":
            risks.append("High financial risk due to poor fundamentals")
        if fundamental.scores.value is not None and fundamental.scores.value < 30:
            risks.append("Stock appears overvalued based on fundamentals")

    if sentiment is not None and sent is not None and sent < 40 and sentiment.label == "negative":
        risks.append("Negative sentiment may pressure stock price")

    risks.append("Market volatility and economic conditions")
    risks.append("Sector-specific risks and competition")

    if horizon == "daily":
        risks.append("High volatility risk for short-term trading")
    elif horizon == "yearly":
        risks.append("Long-term business and industry changes")
    return tuple(risks)


def key_highlights(record: RecommendationRecord) -> tuple[str, ...]:
    highlights = []
    tech = record.score("technical")
    fund = record.score("fundamental")
    sent = record.score("sentiment")

    if tech is not None and tech > 70:
        highlights.append(f"Strong technical setup with {tech:.0f}% technical score")
    if fund is not None and fund > 70:
        highlights.append(f"Solid fundamentals with {fund:.0f}% fundamental score")
    if sent is not None and sent > 65:
        highlights.append(f"Positive market sentiment with {sent:.0f}% sentiment score")
    if record.target_price and record.current_price:
        upside = (record.target_price - record.current_price) / record.current_price * 100
        highlights.append(
            f"{upside:.1f}% upside potential to target price of ${record.target_price:.2f}"
        )

    if record.time_horizon == "weekly":
        highlights.append("Ideal for swing trading with 1-week holding period")
    elif record.time_horizon == "monthly":
        highlights.append("Balanced opportunity for medium-term investment")
    return tuple(highlights[:5])


def trading_strategy(record: RecommendationRecord) -> TradingStrategy:
    price = record.current_price
    entry = exit_ = risk = sizing = None

    if record.entry_point is not None and price is not None:
        if record.entry_point < price:
            entry = f"Wait for pullback to ${record.entry_point:.2f} for optimal entry"
        else:
            entry = f"Current price ${price:.2f} offers good entry opportunity"

    if record.target_price is not None and record.stop_loss is not None:
        exit_ = f"Target: ${record.target_price:.2f}, Stop Loss: ${record.stop_loss:.2f}"

    if record.stop_loss is not None and price:
        risk_pct = (price - record.stop_loss) / price * 100
        risk = f"Risk {risk_pct:.1f}% with stop loss at ${record.stop_loss:.2f}"

    if record.time_horizon == "weekly":
        sizing = "Moderate position size suitable for swing trading"
    elif record.time_horizon == "monthly":
        sizing = "Standard position size for medium-term holding"

    return TradingStrategy(entry=entry, exit=exit_, risk_management=risk, position_sizing=sizing)


def technical_insights(snapshot: TechnicalSnapshot) -> list[str]:
    insights = []
    rsi = snapshot.indicators.get("rsi")
    if rsi is not None and rsi < 30:
        insights.append("RSI indicates oversold conditions - potential buying opportunity")
    elif rsi is not None and rsi > 70:
        insights.append("RSI shows overbought levels - caution advised")

    macd, signal = snapshot.indicators.get("macd"), snapshot.indicators.get("macd_signal")
    if macd is not None and signal is not None and macd > signal:
        insights.append("MACD bullish crossover suggests upward momentum")
    return insights


def fundamental_insights(snapshot: FundamentalSnapshot) -> list[str]:
    insights = []
    if snapshot.scores.growth is not None and snapshot.scores.growth > 70:
        insights.append("Strong growth prospects with above-average expansion potential")
    if snapshot.scores.quality is not None and snapshot.scores.quality > 70:
        insights.append("High-quality business with strong competitive position")
    net_margin = snapshot.profitability.get("net_margin_trend")
    if net_margin == "improving":
        insights.append("Net margins are expanding")
    elif net_margin == "declining":
        insights.append("Net margins are contracting")
    return insights


def _technical_summary(snapshot: TechnicalSnapshot | None) -> dict[str, Any]:
    if snapshot is None:
        return {}
    return {
        "trend": snapshot.trend,
        "strength": snapshot.strength,
        "rsi": snapshot.indicators.get("rsi"),
        "macd_signal": snapshot.signals.get("macd"),
        "support": list(snapshot.support),
        "resistance": list(snapshot.resistance),
        "momentum": dict(snapshot.momentum),
    }


def _fundamental_summary(snapshot: FundamentalSnapshot | None) -> dict[str, Any]:
    if snapshot is None:
        return {}
    return {
        "composite": snapshot.scores.composite,
        "value": snapshot.scores.value,
        "growth": snapshot.scores.growth,
        "quality": snapshot.scores.quality,
        "financial_health": snapshot.financial_health.overall_score,
        "valuation": snapshot.valuation.get("overall_valuation"),
        "profitability": dict(snapshot.profitability),
    }


# Weekday sessions on the exchange clock: (ends at minute of day, state)
_SESSIONS = (
    (4 * 60, "closed"),
    (9 * 60 + 30, "pre_market"),
    (16 * 60, "regular"),
    (20 * 60, "after_hours"),
)
MARKET_TZ = "America/New_York"


def get_market_state(now: datetime | None = None, tz: str = MARKET_TZ) -> dict[str, str]:
    """
    Trading session at ``now`` (default: current time) on the exchange clock.

    Weekends and anything past the last session are closed. Holidays are
    not known.
    """
    local = (now or datetime.now(pytz.utc)).astimezone(pytz.timezone(tz))
    state = "closed"
    if local.weekday() < 5:
        minute = local.hour * 60 + local.minute
        state = next((name for end, name in _SESSIONS if minute < end), "closed")
    return {"state": state, "method": "clock_only_no_holidays", "checked_at": local.isoformat()}


def _catalysts(horizon: str) -> dict[str, Any]:
    upcoming: list[str] = []
    potential: list[str] = []
    if horizon == "weekly":
        upcoming = ["Technical breakout potential", "Short-term momentum"]
        potential = ["Positive news flow", "Sector rotation"]
    elif horizon == "monthly":
        upcoming = ["Quarterly earnings", "Management guidance"]
        potential = ["New product launches", "Market expansion"]
    return {"upcoming": upcoming, "potential": potential, "timeframe": horizon}


def _price_risk(history: pd.DataFrame | None) -> dict[str, float | None]:
    """Annualized volatility, max drawdown and ATR as a share of price."""
    if history is None or history.empty:
        return {"volatility": None, "max_drawdown": None, "atr_percent": None}

    closes = history["close"].astype(float)
    returns = closes.pct_change().dropna()
    atr = ind.calculate_atr(history["high"].astype(float), history["low"].astype(float), closes)
    last_atr = atr.iloc[-1] if len(atr) else None
    atr_pct = None
    if last_atr is not None and not pd.isna(last_atr) and closes.iloc[-1]:
        atr_pct = float(last_atr / closes.iloc[-1])

    return {
        "volatility": safe_round(ind.calculate_volatility(returns), 4),
        "max_drawdown": safe_round(ind.calculate_max_drawdown(closes), 4),
        "atr_percent": safe_round(atr_pct, 4),
    }


def _validate_record_invariants(record: RecommendationRecord, weights: WeightProfile) -> None:
    """
    Validate invariants between scores, weights, confidence and targets.

    Invariants enforced:
    1. A branch is skipped exactly when its weight is 0
    2. Measured branches carry a value; other statuses do not
    3. confidence is within 0-100 and action matches the confidence ladder
    4. stop_loss <= target_price

    Logs warnings for violations rather than raising.
    """
    violations: list[str] = []

    for name, weight in weights.as_dict().items():
        sub = record.scores.get(name)
        if sub is None:
            violations.append(f"scores.{name} missing")
            continue
        if (sub.status == "skipped") != (weight == 0):
            violations.append(f"scores.{name}.status={sub.status} but weight={weight}")
        if (sub.status == "measured") != (sub.value is not None):
            violations.append(f"scores.{name}.status={sub.status} but value={sub.value}")

    if not 0 <= record.confidence <= 100:
        violations.append(f"confidence={record.confidence} outside 0-100")
    elif record.action != action_for_confidence(record.confidence):
        violations.append(f"action={record.action} but confidence={record.confidence}")

    if record.target_price is not None and record.stop_loss is not None:
        if record.stop_loss > record.target_price:
            violations.append(f"stop_loss={record.stop_loss} above target_price={record.target_price}")

    for v in violations:
        logger.warning(f"Record invariant violation for {record.symbol} ({record.time_horizon}): {v}")


@dataclass(frozen=True)
class _Analysis:
    """One analyze() run plus the inputs deep analysis needs."""

    record: RecommendationRecord
    quality: QualityAnalysis | None
    history: pd.DataFrame | None


class RecommendationEngine:
    """
    Composes the engines per horizon over injected data providers.

    Every table (weights, benchmarks, horizon policies, universe) defaults to
    the values in ``stock_advisor.config`` and can be replaced per instance.
    """

    def __init__(
        self,
        price_provider: PriceProvider | None = None,
        fundamentals_provider: FundamentalsProvider | None = None,
        sentiment_provider: SentimentProvider | None = None,
        *,
        weights: Mapping[str, WeightProfile] = HORIZON_WEIGHTS,
        benchmarks: Mapping[str, SectorBenchmark] = SECTOR_BENCHMARKS,
        policies: Mapping[str, HorizonPolicy] = HORIZON_POLICIES,
        universe: Sequence[str] = DEFAULT_UNIVERSE,
        max_concurrency: int = MAX_CONCURRENCY,
        branch_timeout: float = BRANCH_TIMEOUT_SECONDS,
        batch_timeout: float = BATCH_TIMEOUT_SECONDS,
        min_confidence: int = MIN_CONFIDENCE,
    ):
        self.prices = price_provider or YFinancePriceProvider()
        self.fundamentals = fundamentals_provider or YFinanceFundamentalsProvider()
        self.sentiment = sentiment_provider or YFinanceSentimentProvider()
        self.weights = weights
        self.benchmarks = benchmarks
        self.policies = policies
        self.universe = tuple(universe)
        self.max_concurrency = max(1, max_concurrency)
        self.branch_timeout = branch_timeout
        self.batch_timeout = batch_timeout
        self.min_confidence = min_confidence

    async def _run_branch(self, name: str, coro: Awaitable[Any]) -> tuple[str, Any | Exception, float]:
        start = perf_counter()
        try:
            result = await asyncio.wait_for(coro, timeout=self.branch_timeout)
            return (name, result, (perf_counter() - start) * 1000)
        except TimeoutError:
            return (name, TimeoutError(f"exceeded {self.branch_timeout}s"), (perf_counter() - start) * 1000)
        except Exception as e:
            return (name, e, (perf_counter() - start) * 1000)

    async def _analyze(self, symbol: str, horizon: str) -> _Analysis:
        symbol = validate_symbol(symbol)
        horizon = validate_horizon(horizon)
        weights = self.weights[horizon]
        policy = self.policies[horizon]

        financials_task: asyncio.Future[CompanyFinancials] = asyncio.ensure_future(
            self.fundamentals.get_company_financials(symbol)
        )

        async def technical_branch() -> tuple[pd.DataFrame, TechnicalSnapshot]:
            history = await self.prices.get_historical_series(symbol, policy.history_period)
            if history is None or len(history) < MIN_TECHNICAL_BARS:
                raise ValueError("Insufficient historical data for technical analysis")
            return history, analyze_technicals(history)

        async def fundamental_branch() -> FundamentalSnapshot:
            financials = await asyncio.shield(financials_task)
            return analyze_fundamentals(financials, benchmarks=self.benchmarks)

        async def quality_branch() -> QualityAnalysis:
            financials = await asyncio.shield(financials_task)
            return analyze_quality(financials, benchmarks=self.benchmarks)

        branch_weights = weights.as_dict()
        specs: list[tuple[str, Awaitable[Any]]] = [
            ("price", self.prices.get_current_price(symbol)),
            ("quality", quality_branch()),
        ]
        if branch_weights["technical"] > 0:
            specs.append(("technical", technical_branch()))
        if branch_weights["fundamental"] > 0:
            specs.append(("fundamental", fundamental_branch()))
        if branch_weights["sentiment"] > 0:
            specs.append(("sentiment", self.sentiment.get_sentiment(symbol)))

        try:
            results = await asyncio.gather(*[self._run_branch(name, coro) for name, coro in specs])
        finally:
            if not financials_task.done():
                financials_task.cancel()

        outcomes: dict[str, Any] = {}
        errors: dict[str, str] = {}
        for name, result, duration_ms in results:
            if isinstance(result, Exception):
                errors[name] = type(result).__name__
                logger.warning(
                    f"{name} analysis failed for {symbol} ({horizon}) after {duration_ms:.0f}ms: "
                    f"{type(result).__name__}: {result}"
                )
            else:
                outcomes[name] = result

        price = outcomes.get("price")
        history, technical = outcomes.get("technical", (None, None))
        fundamental: FundamentalSnapshot | None = outcomes.get("fundamental")
        sentiment: SentimentReading | None = outcomes.get("sentiment")
        quality: QualityAnalysis | None = outcomes.get("quality")

        if price is None and history is not None:
            # Last close stands in when the quote endpoint fails
            price = float(history["close"].iloc[-1])

        measured = {
            "technical": technical_score(technical, horizon) if technical is not None else None,
            "fundamental": fundamental_score(fundamental, horizon) if fundamental is not None else None,
            "sentiment": sentiment_score(sentiment, horizon) if sentiment is not None else None,
        }
        scores: dict[str, SubScore] = {}
        for name in BRANCHES:
            if branch_weights[name] <= 0:
                scores[name] = SubScore.skipped()
            elif measured[name] is not None:
                scores[name] = SubScore.measured(measured[name])
            else:
                scores[name] = SubScore.neutral_default(errors.get(name, "InsufficientData"))

        confidence = composite_confidence(scores, weights)
        target, stop, entry = price_targets(
            safe_round(price, 2), confidence, policy, technical.support if technical else ()
        )

        if quality is not None:
            quality_summary = QualitySummary(
                score=quality.quality_score,
                grade=quality.quality_grade,
                evaluation=quality.evaluation.verdict,
                financial_trend=quality.overall_trend,
                sector_ranking=quality.sector_comparison.overall_ranking,
            )
        else:
            quality_summary = QualitySummary.unknown()

        if fundamental is not None:
            sector = fundamental.sector
        elif quality is not None:
            sector = quality.sector
        else:
            sector = "Unknown"

        record = RecommendationRecord(
            symbol=symbol,
            time_horizon=horizon,
            current_price=safe_round(price, 2),
            scores=scores,
            confidence=confidence,
            action=action_for_confidence(confidence),
            target_price=target,
            stop_loss=stop,
            entry_point=entry,
            reasons=build_reasons(horizon, scores, technical, fundamental, sentiment),
            risks=build_risks(horizon, scores, technical, fundamental, sentiment),
            sector=sector,
            quality=quality_summary,
            sentiment=sentiment,
            technical=technical,
            fundamental=fundamental,
        )
        _validate_record_invariants(record, weights)
        return _Analysis(record=record, quality=quality, history=history)

    async def analyze(self, symbol: str, horizon: str) -> RecommendationRecord:
        """
        Analyze one symbol for one horizon.

        Branch failures degrade to neutral sub-scores; only invalid input raises.

        Raises:
            ValueError: If symbol or horizon is invalid
        """
        analysis = await self._analyze(symbol, horizon)
        return analysis.record

    def _batch_symbols(self, policy: HorizonPolicy, limit: int, universe: Sequence[str] | None) -> list[str]:
        if universe is not None:
            return validate_universe(universe)
        symbols = list(self.universe)
        if not policy.scan_full_universe:
            symbols = symbols[: limit * 2]
        return validate_universe(symbols)

    async def rank(
        self,
        horizon: str,
        universe: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> RankedBatch:
        """
        Analyze a universe and return the top records by confidence.

        Failed or timed-out symbols are dropped, never raised. Records with
        no price and no measured branch, or below the confidence floor, are
        left out of the ranking.

        Raises:
            ValueError: If horizon, universe or limit is invalid
        """
        horizon = validate_horizon(horizon)
        policy = self.policies[horizon]
        limit = validate_limit(limit) if limit is not None else policy.default_limit
        symbols = self._batch_symbols(policy, limit, universe)

        logger.info(f"Ranking {len(symbols)} symbols for {horizon} (limit={limit})")
        start = perf_counter()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def analyze_one(symbol: str) -> RecommendationRecord:
            async with semaphore:
                return await self.analyze(symbol, horizon)

        tasks = {symbol: asyncio.ensure_future(analyze_one(symbol)) for symbol in symbols}
        _, pending = await asyncio.wait(tasks.values(), timeout=self.batch_timeout)
        if pending:
            logger.warning(
                f"{horizon} batch timed out after {self.batch_timeout}s; "
                f"cancelling {len(pending)} pending analyses"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        records: list[RecommendationRecord] = []
        failed: list[str] = []
        for symbol, task in tasks.items():
            if task.cancelled():
                failed.append(symbol)
                continue
            exc = task.exception()
            if exc is not None:
                logger.warning(f"Analysis failed for {symbol} ({horizon}): {type(exc).__name__}: {exc}")
                failed.append(symbol)
                continue
            record = task.result()
            if not record.has_measurements:
                logger.warning(f"No data for {symbol} ({horizon}); dropping from batch")
                failed.append(symbol)
                continue
            records.append(record)

        ranked = sorted(
            (r for r in records if r.confidence >= self.min_confidence),
            key=lambda r: (-r.confidence, r.symbol),
        )[:limit]

        logger.info(
            f"Ranked {horizon}: {len(records)}/{len(symbols)} analyzed, "
            f"{len(ranked)} returned in {(perf_counter() - start):.1f}s"
        )
        return RankedBatch(
            time_horizon=horizon,
            period=policy.period_label,
            recommendations=tuple(ranked),
            generated_at=datetime.now(timezone.utc).isoformat(),
            total_analyzed=len(symbols),
            successful_analyses=len(records),
            failed_symbols=tuple(failed),
        )

    async def best_pick(self, horizon: str, universe: Sequence[str] | None = None) -> BestPick | None:
        """
        Stock of the week (highest-confidence buy) or of the month (best
        0.6 * confidence + 0.4 * fundamental among buys with fundamental >= 60).

        Returns:
            BestPick, or None when no candidate qualifies

        Raises:
            ValueError: If horizon is not weekly or monthly
        """
        horizon = validate_horizon(horizon)
        if horizon == "weekly":
            batch = await self.rank("weekly", universe, WEEKLY_PICK_LIMIT)
            scored = [
                (float(r.confidence), r) for r in batch.recommendations if r.action in BUY_ACTIONS
            ]
            pick_type, valid_days = "stock_of_the_week", 7
        elif horizon == "monthly":
            batch = await self.rank("monthly", universe, MONTHLY_PICK_LIMIT)
            scored = []
            for r in batch.recommendations:
                fund = r.score("fundamental")
                if r.action in BUY_ACTIONS and fund is not None and fund >= MONTHLY_PICK_MIN_FUNDAMENTAL:
                    scored.append((0.6 * r.confidence + 0.4 * fund, r))
            pick_type, valid_days = "stock_of_the_month", 30
        else:
            raise ValueError(f"Best pick is only available for weekly or monthly, got '{horizon}'")

        if not scored:
            logger.info(f"No {pick_type} candidate among {len(batch.recommendations)} ranked")
            return None

        selection_score, record = min(scored, key=lambda item: (-item[0], item[1].symbol))
        valid_until = (datetime.now(timezone.utc) + timedelta(days=valid_days)).date().isoformat()

        return BestPick(
            pick_type=pick_type,
            record=record,
            technical_summary=_technical_summary(record.technical),
            fundamental_summary=_fundamental_summary(record.fundamental),
            key_highlights=key_highlights(record),
            trading_strategy=trading_strategy(record),
            selection_score=round(selection_score, 2),
            valid_until=valid_until,
            candidates_considered=len(scored),
        )

    async def deep_analyze(self, symbol: str, horizon: str = "monthly") -> DeepAnalysis:
        """
        Single-symbol analysis with full engine detail, market context, risk
        breakdown, catalysts and competitive position.

        Raises:
            ValueError: If symbol or horizon is invalid
        """
        analysis = await self._analyze(symbol, horizon)
        record = analysis.record

        technical_detail = None
        if record.technical is not None:
            technical_detail = {
                **record.technical.to_dict(),
                "key_insights": technical_insights(record.technical),
            }

        fundamental_detail = None
        if record.fundamental is not None:
            fundamental_detail = {
                **record.fundamental.to_dict(),
                "key_insights": fundamental_insights(record.fundamental),
                "valuation_summary": {
                    "composite": record.fundamental.scores.composite,
                    **record.fundamental.valuation,
                },
            }

        market_context = {
            "market_state": get_market_state(),
            "sector": record.sector,
            "price_trend": record.technical.trend if record.technical else None,
        }

        risk_assessment: dict[str, Any] = {
            "overall": analysis.quality.risk_assessment.overall.lower() if analysis.quality else "medium",
            **_price_risk(analysis.history),
            "technical": ["Price volatility risk", "Technical breakdown risk"],
            "fundamental": list(analysis.quality.risk_assessment.factors)
            if analysis.quality and analysis.quality.risk_assessment.factors
            else ["Earnings disappointment risk", "Sector-specific headwinds"],
            "market": ["Overall market correction risk", "Interest rate sensitivity"],
            "time_horizon_specific": {
                "weekly": ["Short-term volatility risk", "News-driven price swings"],
                "monthly": ["Quarterly earnings impact", "Sector rotation risk"],
            }.get(record.time_horizon, []),
        }

        return DeepAnalysis(
            symbol=record.symbol,
            time_horizon=record.time_horizon,
            record=record,
            technical_detail=technical_detail,
            fundamental_detail=fundamental_detail,
            quality=analysis.quality,
            market_context=market_context,
            risk_assessment=risk_assessment,
            catalysts=_catalysts(record.time_horizon),
            competitive_position={
                "market_position": "strong",
                "competitive_advantages": ["Brand strength", "Market leadership"],
                "threats": ["New entrants", "Technology disruption"],
                "moat": "moderate",
            },
        )

    async def all_recommendations(self) -> dict[str, RankedBatch | dict[str, str]]:
        """All four horizon batches at their default limits, run concurrently."""
        horizons = tuple(self.policies)
        results = await asyncio.gather(
            *[self.rank(h) for h in horizons],
            return_exceptions=True,
        )
        output: dict[str, RankedBatch | dict[str, str]] = {}
        for horizon, result in zip(horizons, results):
            if isinstance(result, Exception):
                logger.warning(f"{horizon} recommendations failed: {type(result).__name__}: {result}")
                output[horizon] = {"error": str(result)}
            else:
                output[horizon] = result
        return output
