"""Quality & trend engine: dimension scores, valuation verdict, trends, risk."""

import logging
from collections.abc import Sequence
from typing import Mapping

import numpy as np

from stock_advisor.config import (
    GENERIC_PS_BENCHMARK,
    QUALITY_DIMENSION_WEIGHTS,
    SECTOR_BENCHMARKS,
    SectorBenchmark,
)
from stock_advisor.engines.sector import (
    Direction,
    get_benchmark,
    ranking_tier,
    resolve_sector,
    sector_percentile,
)
from stock_advisor.models import (
    CompanyFinancials,
    QualityAnalysis,
    RiskAssessment,
    SectorComparison,
    TrendReading,
    ValuationEvaluation,
)
from stock_advisor.utils.normalize import clamp, round_half_up, to_percent

logger = logging.getLogger(__name__)

_TREND_SCORES = {"Improving": 1, "Stable": 0, "Declining": -1, "Unknown": 0}


def _finish(score: float) -> float:
    return round_half_up(clamp(score))


def growth_dimension(fin: CompanyFinancials, benchmark: SectorBenchmark) -> float:
    score = 50.0
    rev_1y = to_percent(fin.revenue_growth_1y)
    rev_3y = to_percent(fin.revenue_growth_3y)
    earn_1y = to_percent(fin.earnings_growth_1y)

    if rev_1y is not None:
        target = benchmark.avg_revenue_growth
        if rev_1y > target * 1.5:
            score += 25
        elif rev_1y > target:
            score += 15
        elif rev_1y > target * 0.5:
            score += 5
        else:
            score -= 10

    if earn_1y is not None:
        if earn_1y > 20:
            score += 20
        elif earn_1y > 10:
            score += 10
        elif earn_1y > 0:
            score += 5
        else:
            score -= 15

    # Consistent growth between the 1y and 3y rates
    if rev_1y is not None and rev_3y is not None and abs(rev_1y - rev_3y) < 3:
        score += 5

    return _finish(score)


def value_dimension(fin: CompanyFinancials, benchmark: SectorBenchmark) -> float:
    score = 50.0
    pe = fin.pe_ratio
    pb = fin.price_to_book
    peg = fin.peg_ratio

    if pe is not None and pe > 0:
        if pe < benchmark.avg_pe * 0.7:
            score += 25
        elif pe < benchmark.avg_pe:
            score += 15
        elif pe < benchmark.avg_pe * 1.3:
            score += 5
        else:
            score -= 15

    if pb is not None and pb > 0:
        if pb < benchmark.avg_pb * 0.7:
            score += 15
        elif pb < benchmark.avg_pb:
            score += 10
        elif pb >= benchmark.avg_pb * 1.5:
            score -= 10

    if peg is not None and peg > 0:
        if peg < 1.0:
            score += 10
        elif peg < 1.5:
            score += 5
        else:
            score -= 5

    return _finish(score)


def quality_dimension(fin: CompanyFinancials, benchmark: SectorBenchmark) -> float:
    score = 50.0
    roe = to_percent(fin.return_on_equity)
    margin = to_percent(fin.profit_margin)
    de = fin.debt_to_equity
    coverage = fin.interest_coverage

    if roe is not None:
        if roe > benchmark.avg_roe * 1.3:
            score += 20
        elif roe > benchmark.avg_roe:
            score += 15
        elif roe > benchmark.avg_roe * 0.7:
            score += 5
        else:
            score -= 10

    if margin is not None:
        if margin > benchmark.avg_profit_margin * 1.5:
            score += 15
        elif margin > benchmark.avg_profit_margin:
            score += 10
        elif margin > benchmark.avg_profit_margin * 0.5:
            score += 5
        else:
            score -= 10

    if de is not None:
        if de < benchmark.avg_debt_to_equity * 0.5:
            score += 10
        elif de < benchmark.avg_debt_to_equity:
            score += 5
        elif de >= benchmark.avg_debt_to_equity * 2:
            score -= 15

    if coverage is not None:
        if coverage > 10:
            score += 10
        elif coverage > 5:
            score += 5
        elif coverage <= 2:
            score -= 10

    return _finish(score)


def momentum_dimension(fin: CompanyFinancials) -> float:
    score = 50.0
    rev_1y = to_percent(fin.revenue_growth_1y)
    rev_3y = to_percent(fin.revenue_growth_3y)
    earn_1y = to_percent(fin.earnings_growth_1y)
    earn_3y = to_percent(fin.earnings_growth_3y)

    if rev_1y is not None and rev_3y is not None:
        if rev_1y > rev_3y + 2:
            score += 15
        elif rev_1y > rev_3y:
            score += 5
        elif rev_1y < rev_3y - 5:
            score -= 15

    if earn_1y is not None and earn_3y is not None:
        if earn_1y > earn_3y + 3:
            score += 20
        elif earn_1y > earn_3y:
            score += 10
        elif earn_1y < earn_3y - 5:
            score -= 20

    if len(fin.roe_history) >= 3:
        score += 10 if fin.roe_history[-1] > fin.roe_history[-2] else -5

    return _finish(score)


def stability_dimension(fin: CompanyFinancials) -> float:
    score = 50.0

    history = fin.revenue_history
    if len(history) >= 5:
        prior = np.asarray(history[:-1], dtype=float)
        current = np.asarray(history[1:], dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            rates = (current - prior) / prior
        rates = rates[np.isfinite(rates)]
        if rates.size:
            variance = float(np.var(rates))
            stability = 1 / (1 + variance * 100)
            score += (stability - 0.5) * 40

    if fin.current_ratio is not None:
        if 1.5 <= fin.current_ratio <= 3.0:
            score += 15
        elif fin.current_ratio >= 1.0:
            score += 5
        else:
            score -= 20

    if fin.debt_to_equity is not None:
        if fin.debt_to_equity < 0.5:
            score += 10
        elif fin.debt_to_equity < 1.0:
            score += 5
        else:
            score -= 10

    return _finish(score)


def quality_grade(score: float) -> str:
    if score >= 85:
        return "Excellent"
    if score >= 70:
        return "Good"
    if score >= 50:
        return "Average"
    return "Poor"


def weighted_quality_score(
    dimensions: Mapping[str, float | None],
    weights: Mapping[str, float] = QUALITY_DIMENSION_WEIGHTS,
) -> float:
    total = 0.0
    weight_sum = 0.0
    for name, weight in weights.items():
        value = dimensions.get(name)
        if value is not None:
            total += value * weight
            weight_sum += weight
    return round_half_up(total / weight_sum) if weight_sum > 0 else 50


def evaluate_valuation(fin: CompanyFinancials, benchmark: SectorBenchmark) -> ValuationEvaluation:
    """
    Average of PE, PB and PS relative to their references.

    >= 1.5 Severely Overvalued, >= 1.2 Overvalued, <= 0.6 Undervalued,
    anything else Fairly Valued.
    """
    pairs = (
        (fin.pe_ratio, benchmark.avg_pe),
        (fin.price_to_book, benchmark.avg_pb),
        (fin.price_to_sales, GENERIC_PS_BENCHMARK),
    )
    # Negative multiples (losses, negative equity) are not comparable
    relatives = [value / ref for value, ref in pairs if value is not None and value > 0 and ref > 0]

    if not relatives:
        return ValuationEvaluation(verdict="Unknown", confidence="Low", valuation_ratio=None)

    ratio = sum(relatives) / len(relatives)
    if ratio >= 1.5:
        verdict, confidence = "Severely Overvalued", "High"
    elif ratio >= 1.2:
        verdict, confidence = "Overvalued", "Medium"
    elif ratio <= 0.6:
        verdict, confidence = "Undervalued", "High"
    else:
        verdict, confidence = "Fairly Valued", "Medium"

    return ValuationEvaluation(verdict=verdict, confidence=confidence, valuation_ratio=round(ratio, 2))


def detect_trend(history: Sequence[float]) -> TrendReading:
    """
    Least-squares slope normalized by the series mean.

    |relative slope| > 0.1 sets the direction; > 0.2 is High strength,
    > 0.1 Medium. Fewer than 3 points or a zero mean is Unknown.
    """
    values = np.asarray([v for v in history if v is not None], dtype=float)
    if values.size < 3:
        return TrendReading(direction="Unknown", strength="Low")

    mean = float(values.mean())
    if mean == 0 or not np.isfinite(mean):
        return TrendReading(direction="Unknown", strength="Low")

    slope = float(np.polyfit(np.arange(values.size), values, 1)[0])
    relative = slope / mean
    magnitude = abs(relative)

    if magnitude > 0.1:
        direction = "Improving" if relative > 0 else "Declining"
    else:
        direction = "Stable"

    if magnitude > 0.2:
        strength = "High"
    elif magnitude > 0.1:
        strength = "Medium"
    else:
        strength = "Low"

    return TrendReading(direction=direction, strength=strength, relative_slope=round(relative, 4))


def overall_trend(trends: Mapping[str, TrendReading]) -> str:
    directions = [t.direction for t in trends.values()]
    if all(d == "Unknown" for d in directions):
        return "Unknown"
    avg = sum(_TREND_SCORES[d] for d in directions) / 3
    if avg > 0.3:
        return "Improving"
    if avg < -0.3:
        return "Declining"
    return "Stable"


def compare_quality_to_sector(fin: CompanyFinancials, benchmark: SectorBenchmark) -> SectorComparison:
    metrics: tuple[tuple[str, float | None, float, Direction], ...] = (
        ("pe_ratio", fin.pe_ratio, benchmark.avg_pe, "lower_better"),
        ("pb_ratio", fin.price_to_book, benchmark.avg_pb, "lower_better"),
        ("roe", to_percent(fin.return_on_equity), benchmark.avg_roe, "higher_better"),
        ("profit_margin", to_percent(fin.profit_margin), benchmark.avg_profit_margin, "higher_better"),
        ("current_ratio", fin.current_ratio, benchmark.avg_current_ratio, "higher_better"),
        ("debt_to_equity", fin.debt_to_equity, benchmark.avg_debt_to_equity, "lower_better"),
    )
    percentiles: dict[str, int] = {}
    rankings: dict[str, str] = {}
    for name, value, sector_avg, direction in metrics:
        percentile = sector_percentile(value, sector_avg, direction)
        if percentile is None:
            continue
        percentiles[name] = percentile
        rankings[name] = ranking_tier(percentile)

    overall = round_half_up(sum(percentiles.values()) / len(percentiles)) if percentiles else None
    return SectorComparison(
        rankings=rankings,
        percentiles=percentiles,
        overall_percentile=overall,
        overall_ranking=ranking_tier(overall),
    )


def assess_quality_risks(fin: CompanyFinancials, score: float) -> RiskAssessment:
    factors = []
    if fin.debt_to_equity is not None and fin.debt_to_equity > 1.0:
        factors.append("High debt levels may impact financial flexibility")
    if fin.current_ratio is not None and fin.current_ratio < 1.2:
        factors.append("Low liquidity may indicate cash flow challenges")
    if fin.profit_margin is not None and fin.profit_margin < 0.05:
        factors.append("Low profit margins indicate competitive pressure")
    if fin.pe_ratio is not None and fin.pe_ratio > 30:
        factors.append("High valuation may limit upside potential")
    if fin.return_on_equity is not None and fin.return_on_equity < 0.08:
        factors.append("Low return on equity indicates inefficient capital use")

    if score >= 75 and len(factors) <= 1:
        overall = "Low"
    elif score >= 50 and len(factors) <= 3:
        overall = "Medium"
    else:
        overall = "High"
    return RiskAssessment(overall=overall, factors=tuple(factors))


def quality_recommendations(
    score: float, evaluation: ValuationEvaluation, trend: str, risk: RiskAssessment
) -> tuple[str, ...]:
    advice = []
    if score >= 80:
        advice.append("High-quality stock suitable for long-term investment")
    elif score >= 60:
        advice.append("Good quality stock with solid fundamentals")
    elif score < 40:
        advice.append("Consider avoiding due to poor quality metrics")

    if evaluation.verdict == "Undervalued":
        advice.append("Stock appears undervalued - potential buying opportunity")
    elif evaluation.verdict in ("Overvalued", "Severely Overvalued"):
        advice.append("Stock appears overvalued - exercise caution")

    if trend == "Improving":
        advice.append("Positive financial trends support investment thesis")
    elif trend == "Declining":
        advice.append("Declining trends warrant careful monitoring")

    if risk.overall == "High":
        advice.append("High risk profile - suitable only for risk-tolerant investors")

    if not advice:
        advice.append("Comprehensive analysis required for investment decision")
    return tuple(advice)


def analyze_quality(
    fin: CompanyFinancials | None,
    sector: str | None = None,
    benchmarks: Mapping[str, SectorBenchmark] = SECTOR_BENCHMARKS,
    weights: Mapping[str, float] = QUALITY_DIMENSION_WEIGHTS,
) -> QualityAnalysis:
    """
    Quality analysis for one company.

    Raises:
        ValueError: If fin is None
    """
    if fin is None:
        raise ValueError("Company financials are required")

    sector_name = sector if sector in benchmarks else resolve_sector(sector or fin.sector, benchmarks)
    benchmark = get_benchmark(sector_name, benchmarks)

    dimensions = {
        "growth": growth_dimension(fin, benchmark),
        "value": value_dimension(fin, benchmark),
        "quality": quality_dimension(fin, benchmark),
        "momentum": momentum_dimension(fin),
        "stability": stability_dimension(fin),
    }
    score = weighted_quality_score(dimensions, weights)
    evaluation = evaluate_valuation(fin, benchmark)
    trends = {
        "revenue": detect_trend(fin.revenue_history),
        "profit": detect_trend(fin.profit_history),
        "roe": detect_trend(fin.roe_history),
    }
    trend = overall_trend(trends)
    risk = assess_quality_risks(fin, score)

    logger.debug(f"Quality for {fin.symbol}: score={score} evaluation={evaluation.verdict} trend={trend}")

    return QualityAnalysis(
        symbol=fin.symbol,
        sector=sector_name,
        quality_dimensions=dimensions,
        quality_score=score,
        quality_grade=quality_grade(score),
        evaluation=evaluation,
        financial_trends=trends,
        overall_trend=trend,
        sector_comparison=compare_quality_to_sector(fin, benchmark),
        risk_assessment=risk,
        recommendations=quality_recommendations(score, evaluation, trend, risk),
    )
