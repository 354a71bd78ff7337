"""Fundamental ratio engine.

Converts a CompanyFinancials record into ratios, growth metrics, a financial
health assessment, a sector peer comparison and a set of valuation scores.
Missing inputs only null out the metrics that need them.
"""

import logging
import math
import statistics
from collections.abc import Sequence
from typing import Mapping

from stock_advisor.config import (
    FUNDAMENTAL_SCORE_WEIGHTS,
    SECTOR_BENCHMARKS,
    SectorBenchmark,
)
from stock_advisor.engines.sector import (
    ASSESSMENT_SCORES,
    Direction,
    assess_metric,
    get_benchmark,
    resolve_sector,
    sector_percentile,
)
from stock_advisor.models import (
    CompanyFinancials,
    FinancialHealth,
    FundamentalSnapshot,
    PeerMetric,
    ValuationScores,
    action_for_score,
)
from stock_advisor.utils.normalize import average, clamp, round_half_up, safe_round, to_percent

logger = logging.getLogger(__name__)


def _ratio(numerator: float | None, denominator: float | None) -> float | None:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def calculate_ratios(fin: CompanyFinancials) -> dict[str, float | None]:
    """
    Price, profitability, liquidity, leverage and efficiency ratios.

    Fractions (margins, returns, yields) are converted to percentages.
    Quick/cash/debt ratios and asset turnover are derived from statement
    figures when not supplied directly.
    """
    quick_ratio = fin.quick_ratio
    if quick_ratio is None and fin.current_assets is not None:
        quick_ratio = _ratio(fin.current_assets - (fin.inventory or 0.0), fin.current_liabilities)

    ratios: dict[str, float | None] = {
        "pe_ratio": fin.pe_ratio,
        "forward_pe": fin.forward_pe,
        "peg_ratio": fin.peg_ratio,
        "pb_ratio": fin.price_to_book,
        "ps_ratio": fin.price_to_sales,
        "ev_to_ebitda": fin.ev_to_ebitda,
        "gross_margin": to_percent(fin.gross_margin),
        "operating_margin": to_percent(fin.operating_margin),
        "profit_margin": to_percent(fin.profit_margin),
        "roe": to_percent(fin.return_on_equity),
        "roa": to_percent(fin.return_on_assets),
        "roic": to_percent(fin.return_on_invested_capital),
        "dividend_yield": to_percent(fin.dividend_yield),
        "payout_ratio": to_percent(fin.payout_ratio),
        "current_ratio": fin.current_ratio,
        "quick_ratio": quick_ratio,
        "cash_ratio": fin.cash_ratio
        if fin.cash_ratio is not None
        else _ratio(fin.cash_and_equivalents, fin.current_liabilities),
        "debt_to_equity": fin.debt_to_equity,
        "debt_ratio": fin.debt_ratio
        if fin.debt_ratio is not None
        else _ratio(fin.total_liabilities, fin.total_assets),
        "interest_coverage": fin.interest_coverage,
        "asset_turnover": fin.asset_turnover
        if fin.asset_turnover is not None
        else _ratio(fin.total_revenue, fin.total_assets),
        "inventory_turnover": fin.inventory_turnover,
        "receivables_turnover": fin.receivables_turnover,
        "beta": fin.beta,
    }
    return {k: safe_round(v, 4) for k, v in ratios.items()}


def calculate_growth(fin: CompanyFinancials) -> dict[str, float | None]:
    """Growth rates in percent plus averages over the non-null horizons."""
    growth: dict[str, float | None] = {
        "revenue_growth_1y": to_percent(fin.revenue_growth_1y),
        "revenue_growth_3y": to_percent(fin.revenue_growth_3y),
        "revenue_growth_5y": to_percent(fin.revenue_growth_5y),
        "earnings_growth_1y": to_percent(fin.earnings_growth_1y),
        "earnings_growth_3y": to_percent(fin.earnings_growth_3y),
        "earnings_growth_5y": to_percent(fin.earnings_growth_5y),
        "book_value_growth_1y": to_percent(fin.book_value_growth_1y),
        "book_value_growth_3y": to_percent(fin.book_value_growth_3y),
        "dividend_growth_1y": to_percent(fin.dividend_growth_1y),
        "dividend_growth_3y": to_percent(fin.dividend_growth_3y),
    }
    growth["avg_revenue_growth"] = average(
        growth[k] for k in ("revenue_growth_1y", "revenue_growth_3y", "revenue_growth_5y")
    )
    growth["avg_earnings_growth"] = average(
        growth[k] for k in ("earnings_growth_1y", "earnings_growth_3y", "earnings_growth_5y")
    )
    return {k: safe_round(v, 2) for k, v in growth.items()}


def _band_score(adjustments: Sequence[float | None]) -> float | None:
    """Base 50 plus the adjustments that applied; None if none applied."""
    applied = [a for a in adjustments if a is not None]
    if not applied:
        return None
    return clamp(50 + sum(applied))


def calculate_liquidity_score(ratios: Mapping[str, float | None]) -> float | None:
    current = ratios.get("current_ratio")
    quick = ratios.get("quick_ratio")
    cash = ratios.get("cash_ratio")

    current_adj: float | None = None
    if current is not None:
        if 1.5 <= current <= 3.0:
            current_adj = 20
        elif 1.2 <= current < 1.5:
            current_adj = 10
        elif current > 3.0:
            current_adj = 5
        elif current < 1.0:
            current_adj = -20
        else:
            current_adj = 0

    quick_adj: float | None = None
    if quick is not None:
        quick_adj = 15 if quick >= 1.0 else 5 if quick >= 0.8 else -10

    cash_adj: float | None = None
    if cash is not None:
        cash_adj = 15 if cash >= 0.2 else 5 if cash >= 0.1 else -5

    return _band_score([current_adj, quick_adj, cash_adj])


def calculate_solvency_score(ratios: Mapping[str, float | None]) -> float | None:
    de = ratios.get("debt_to_equity")
    debt_ratio = ratios.get("debt_ratio")
    coverage = ratios.get("interest_coverage")

    de_adj: float | None = None
    if de is not None:
        if de <= 0.3:
            de_adj = 25
        elif de <= 0.5:
            de_adj = 15
        elif de <= 1.0:
            de_adj = 5
        elif de <= 2.0:
            de_adj = -10
        else:
            de_adj = -25

    dr_adj: float | None = None
    if debt_ratio is not None:
        if debt_ratio <= 0.3:
            dr_adj = 15
        elif debt_ratio <= 0.5:
            dr_adj = 5
        elif debt_ratio <= 0.7:
            dr_adj = -5
        else:
            dr_adj = -15

    cov_adj: float | None = None
    if coverage is not None:
        if coverage >= 10:
            cov_adj = 10
        elif coverage >= 5:
            cov_adj = 5
        elif coverage >= 2.5:
            cov_adj = 0
        elif coverage >= 1.5:
            cov_adj = -10
        else:
            cov_adj = -20

    return _band_score([de_adj, dr_adj, cov_adj])


def calculate_efficiency_score(ratios: Mapping[str, float | None]) -> float | None:
    asset = ratios.get("asset_turnover")
    inventory = ratios.get("inventory_turnover")
    receivables = ratios.get("receivables_turnover")

    asset_adj: float | None = None
    if asset is not None:
        if asset >= 1.0:
            asset_adj = 20
        elif asset >= 0.7:
            asset_adj = 10
        elif asset >= 0.5:
            asset_adj = 5
        else:
            asset_adj = -5

    inv_adj: float | None = None
    if inventory is not None:
        if inventory >= 8:
            inv_adj = 15
        elif inventory >= 4:
            inv_adj = 10
        elif inventory >= 2:
            inv_adj = 5
        else:
            inv_adj = -5

    rec_adj: float | None = None
    if receivables is not None:
        if receivables >= 10:
            rec_adj = 15
        elif receivables >= 6:
            rec_adj = 10
        elif receivables >= 4:
            rec_adj = 5
        else:
            rec_adj = -5

    return _band_score([asset_adj, inv_adj, rec_adj])


def calculate_altman_z(fin: CompanyFinancials) -> float | None:
    """
    Altman Z-Score.

    Z = 1.2*WC/TA + 1.4*RE/TA + 3.3*EBIT/TA + 0.6*MV/TL + 1.0*Sales/TA

    Returns None when any input is missing or total assets/liabilities
    are not positive.
    """
    working_capital = fin.working_capital
    if working_capital is None and fin.current_assets is not None and fin.current_liabilities is not None:
        working_capital = fin.current_assets - fin.current_liabilities

    inputs = (
        working_capital,
        fin.retained_earnings,
        fin.ebit,
        fin.market_cap,
        fin.total_revenue,
        fin.total_assets,
        fin.total_liabilities,
    )
    if any(v is None for v in inputs):
        return None
    ta = fin.total_assets
    tl = fin.total_liabilities
    if ta <= 0 or tl <= 0:
        return None

    z = (
        1.2 * (working_capital / ta)
        + 1.4 * (fin.retained_earnings / ta)
        + 3.3 * (fin.ebit / ta)
        + 0.6 * (fin.market_cap / tl)
        + 1.0 * (fin.total_revenue / ta)
    )
    return round(z, 2)


def bankruptcy_risk(z_score: float | None) -> str | None:
    """low above 2.99, medium above 1.8, high otherwise."""
    if z_score is None:
        return None
    if z_score > 2.99:
        return "low"
    if z_score > 1.8:
        return "medium"
    return "high"


def strength_rating(score: float | None) -> str | None:
    if score is None:
        return None
    if score >= 80:
        return "excellent"
    if score >= 70:
        return "strong"
    if score >= 50:
        return "moderate"
    if score >= 30:
        return "weak"
    return "poor"


def risk_level(score: float | None) -> str | None:
    if score is None:
        return None
    if score >= 75:
        return "low"
    if score >= 50:
        return "medium"
    return "high"


def assess_financial_health(
    fin: CompanyFinancials, ratios: Mapping[str, float | None]
) -> FinancialHealth:
    liquidity = calculate_liquidity_score(ratios)
    solvency = calculate_solvency_score(ratios)
    efficiency = calculate_efficiency_score(ratios)
    overall = average([liquidity, solvency, efficiency])
    overall = round_half_up(overall) if overall is not None else None
    z_score = calculate_altman_z(fin)

    return FinancialHealth(
        liquidity_score=liquidity,
        solvency_score=solvency,
        efficiency_score=efficiency,
        overall_score=overall,
        strength_rating=strength_rating(overall),
        risk_level=risk_level(overall),
        altman_z_score=z_score,
        bankruptcy_risk=bankruptcy_risk(z_score),
    )


def compare_to_sector(
    ratios: Mapping[str, float | None], benchmark: SectorBenchmark
) -> tuple[dict[str, PeerMetric], float | None]:
    """
    PE/PB/ROE/Debt-Equity against sector averages.

    Returns:
        (per-metric comparison, overall sector score from assessment labels)
    """
    metrics: tuple[tuple[str, str, float, Direction], ...] = (
        ("pe_ratio", "pe_ratio", benchmark.avg_pe, "lower_better"),
        ("pb_ratio", "pb_ratio", benchmark.avg_pb, "lower_better"),
        ("roe", "roe", benchmark.avg_roe, "higher_better"),
        ("debt_to_equity", "debt_to_equity", benchmark.avg_debt_to_equity, "lower_better"),
    )
    comparison: dict[str, PeerMetric] = {}
    assessed: list[float] = []
    for name, key, sector_avg, direction in metrics:
        value = ratios.get(key)
        assessment = assess_metric(value, sector_avg, direction)
        comparison[name] = PeerMetric(
            company=value,
            sector_avg=sector_avg,
            percentile=sector_percentile(value, sector_avg, direction),
            assessment=assessment,
            direction=direction,
        )
        if assessment is not None:
            assessed.append(ASSESSMENT_SCORES[assessment])

    sector_score = round_half_up(sum(assessed) / len(assessed)) if assessed else None
    return comparison, sector_score


def _relative_price_score(value: float | None, benchmark: float) -> float | None:
    """100 at zero, 50 at the sector average, clamped; ignores non-positive ratios."""
    if value is None or value <= 0 or benchmark <= 0:
        return None
    return clamp(100 - (value / benchmark - 1) * 50)


def calculate_value_score(ratios: Mapping[str, float | None], benchmark: SectorBenchmark) -> float | None:
    pe_score = _relative_price_score(ratios.get("pe_ratio"), benchmark.avg_pe)
    pb_score = _relative_price_score(ratios.get("pb_ratio"), benchmark.avg_pb)
    dividend_yield = ratios.get("dividend_yield")
    if pe_score is None and pb_score is None and dividend_yield is None:
        return None

    score = 50.0
    if pe_score is not None:
        score += (pe_score - 50) * 0.3
    if pb_score is not None:
        score += (pb_score - 50) * 0.2
    if dividend_yield is not None and dividend_yield > 2:
        score += min(10, dividend_yield - 2)
    return round_half_up(clamp(score))


def _bounded(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def calculate_growth_score(growth: Mapping[str, float | None]) -> float | None:
    revenue = growth.get("avg_revenue_growth")
    earnings = growth.get("avg_earnings_growth")
    if revenue is None and earnings is None:
        return None
    score = 50.0
    if revenue is not None:
        score += _bounded(revenue * 2, 25)
    if earnings is not None:
        score += _bounded(earnings * 1.5, 25)
    return round_half_up(clamp(score))


def calculate_quality_score(ratios: Mapping[str, float | None]) -> float | None:
    roe = ratios.get("roe")
    margin = ratios.get("profit_margin")
    de = ratios.get("debt_to_equity")
    if roe is None and margin is None and de is None:
        return None
    score = 50.0
    if roe is not None:
        score += _bounded((roe - 15) * 2, 20)
    if margin is not None:
        score += _bounded((margin - 10) * 1.5, 15)
    if de is not None:
        score += _bounded((1 - de) * 15, 15)
    return round_half_up(clamp(score))


def calculate_momentum_score(growth: Mapping[str, float | None]) -> float | None:
    earnings = growth.get("earnings_growth_1y")
    revenue = growth.get("revenue_growth_1y")
    if earnings is None and revenue is None:
        return None
    score = 50.0
    if earnings is not None:
        score += _bounded(earnings * 2, 30)
    if revenue is not None:
        score += _bounded(revenue * 1.5, 20)
    return round_half_up(clamp(score))


def composite_score(
    parts: Mapping[str, float | None],
    weights: Mapping[str, float] = FUNDAMENTAL_SCORE_WEIGHTS,
) -> float | None:
    """Weighted mean over the present sub-scores, weights renormalized."""
    total = 0.0
    weight_sum = 0.0
    for name, weight in weights.items():
        value = parts.get(name)
        if value is not None and weight > 0:
            total += value * weight
            weight_sum += weight
    if weight_sum == 0:
        return None
    return round_half_up(total / weight_sum)


def interpret_composite(score: float | None) -> str | None:
    if score is None:
        return None
    if score >= 80:
        return "excellent_value"
    if score >= 70:
        return "good_value"
    if score >= 60:
        return "fair_value"
    if score >= 40:
        return "overvalued"
    return "significantly_overvalued"


def overall_valuation(score: float | None) -> str | None:
    if score is None:
        return None
    if score >= 70:
        return "undervalued"
    if score >= 55:
        return "fairly_valued"
    return "overvalued"


def recommendation_confidence(scores: ValuationScores, health: FinancialHealth) -> int:
    """
    50, plus up to 30 when the four sub-scores agree (low std dev), plus 10
    for strong financial health.
    """
    confidence = 50.0
    present = [
        s for s in (scores.value, scores.growth, scores.quality, scores.momentum) if s is not None
    ]
    if len(present) >= 2:
        confidence += max(0.0, 30 - statistics.pstdev(present))
    if health.overall_score is not None and health.overall_score > 70:
        confidence += 10
    return round_half_up(clamp(confidence))


def analyze_trend(history: Sequence[float | None]) -> str:
    """
    Direction of a metric history: compare the last three points to the rest.

    Returns:
        "improving" (> +5%), "declining" (< -5%), "stable", or
        "insufficient_data" with fewer than two points or no earlier baseline
    """
    values = [v for v in history if v is not None and not math.isnan(v)]
    if len(values) < 2:
        return "insufficient_data"

    recent = values[-3:]
    older = values[:-3]
    if not older:
        return "insufficient_data"

    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    if older_avg == 0:
        return "insufficient_data"

    change = (recent_avg - older_avg) / abs(older_avg)
    if change > 0.05:
        return "improving"
    if change < -0.05:
        return "declining"
    return "stable"


_PROFITABILITY_HISTORIES = (
    ("gross_margin_trend", "gross_margin_history"),
    ("operating_margin_trend", "operating_margin_history"),
    ("net_margin_trend", "net_margin_history"),
    ("roe_trend", "roe_history"),
    ("roa_trend", "roa_history"),
    ("roic_trend", "roic_history"),
)


def calculate_profitability(fin: CompanyFinancials) -> dict[str, str]:
    """Trend of each margin and return history, keyed like ``net_margin_trend``."""
    return {
        name: analyze_trend(getattr(fin, history))
        for name, history in _PROFITABILITY_HISTORIES
    }


def analyze_fundamentals(
    fin: CompanyFinancials | None,
    sector: str | None = None,
    benchmarks: Mapping[str, SectorBenchmark] = SECTOR_BENCHMARKS,
) -> FundamentalSnapshot:
    """
    Full fundamental analysis for one company.

    Args:
        fin: Company financial fields (partial data is fine)
        sector: Benchmark sector; resolved from fin.sector when omitted
        benchmarks: Sector benchmark table

    Returns:
        FundamentalSnapshot

    Raises:
        ValueError: If fin is None
    """
    if fin is None:
        raise ValueError("Company financials are required")

    sector_name = sector if sector in benchmarks else resolve_sector(sector or fin.sector, benchmarks)
    benchmark = get_benchmark(sector_name, benchmarks)

    ratios = calculate_ratios(fin)
    growth = calculate_growth(fin)
    profitability = calculate_profitability(fin)
    health = assess_financial_health(fin, ratios)
    peers, sector_score = compare_to_sector(ratios, benchmark)

    parts = {
        "value": calculate_value_score(ratios, benchmark),
        "growth": calculate_growth_score(growth),
        "quality": calculate_quality_score(ratios),
        "momentum": calculate_momentum_score(growth),
    }
    composite = composite_score(parts)
    scores = ValuationScores(composite=composite, **parts)

    summary = average([composite, health.overall_score, sector_score])
    recommendation = {
        "action": action_for_score(summary) if summary is not None else None,
        "confidence": recommendation_confidence(scores, health),
        "average_score": safe_round(summary, 1),
        "risk_rating": health.risk_level,
    }

    logger.debug(
        f"Fundamentals for {fin.symbol} ({sector_name}): composite={composite} "
        f"health={health.overall_score} sector={sector_score}"
    )

    return FundamentalSnapshot(
        symbol=fin.symbol,
        sector=sector_name,
        ratios=ratios,
        growth=growth,
        profitability=profitability,
        financial_health=health,
        peer_comparison=peers,
        sector_score=sector_score,
        scores=scores,
        valuation={
            "interpretation": interpret_composite(composite),
            "overall_valuation": overall_valuation(composite),
        },
        recommendation=recommendation,
    )
