"""Typed records flowing between providers, engines and the orchestrator.

Every record is a frozen dataclass; engines build them once and nothing
mutates them afterwards. ``to_dict()`` produces the JSON-ready form used by
the server.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal, Mapping

from stock_advisor.utils.normalize import parse_number, sanitize_text

Horizon = Literal["daily", "weekly", "monthly", "yearly"]
Action = Literal["strong_buy", "buy", "hold", "sell", "strong_sell"]
Trend = Literal["bullish", "bearish", "neutral"]
SubScoreStatus = Literal["measured", "neutral_default", "skipped"]

NEUTRAL_SCORE = 50.0


def action_for_score(score: float) -> Action:
    """Five-tier action ladder: strong_buy >= 80, buy >= 65, hold >= 45, sell >= 30."""
    if score >= 80:
        return "strong_buy"
    if score >= 65:
        return "buy"
    if score >= 45:
        return "hold"
    if score >= 30:
        return "sell"
    return "strong_sell"


def _parse_history(value: Any) -> tuple[float, ...]:
    if not value:
        return ()
    parsed = (parse_number(v) for v in value)
    return tuple(v for v in parsed if v is not None)


@dataclass(frozen=True)
class CompanyFinancials:
    """
    Raw per-company financial fields, all optional.

    Units:
        - price ratios, liquidity/leverage/efficiency ratios: plain multiples
          (debt_to_equity 0.5 means 50% debt to equity)
        - margins, returns, yields and growth rates: fractions (0.12 = 12%)
        - balance sheet and income figures: absolute currency units
        - histories: chronological (oldest first), one point per fiscal year;
          revenue/profit in currency, margins and returns as fractions
    """

    symbol: str
    name: str | None = None
    sector: str | None = None

    # Price ratios
    pe_ratio: float | None = None
    forward_pe: float | None = None
    peg_ratio: float | None = None
    price_to_book: float | None = None
    price_to_sales: float | None = None
    ev_to_ebitda: float | None = None

    # Profitability (fractions)
    gross_margin: float | None = None
    operating_margin: float | None = None
    profit_margin: float | None = None
    return_on_equity: float | None = None
    return_on_assets: float | None = None
    return_on_invested_capital: float | None = None

    # Dividends (fractions)
    dividend_yield: float | None = None
    payout_ratio: float | None = None

    # Liquidity
    current_ratio: float | None = None
    quick_ratio: float | None = None
    cash_ratio: float | None = None

    # Leverage
    debt_to_equity: float | None = None
    debt_ratio: float | None = None
    interest_coverage: float | None = None

    # Efficiency
    asset_turnover: float | None = None
    inventory_turnover: float | None = None
    receivables_turnover: float | None = None

    # Growth (fractions)
    revenue_growth_1y: float | None = None
    revenue_growth_3y: float | None = None
    revenue_growth_5y: float | None = None
    earnings_growth_1y: float | None = None
    earnings_growth_3y: float | None = None
    earnings_growth_5y: float | None = None
    book_value_growth_1y: float | None = None
    book_value_growth_3y: float | None = None
    dividend_growth_1y: float | None = None
    dividend_growth_3y: float | None = None

    # Statement figures
    total_assets: float | None = None
    total_liabilities: float | None = None
    current_assets: float | None = None
    current_liabilities: float | None = None
    cash_and_equivalents: float | None = None
    inventory: float | None = None
    working_capital: float | None = None
    retained_earnings: float | None = None
    ebit: float | None = None
    total_revenue: float | None = None
    market_cap: float | None = None
    beta: float | None = None

    # Multi-year histories
    revenue_history: tuple[float, ...] = ()
    profit_history: tuple[float, ...] = ()
    roe_history: tuple[float, ...] = ()
    roa_history: tuple[float, ...] = ()
    roic_history: tuple[float, ...] = ()
    gross_margin_history: tuple[float, ...] = ()
    operating_margin_history: tuple[float, ...] = ()
    net_margin_history: tuple[float, ...] = ()

    @classmethod
    def from_mapping(cls, symbol: str, data: Mapping[str, Any]) -> "CompanyFinancials":
        """
        Build from a loose mapping, normalizing every numeric field.

        Unknown keys are ignored; unparsable values become None.
        """
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "symbol" or f.name not in data:
                continue
            raw = data[f.name]
            if f.name in ("name", "sector"):
                kwargs[f.name] = sanitize_text(raw, max_length=100) if raw else None
            elif f.name.endswith("_history"):
                kwargs[f.name] = _parse_history(raw)
            else:
                kwargs[f.name] = parse_number(raw)
        return cls(symbol=symbol, **kwargs)


@dataclass(frozen=True)
class TechnicalSnapshot:
    indicators: dict[str, float | None]
    signals: dict[str, str]
    trend: Trend
    strength: int
    support: tuple[float, ...]
    resistance: tuple[float, ...]
    momentum: dict[str, str | None]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FinancialHealth:
    liquidity_score: float | None
    solvency_score: float | None
    efficiency_score: float | None
    overall_score: float | None
    strength_rating: str | None
    risk_level: str | None
    altman_z_score: float | None
    bankruptcy_risk: str | None


@dataclass(frozen=True)
class PeerMetric:
    company: float | None
    sector_avg: float
    percentile: int | None
    assessment: str | None
    direction: str


@dataclass(frozen=True)
class ValuationScores:
    value: float | None
    growth: float | None
    quality: float | None
    momentum: float | None
    composite: float | None


@dataclass(frozen=True)
class FundamentalSnapshot:
    symbol: str
    sector: str
    ratios: dict[str, float | None]
    growth: dict[str, float | None]
    profitability: dict[str, str]
    financial_health: FinancialHealth
    peer_comparison: dict[str, PeerMetric]
    sector_score: float | None
    scores: ValuationScores
    valuation: dict[str, str | None]
    recommendation: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrendReading:
    direction: Literal["Improving", "Stable", "Declining", "Unknown"]
    strength: Literal["High", "Medium", "Low"]
    relative_slope: float | None = None


@dataclass(frozen=True)
class ValuationEvaluation:
    verdict: str
    confidence: str
    valuation_ratio: float | None


@dataclass(frozen=True)
class SectorComparison:
    rankings: dict[str, str]
    percentiles: dict[str, int]
    overall_percentile: float | None
    overall_ranking: str


@dataclass(frozen=True)
class RiskAssessment:
    overall: Literal["Low", "Medium", "High"]
    factors: tuple[str, ...]


@dataclass(frozen=True)
class QualityAnalysis:
    symbol: str
    sector: str
    quality_dimensions: dict[str, float]
    quality_score: float
    quality_grade: str
    evaluation: ValuationEvaluation
    financial_trends: dict[str, TrendReading]
    overall_trend: Literal["Improving", "Stable", "Declining", "Unknown"]
    sector_comparison: SectorComparison
    risk_assessment: RiskAssessment
    recommendations: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SentimentReading:
    label: Literal["positive", "negative", "neutral"]
    score: float
    article_count: int
    positive_count: int = 0
    negative_count: int = 0
    neutral_count: int = 0
    headlines: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SubScore:
    """
    One branch score with its provenance.

    ``measured``: computed from data. ``neutral_default``: the branch failed
    and 50 stands in. ``skipped``: the horizon gives the branch zero weight.
    """

    value: float | None
    status: SubScoreStatus
    error: str | None = None

    @classmethod
    def measured(cls, value: float) -> "SubScore":
        return cls(value=value, status="measured")

    @classmethod
    def neutral_default(cls, error: str | None = None) -> "SubScore":
        return cls(value=None, status="neutral_default", error=error)

    @classmethod
    def skipped(cls) -> "SubScore":
        return cls(value=None, status="skipped")

    @property
    def effective(self) -> float | None:
        """Score used for blending: measured value, 50 for defaults, None if skipped."""
        if self.status == "measured":
            return self.value
        if self.status == "neutral_default":
            return NEUTRAL_SCORE
        return None


@dataclass(frozen=True)
class QualitySummary:
    score: float | None
    grade: str
    evaluation: str
    financial_trend: str
    sector_ranking: str

    @classmethod
    def unknown(cls) -> "QualitySummary":
        return cls(
            score=None,
            grade="Unknown",
            evaluation="Unknown",
            financial_trend="Unknown",
            sector_ranking="Unknown",
        )


@dataclass(frozen=True)
class RecommendationRecord:
    symbol: str
    time_horizon: Horizon
    current_price: float | None
    scores: dict[str, SubScore]
    confidence: int
    action: Action
    target_price: float | None
    stop_loss: float | None
    entry_point: float | None
    reasons: tuple[str, ...]
    risks: tuple[str, ...]
    sector: str
    quality: QualitySummary = field(default_factory=QualitySummary.unknown)
    sentiment: SentimentReading | None = None
    technical: TechnicalSnapshot | None = field(default=None, repr=False, compare=False)
    fundamental: FundamentalSnapshot | None = field(default=None, repr=False, compare=False)

    def score(self, name: str) -> float | None:
        """Effective blended score for a branch (technical/fundamental/sentiment)."""
        sub = self.scores.get(name)
        return sub.effective if sub else None

    @property
    def has_measurements(self) -> bool:
        """True when a price or at least one branch was actually measured."""
        if self.current_price is not None:
            return True
        return any(s.status == "measured" for s in self.scores.values())

    def to_dict(self, include_detail: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {
            "symbol": self.symbol,
            "time_horizon": self.time_horizon,
            "current_price": self.current_price,
            "sector": self.sector,
            "scores": {name: self.score(name) for name in self.scores},
            "score_status": {name: asdict(sub) for name, sub in self.scores.items()},
            "confidence": self.confidence,
            "action": self.action,
            "target_price": self.target_price,
            "stop_loss": self.stop_loss,
            "entry_point": self.entry_point,
            "reasons": list(self.reasons),
            "risks": list(self.risks),
            "quality": asdict(self.quality),
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
        }
        if include_detail:
            result["technical"] = self.technical.to_dict() if self.technical else None
            result["fundamental"] = self.fundamental.to_dict() if self.fundamental else None
        return result


@dataclass(frozen=True)
class RankedBatch:
    time_horizon: Horizon
    period: str
    recommendations: tuple[RecommendationRecord, ...]
    generated_at: str
    total_analyzed: int
    successful_analyses: int
    failed_symbols: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_horizon": self.time_horizon,
            "period": self.period,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "generated_at": self.generated_at,
            "total_analyzed": self.total_analyzed,
            "successful_analyses": self.successful_analyses,
            "failed_symbols": list(self.failed_symbols),
        }


@dataclass(frozen=True)
class TradingStrategy:
    entry: str | None
    exit: str | None
    risk_management: str | None
    position_sizing: str | None


@dataclass(frozen=True)
class BestPick:
    pick_type: Literal["stock_of_the_week", "stock_of_the_month"]
    record: RecommendationRecord
    technical_summary: dict[str, Any]
    fundamental_summary: dict[str, Any]
    key_highlights: tuple[str, ...]
    trading_strategy: TradingStrategy
    selection_score: float
    valid_until: str
    candidates_considered: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "pick_type": self.pick_type,
            "recommendation": self.record.to_dict(),
            "technical_summary": self.technical_summary,
            "fundamental_summary": self.fundamental_summary,
            "key_highlights": list(self.key_highlights),
            "trading_strategy": asdict(self.trading_strategy),
            "selection_score": self.selection_score,
            "valid_until": self.valid_until,
            "candidates_considered": self.candidates_considered,
        }


@dataclass(frozen=True)
class DeepAnalysis:
    symbol: str
    time_horizon: Horizon
    record: RecommendationRecord
    technical_detail: dict[str, Any] | None
    fundamental_detail: dict[str, Any] | None
    quality: QualityAnalysis | None
    market_context: dict[str, Any]
    risk_assessment: dict[str, Any]
    catalysts: dict[str, Any]
    competitive_position: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "time_horizon": self.time_horizon,
            "recommendation": self.record.to_dict(),
            "detailed_technical_analysis": self.technical_detail,
            "detailed_fundamental_analysis": self.fundamental_detail,
            "quality_analysis": self.quality.to_dict() if self.quality else None,
            "market_context": self.market_context,
            "risk_assessment": self.risk_assessment,
            "catalysts": self.catalysts,
            "competitive_position": self.competitive_position,
        }
