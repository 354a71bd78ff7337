"""Immutable scoring tables and environment-driven settings.

The tables are plain frozen dataclasses held in read-only mappings. Engines
and the orchestrator take them as arguments (defaulting to the values here),
so tests can pass alternate weights or benchmarks.
"""

import math
import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

# Concurrency and timeouts for the orchestrator
MAX_CONCURRENCY = int(os.environ.get("ADVISOR_MAX_CONCURRENCY", "5"))
BRANCH_TIMEOUT_SECONDS = float(os.environ.get("ADVISOR_BRANCH_TIMEOUT", "10.0"))
BATCH_TIMEOUT_SECONDS = float(os.environ.get("ADVISOR_BATCH_TIMEOUT", "120.0"))

# Records below this confidence are dropped from ranked batches
MIN_CONFIDENCE = 25

_DEFAULT_UNIVERSE = (
    "AAPL,MSFT,GOOGL,AMZN,NVDA,META,JPM,V,JNJ,UNH,"
    "XOM,PG,HD,MA,CVX,KO,PEP,WMT,BAC,DIS"
)
DEFAULT_UNIVERSE: tuple[str, ...] = tuple(
    s.strip().upper()
    for s in os.environ.get("ADVISOR_UNIVERSE", _DEFAULT_UNIVERSE).split(",")
    if s.strip()
)


@dataclass(frozen=True)
class WeightProfile:
    """Blend weights for one horizon. Must be non-negative and sum to 1."""

    technical: float
    fundamental: float
    sentiment: float

    def __post_init__(self) -> None:
        parts = (self.technical, self.fundamental, self.sentiment)
        if any(w < 0 for w in parts):
            raise ValueError(f"Weights must be non-negative: {parts}")
        if not math.isclose(sum(parts), 1.0, abs_tol=1e-9):
            raise ValueError(f"Weights must sum to 1.0, got {sum(parts)}")

    def as_dict(self) -> dict[str, float]:
        return {
            "technical": self.technical,
            "fundamental": self.fundamental,
            "sentiment": self.sentiment,
        }


HORIZON_WEIGHTS: Mapping[str, WeightProfile] = MappingProxyType(
    {
        "daily": WeightProfile(technical=0.60, fundamental=0.10, sentiment=0.30),
        "weekly": WeightProfile(technical=0.50, fundamental=0.25, sentiment=0.25),
        "monthly": WeightProfile(technical=0.30, fundamental=0.50, sentiment=0.20),
        "yearly": WeightProfile(technical=0.15, fundamental=0.75, sentiment=0.10),
    }
)


@dataclass(frozen=True)
class HorizonPolicy:
    """
    Per-horizon fetch window, batch size and price-target multipliers.

    target = price * (target_base + (confidence - 50) * target_sensitivity)
    stop   = price * (stop_base - (confidence - 50) * stop_sensitivity)

    The multipliers are heuristics, kept here so they can be tuned without
    touching the orchestrator.
    """

    history_period: str
    default_limit: int
    period_label: str
    target_base: float
    target_sensitivity: float
    stop_base: float
    stop_sensitivity: float
    # yearly batches scan the whole universe instead of limit * 2
    scan_full_universe: bool = False


HORIZON_POLICIES: Mapping[str, HorizonPolicy] = MappingProxyType(
    {
        "daily": HorizonPolicy("1mo", 10, "1 day", 1.02, 0.0005, 0.98, 0.0002),
        "weekly": HorizonPolicy("3mo", 15, "1 week", 1.05, 0.001, 0.95, 0.0005),
        "monthly": HorizonPolicy("1y", 15, "1 month", 1.10, 0.002, 0.90, 0.001),
        "yearly": HorizonPolicy(
            "5y", 20, "1 year", 1.20, 0.004, 0.85, 0.002, scan_full_universe=True
        ),
    }
)


@dataclass(frozen=True)
class SectorBenchmark:
    """Reference averages for one sector. Growth and margin are percentages."""

    avg_pe: float
    avg_pb: float
    avg_roe: float
    avg_debt_to_equity: float
    avg_revenue_growth: float
    avg_profit_margin: float
    avg_current_ratio: float


SECTOR_BENCHMARKS: Mapping[str, SectorBenchmark] = MappingProxyType(
    {
        "Technology": SectorBenchmark(25, 4.5, 18, 0.3, 15, 20, 2.5),
        "Banking": SectorBenchmark(12, 1.2, 15, 6.5, 8, 25, 1.1),
        "Energy": SectorBenchmark(15, 1.8, 12, 0.8, 5, 8, 1.5),
        "Healthcare": SectorBenchmark(22, 3.2, 16, 0.4, 12, 15, 2.0),
        "Consumer Goods": SectorBenchmark(18, 2.8, 14, 0.5, 7, 12, 1.8),
        "Industrials": SectorBenchmark(16, 2.2, 13, 0.6, 6, 10, 1.6),
        "Telecommunications": SectorBenchmark(14, 1.5, 11, 1.2, 3, 18, 1.2),
        "Utilities": SectorBenchmark(13, 1.4, 10, 0.9, 2, 15, 1.3),
        "Materials": SectorBenchmark(17, 2.0, 12, 0.7, 4, 8, 1.7),
        "Real Estate": SectorBenchmark(20, 1.6, 8, 1.5, 6, 20, 1.4),
    }
)

DEFAULT_SECTOR = "Technology"

# Generic price-to-sales reference when no sector figure exists
GENERIC_PS_BENCHMARK = 2.5

# Fundamental composite weights (value/growth/quality/momentum)
FUNDAMENTAL_SCORE_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {"value": 0.25, "growth": 0.25, "quality": 0.30, "momentum": 0.20}
)

# Quality composite weights
QUALITY_DIMENSION_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {"growth": 0.25, "value": 0.20, "quality": 0.30, "momentum": 0.15, "stability": 0.10}
)
