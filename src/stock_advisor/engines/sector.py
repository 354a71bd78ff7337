"""Sector resolution and benchmark-relative bucketing."""

import logging
from typing import Literal, Mapping

from stock_advisor.config import DEFAULT_SECTOR, SECTOR_BENCHMARKS, SectorBenchmark

logger = logging.getLogger(__name__)

Direction = Literal["lower_better", "higher_better"]

# Keyword -> canonical sector. First match wins, so order matters
# ("consumer" must not shadow "communication", etc.)
_SECTOR_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("technology", "software", "semiconductor"), "Technology"),
    (("bank", "financial"), "Banking"),
    (("energy", "oil"), "Energy"),
    (("health", "pharma", "biotech"), "Healthcare"),
    (("consumer",), "Consumer Goods"),
    (("industrial",), "Industrials"),
    (("telecom", "communication"), "Telecommunications"),
    (("utilities", "utility"), "Utilities"),
    (("materials", "mining"), "Materials"),
    (("real estate", "reit"), "Real Estate"),
)

# Ratio thresholds (company / benchmark) for lower-is-better metrics;
# higher-is-better metrics use the reciprocal ladder
_LOWER_BETTER_STEPS = (0.7, 0.85, 1.15, 1.3)
_HIGHER_BETTER_STEPS = (1.3, 1.15, 0.85, 0.7)
_ASSESSMENTS = ("excellent", "good", "average", "below_average", "poor")
_PERCENTILES = (90, 75, 50, 25, 10)

ASSESSMENT_SCORES: Mapping[str, int] = {
    "excellent": 90,
    "good": 75,
    "average": 50,
    "below_average": 30,
    "poor": 15,
}


def resolve_sector(raw: str | None, benchmarks: Mapping[str, SectorBenchmark] = SECTOR_BENCHMARKS) -> str:
    """
    Map a vendor sector string onto a benchmark sector name.

    Exact benchmark names pass through; otherwise keywords decide, and
    anything unrecognized falls back to DEFAULT_SECTOR.
    """
    if not raw:
        return DEFAULT_SECTOR
    if raw in benchmarks:
        return raw
    lowered = raw.lower()
    for keywords, sector in _SECTOR_KEYWORDS:
        if any(k in lowered for k in keywords):
            return sector
    logger.debug(f"Unrecognized sector '{raw}', using {DEFAULT_SECTOR}")
    return DEFAULT_SECTOR


def get_benchmark(
    sector: str,
    benchmarks: Mapping[str, SectorBenchmark] = SECTOR_BENCHMARKS,
) -> SectorBenchmark:
    """Benchmark for a sector, falling back to the default sector."""
    return benchmarks.get(sector) or benchmarks[DEFAULT_SECTOR]


def _bucket(value: float | None, benchmark: float, direction: Direction) -> int | None:
    """Index into the 5-step ladder, 0 = best. None when not comparable."""
    if value is None or not benchmark or benchmark <= 0:
        return None
    if direction == "lower_better":
        # Negative PE/PB/leverage is not "cheap"; leave it unranked
        if value <= 0:
            return None
        ratio = value / benchmark
        for i, step in enumerate(_LOWER_BETTER_STEPS):
            if ratio <= step:
                return i
        return len(_LOWER_BETTER_STEPS)

    ratio = value / benchmark
    for i, step in enumerate(_HIGHER_BETTER_STEPS):
        if ratio >= step:
            return i
    return len(_HIGHER_BETTER_STEPS)


def sector_percentile(value: float | None, benchmark: float, direction: Direction) -> int | None:
    """
    Bucketed percentile (90/75/50/25/10) of a metric against its sector average.

    Monotonic: as the value worsens relative to the benchmark (direction-aware),
    the percentile never increases.
    """
    idx = _bucket(value, benchmark, direction)
    return None if idx is None else _PERCENTILES[idx]


def assess_metric(value: float | None, benchmark: float, direction: Direction) -> str | None:
    """Assessment label (excellent..poor) for a metric against its sector average."""
    idx = _bucket(value, benchmark, direction)
    return None if idx is None else _ASSESSMENTS[idx]


def ranking_tier(percentile: float | None) -> str:
    """Convert a percentile into a ranking tier."""
    if percentile is None:
        return "Unknown"
    if percentile >= 80:
        return "Top Tier"
    if percentile >= 60:
        return "Above Average"
    if percentile >= 40:
        return "Average"
    if percentile >= 20:
        return "Below Average"
    return "Bottom Tier"
