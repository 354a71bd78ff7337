"""Pure scoring engines: technical, fundamental, quality and sentiment."""

from stock_advisor.engines.fundamental import analyze_fundamentals, analyze_trend, calculate_altman_z
from stock_advisor.engines.quality import analyze_quality, detect_trend
from stock_advisor.engines.sector import resolve_sector, sector_percentile
from stock_advisor.engines.sentiment import extract_articles, summarize_sentiment
from stock_advisor.engines.technical import analyze_technicals

__all__ = [
    "analyze_fundamentals",
    "analyze_quality",
    "analyze_technicals",
    "analyze_trend",
    "calculate_altman_z",
    "detect_trend",
    "extract_articles",
    "resolve_sector",
    "sector_percentile",
    "summarize_sentiment",
]
