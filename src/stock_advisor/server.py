"""Stock Advisor MCP Server using FastMCP."""

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastmcp import FastMCP

from stock_advisor import SCHEMA_VERSION, SERVER_VERSION
from stock_advisor.data.yfinance_client import shutdown_executor
from stock_advisor.tools.recommendations import RecommendationEngine
from stock_advisor.utils.normalize import sanitize_nan_inf

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="stock-advisor",
)

_engine: RecommendationEngine | None = None


def get_engine() -> RecommendationEngine:
    """Shared engine over the yfinance providers, created on first use."""
    global _engine
    if _engine is None:
        _engine = RecommendationEngine()
    return _engine


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(sanitize_nan_inf(payload), indent=2, default=str)


# ============================================================================
# RESPONSE ENVELOPE
# ============================================================================

# What each recommendation branch reads from yfinance
DATA_FEEDS = {
    "technical": "daily OHLCV history (yf.download, adjusted)",
    "fundamental": "Ticker.info, annual balance sheet and income statement",
    "sentiment": "Ticker.news, last 7 days, keyword scored",
}


def build_meta(tool: str, start: float | None = None) -> dict[str, Any]:
    """Versions and tool name; duration when the call's start time is given."""
    meta: dict[str, Any] = {
        "server_version": SERVER_VERSION,
        "schema_version": SCHEMA_VERSION,
        "tool": tool,
    }
    if start is not None:
        meta["duration_ms"] = round((perf_counter() - start) * 1000, 1)
    return meta


def build_provenance() -> dict[str, Any]:
    return {
        "source": "yfinance",
        "feeds": DATA_FEEDS,
        "as_of": datetime.now(timezone.utc).isoformat(),
    }


def build_error_response(
    tool: str, error_type: str, message: str, symbol: str | None = None
) -> str:
    """
    JSON error envelope.

    error_type is invalid_input (bad symbol, horizon or limit) or
    no_candidate (best-pick found nothing to recommend).
    """
    response: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
        "meta": build_meta(tool),
    }
    if symbol is not None:
        response["symbol"] = symbol
    return _dumps(response)


def _respond(tool: str, start: float, body: dict[str, Any]) -> str:
    return _dumps({"meta": build_meta(tool, start), "data_provenance": build_provenance(), **body})


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def get_recommendations(horizon: str = "monthly", limit: int | None = None) -> str:
    """
    Rank the configured stock universe for a holding horizon.

    Args:
        horizon: daily, weekly, monthly or yearly
        limit: Maximum number of recommendations (default depends on horizon)

    Returns:
        JSON with recommendations sorted by confidence, plus analysis counts
    """
    start = perf_counter()
    try:
        batch = await get_engine().rank(horizon, limit=limit)
    except ValueError as e:
        return build_error_response("get_recommendations", "invalid_input", str(e))
    return _respond("get_recommendations", start, batch.to_dict())


@mcp.tool
async def analyze_symbol(symbol: str, horizon: str = "monthly") -> str:
    """
    Score one stock for a holding horizon.

    Combines technical, fundamental and news-sentiment scores using the
    horizon's weights into a confidence, action and price targets.

    Args:
        symbol: Stock ticker symbol (e.g., AAPL, MSFT)
        horizon: daily, weekly, monthly or yearly

    Returns:
        JSON recommendation record with sub-score status per branch
    """
    start = perf_counter()
    try:
        record = await get_engine().analyze(symbol, horizon)
    except ValueError as e:
        return build_error_response("analyze_symbol", "invalid_input", str(e), symbol=symbol)
    return _respond("analyze_symbol", start, record.to_dict(include_detail=True))


@mcp.tool
async def get_stock_of_the_week() -> str:
    """
    Pick the highest-confidence buy from a weekly batch.

    Returns:
        JSON with the pick, highlights, trading strategy and validity date
    """
    start = perf_counter()
    pick = await get_engine().best_pick("weekly")
    if pick is None:
        return build_error_response("get_stock_of_the_week", "no_candidate", "No weekly buy candidate found")
    return _respond("get_stock_of_the_week", start, pick.to_dict())


@mcp.tool
async def get_stock_of_the_month() -> str:
    """
    Pick the best monthly buy by blended confidence and fundamental score.

    Returns:
        JSON with the pick, highlights, trading strategy and validity date
    """
    start = perf_counter()
    pick = await get_engine().best_pick("monthly")
    if pick is None:
        return build_error_response("get_stock_of_the_month", "no_candidate", "No monthly buy candidate found")
    return _respond("get_stock_of_the_month", start, pick.to_dict())


@mcp.tool
async def deep_analysis(symbol: str, horizon: str = "monthly") -> str:
    """
    Detailed single-stock analysis.

    Includes full technical and fundamental detail with insights, quality
    analysis, market state, risk breakdown, catalysts and competitive position.

    Args:
        symbol: Stock ticker symbol
        horizon: daily, weekly, monthly or yearly

    Returns:
        JSON deep analysis
    """
    start = perf_counter()
    try:
        analysis = await get_engine().deep_analyze(symbol, horizon)
    except ValueError as e:
        return build_error_response("deep_analysis", "invalid_input", str(e), symbol=symbol)
    return _respond("deep_analysis", start, analysis.to_dict())


@mcp.tool
async def get_all_recommendations() -> str:
    """
    Recommendations for every horizon in one call.

    Returns:
        JSON keyed by horizon; a failed horizon carries an error message
    """
    start = perf_counter()
    batches = await get_engine().all_recommendations()
    body = {
        horizon: batch if isinstance(batch, dict) else batch.to_dict()
        for horizon, batch in batches.items()
    }
    return _respond("get_all_recommendations", start, {"horizons": body})


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Stock Advisor MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})")
    try:
        mcp.run()
    finally:
        asyncio.run(shutdown_executor())


if __name__ == "__main__":
    main()
