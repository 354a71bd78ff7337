"""Data layer for fetching and caching stock data."""

from stock_advisor.data.cache import SnapshotCache, get_snapshot_cache
from stock_advisor.data.providers import (
    FundamentalsProvider,
    PriceProvider,
    SentimentProvider,
    YFinanceFundamentalsProvider,
    YFinancePriceProvider,
    YFinanceSentimentProvider,
    financials_from_yfinance,
)
from stock_advisor.data.yfinance_client import (
    ServerShuttingDownError,
    YFinanceIncompleteInfoError,
    YFinanceRetryError,
    fetch_history,
    fetch_info,
    fetch_news,
    fetch_statements,
    shutdown_executor,
)

__all__ = [
    # Cache
    "SnapshotCache",
    "get_snapshot_cache",
    # Providers
    "FundamentalsProvider",
    "PriceProvider",
    "SentimentProvider",
    "YFinanceFundamentalsProvider",
    "YFinancePriceProvider",
    "YFinanceSentimentProvider",
    "financials_from_yfinance",
    # yfinance
    "ServerShuttingDownError",
    "YFinanceIncompleteInfoError",
    "YFinanceRetryError",
    "fetch_history",
    "fetch_info",
    "fetch_news",
    "fetch_statements",
    "shutdown_executor",
]
