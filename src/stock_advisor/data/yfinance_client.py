"""Async yfinance client with bounded concurrency and retry logic."""

import asyncio
import logging
import math
import os
import random
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

import pandas as pd
import yfinance as yf
from requests.exceptions import HTTPError

from stock_advisor.utils.ohlcv import standardize_ohlcv
from stock_advisor.utils.validators import FetchParams

logger = logging.getLogger(__name__)

# Bounded concurrency for yfinance calls
_max_workers = int(os.environ.get("YF_MAX_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)
_fetch_semaphore = asyncio.Semaphore(_max_workers)

# Retry configuration
_max_retries = int(os.environ.get("YF_MAX_RETRIES", "3"))
_base_delay = float(os.environ.get("YF_BASE_DELAY", "1.0"))  # seconds
_max_delay = float(os.environ.get("YF_MAX_DELAY", "30.0"))  # seconds

# Shutdown coordination
shutdown_event = asyncio.Event()

T = TypeVar("T")


class ServerShuttingDownError(Exception):
    """Raised when server is shutting down."""

    pass


class YFinanceRetryError(Exception):
    """Raised when yfinance fails after all retries."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


class YFinanceIncompleteInfoError(RuntimeError):
    """Raised when yfinance returns an info payload without fundamentals (e.g. 401 Invalid Crumb)."""

    def __init__(self, symbol: str, *, key_count: int, core_values_present: int):
        super().__init__(
            f"Incomplete yfinance info for {symbol}: "
            f"keys={key_count}, core_values_present={core_values_present}"
        )
        self.symbol = symbol
        self.key_count = key_count
        self.core_values_present = core_values_present


# Financial statement fields that crumb-broken partial payloads reliably lack
INFO_CORE_FUND_SENTINELS: tuple[str, ...] = (
    "totalRevenue",
    "revenueGrowth",
    "profitMargins",
    "grossMargins",
    "operatingCashflow",
    "freeCashflow",
    "totalCash",
    "returnOnEquity",
)


def _has_value(v: Any) -> bool:
    """True unless v is None, NaN or a blank string."""
    if v is None:
        return False
    if isinstance(v, float) and math.isnan(v):
        return False
    if isinstance(v, str) and v.strip() == "":
        return False
    return True


def count_core_values(info: dict[str, Any]) -> int:
    """Number of core fundamental fields actually populated in an info dict."""
    if not isinstance(info, dict):
        return 0
    return sum(1 for k in INFO_CORE_FUND_SENTINELS if _has_value(info.get(k)))


def is_incomplete_info(info: dict[str, Any]) -> bool:
    """
    Detect partial info payloads.

    Only equities (or payloads without a quoteType) are expected to carry
    fundamentals; ETFs and indices pass as-is.
    """
    if not isinstance(info, dict) or not info:
        return True
    quote_type = info.get("quoteType")
    if quote_type is not None and str(quote_type).upper() not in ("", "EQUITY"):
        return False
    return count_core_values(info) == 0


def _is_retryable_error(error: Exception) -> tuple[bool, int]:
    """
    Check if an error is retryable (transient).

    Returns:
        Tuple of (is_retryable, max_retries_for_this_error)
    """
    if isinstance(error, YFinanceIncompleteInfoError):
        return (True, 2)

    if isinstance(error, HTTPError) and getattr(error, "response", None) is not None:
        status_code = error.response.status_code
        if status_code == 401:
            # Invalid Crumb rarely recovers after one retry
            return (True, 1)
        if status_code == 429 or 500 <= status_code < 600:
            return (True, _max_retries)

    error_str = str(error).lower()

    if "401" in error_str or "invalid crumb" in error_str:
        return (True, 2)

    retryable_patterns = [
        "rate limit",
        "too many requests",
        "connection",
        "timeout",
        "temporary",
    ]
    if any(pattern in error_str for pattern in retryable_patterns):
        return (True, _max_retries)

    return (False, 0)


def _calculate_backoff(attempt: int) -> float:
    """Exponential backoff with +/-25% jitter, capped at the max delay."""
    delay = _base_delay * (2**attempt)
    jitter = delay * 0.25 * (2 * random.random() - 1)
    return min(delay + jitter, _max_delay)


async def _retry_with_backoff(
    operation_name: str,
    sync_func: Callable[[], T],
    max_retries: int = _max_retries,
) -> T:
    """
    Run a blocking function in the executor, retrying transient failures.

    Raises:
        YFinanceRetryError: If all retries exhausted
        ServerShuttingDownError: If server is shutting down
    """
    for attempt in range(max_retries + 1):
        if shutdown_event.is_set():
            raise ServerShuttingDownError("Server is shutting down")

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(_executor, sync_func)
        except Exception as e:
            is_retryable, error_max_retries = _is_retryable_error(e)
            if not is_retryable:
                raise

            effective_max_retries = min(max_retries, error_max_retries)
            if attempt >= effective_max_retries:
                logger.warning(
                    f"{operation_name}: Failed after {attempt + 1} attempts "
                    f"(limit={effective_max_retries + 1}). Last error: {e}"
                )
                raise YFinanceRetryError(
                    f"Failed after {attempt + 1} attempts: {e}",
                    last_error=e,
                ) from e

            delay = _calculate_backoff(attempt)
            logger.warning(
                f"{operation_name}: Attempt {attempt + 1} failed ({e}). "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise YFinanceRetryError(f"Failed after {max_retries + 1} attempts")


# Singleflight: concurrent callers for the same key share one in-flight task
_singleflight: dict[str, "asyncio.Task[Any]"] = {}
_singleflight_lock = asyncio.Lock()


async def _deduplicated(key: str, factory: Callable[[], Awaitable[T]]) -> T:
    """
    Await the in-flight task for ``key`` or start one.

    Joiners shield the shared task so a single cancelled waiter does not
    cancel it for everyone. The entry is removed by whichever caller finishes
    while it is still registered.
    """
    if shutdown_event.is_set():
        raise ServerShuttingDownError("Server is shutting down")

    async with _singleflight_lock:
        task = _singleflight.get(key)
        joined = task is not None
        if task is None:
            task = asyncio.ensure_future(factory())
            _singleflight[key] = task
        else:
            logger.debug(f"{key}: joining existing singleflight")

    try:
        if joined:
            return await asyncio.shield(task)
        return await task
    finally:
        async with _singleflight_lock:
            if _singleflight.get(key) is task:
                _singleflight.pop(key, None)


async def fetch_history(params: FetchParams) -> pd.DataFrame:
    """
    Fetch standardized OHLCV history.

    Raises:
        ServerShuttingDownError: If server is shutting down
        YFinanceRetryError: If all retries exhausted for retryable errors
        ValueError: If no data returned
    """
    if shutdown_event.is_set():
        raise ServerShuttingDownError("Server is shutting down")

    def _fetch() -> pd.DataFrame:
        df = yf.download(**params.to_yf_kwargs())
        if df is None or df.empty:
            raise ValueError(f"No data returned for {params.symbol}")
        return standardize_ohlcv(df)

    async def _run() -> pd.DataFrame:
        async with _fetch_semaphore:
            return await _retry_with_backoff(f"fetch_history({params.symbol})", _fetch)

    return await _deduplicated(params.to_uri(), _run)


async def fetch_info(symbol: str) -> dict[str, Any]:
    """
    Fetch the yfinance info dict (price, ratios, sector).

    Raises:
        ServerShuttingDownError: If server is shutting down
        YFinanceRetryError: If all retries exhausted (including incomplete payloads)
        ValueError: If symbol is invalid
    """
    normalized_symbol = symbol.upper().strip()

    def _fetch() -> dict[str, Any]:
        info = yf.Ticker(normalized_symbol).info
        if not info:
            raise ValueError(f"Invalid symbol: {symbol}")
        if is_incomplete_info(info):
            raise YFinanceIncompleteInfoError(
                normalized_symbol,
                key_count=len(info),
                core_values_present=count_core_values(info),
            )
        return info

    async def _run() -> dict[str, Any]:
        async with _fetch_semaphore:
            return await _retry_with_backoff(f"fetch_info({normalized_symbol})", _fetch)

    return await _deduplicated(f"info://{normalized_symbol}", _run)


async def fetch_statements(symbol: str) -> dict[str, pd.DataFrame]:
    """
    Fetch annual balance sheet and income statement.

    Missing statements come back as empty DataFrames.
    """
    normalized_symbol = symbol.upper().strip()

    def _fetch() -> dict[str, pd.DataFrame]:
        ticker = yf.Ticker(normalized_symbol)
        statements = {}
        for name, attr in (("balance_sheet", "balance_sheet"), ("income_statement", "income_stmt")):
            frame = getattr(ticker, attr, None)
            statements[name] = frame if isinstance(frame, pd.DataFrame) else pd.DataFrame()
        return statements

    async def _run() -> dict[str, pd.DataFrame]:
        async with _fetch_semaphore:
            return await _retry_with_backoff(f"fetch_statements({normalized_symbol})", _fetch)

    return await _deduplicated(f"statements://{normalized_symbol}", _run)


async def fetch_news(symbol: str) -> list[dict[str, Any]]:
    """Fetch raw ``Ticker.news`` items. An empty list is a valid answer."""
    normalized_symbol = symbol.upper().strip()

    def _fetch() -> list[dict[str, Any]]:
        return list(yf.Ticker(normalized_symbol).news or [])

    async def _run() -> list[dict[str, Any]]:
        async with _fetch_semaphore:
            return await _retry_with_backoff(f"fetch_news({normalized_symbol})", _fetch)

    return await _deduplicated(f"news://{normalized_symbol}", _run)


async def shutdown_executor() -> None:
    """Cleanup on server shutdown."""
    shutdown_event.set()
    _executor.shutdown(wait=False, cancel_futures=True)
