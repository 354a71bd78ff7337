"""Validation utilities and parameter classes."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

# Allowlists for cache key stability
VALID_PERIODS = {"1d", "5d", "1mo", "3mo", "6mo", "1y", "2y", "5y", "10y", "ytd", "max"}
VALID_INTERVALS = {"1d", "5d", "1wk", "1mo", "3mo"}
VALID_HORIZONS = ("daily", "weekly", "monthly", "yearly")

# Tickers like AAPL, BRK-B, BRK.B, ^GSPC, EURUSD=X
_SYMBOL_RE = re.compile(r"^[A-Z0-9.\-^=]{1,15}$")


def validate_symbol(symbol: Any) -> str:
    """
    Normalize and validate a ticker symbol.

    Returns:
        Uppercased, stripped symbol

    Raises:
        ValueError: If symbol is missing or malformed
    """
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValueError("Symbol must be a non-empty string")
    normalized = symbol.upper().strip()
    if not _SYMBOL_RE.match(normalized):
        raise ValueError(f"Invalid symbol '{symbol}'")
    return normalized


def validate_horizon(horizon: Any) -> str:
    """Normalize horizon name, raising ValueError if unknown."""
    if not isinstance(horizon, str):
        raise ValueError(f"Invalid horizon '{horizon}'. Must be one of: {VALID_HORIZONS}")
    normalized = horizon.lower().strip()
    if normalized not in VALID_HORIZONS:
        raise ValueError(f"Invalid horizon '{horizon}'. Must be one of: {VALID_HORIZONS}")
    return normalized


def validate_universe(symbols: Iterable[str] | None) -> list[str]:
    """
    Validate a symbol universe, dropping duplicates but keeping order.

    Raises:
        ValueError: If universe is None/empty or any symbol is malformed
    """
    if symbols is None or isinstance(symbols, str):
        raise ValueError("Universe must be a list of symbols")
    seen: set[str] = set()
    result: list[str] = []
    for symbol in symbols:
        normalized = validate_symbol(symbol)
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    if not result:
        raise ValueError("Universe must contain at least one symbol")
    return result


def validate_limit(limit: Any) -> int:
    """Require a positive integer limit."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"Invalid limit '{limit}'. Must be a positive integer")
    return limit


@dataclass(frozen=True)
class FetchParams:
    """Immutable fetch parameters. Used for cache key + fetch."""

    symbol: str
    period: str
    interval: str = "1d"
    adjusted: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", validate_symbol(self.symbol))

        # Normalize period/interval: lowercase, strip whitespace, validate
        period = self.period.lower().strip()
        interval = self.interval.lower().strip()

        if period not in VALID_PERIODS:
            raise ValueError(f"Invalid period '{self.period}'. Must be one of: {VALID_PERIODS}")
        if interval not in VALID_INTERVALS:
            raise ValueError(
                f"Invalid interval '{self.interval}'. Must be one of: {VALID_INTERVALS}"
            )

        object.__setattr__(self, "period", period)
        object.__setattr__(self, "interval", interval)

    def to_uri(self) -> str:
        """Canonical URI for caching."""
        adj = "adjusted" if self.adjusted else "unadjusted"
        return f"history://{self.symbol}/{self.period}/{self.interval}/{adj}"

    def to_yf_kwargs(self) -> dict[str, Any]:
        """Kwargs for yf.download()."""
        return {
            "tickers": self.symbol,
            "period": self.period,
            "interval": self.interval,
            "auto_adjust": self.adjusted,
            "progress": False,
        }
