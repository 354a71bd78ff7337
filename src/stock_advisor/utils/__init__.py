"""Utility modules."""

from stock_advisor.utils.normalize import (
    average,
    clamp,
    parse_number,
    round_half_up,
    safe_round,
    sanitize_nan_inf,
    sanitize_text,
)
from stock_advisor.utils.ohlcv import df_from_csv, df_to_csv, standardize_ohlcv
from stock_advisor.utils.validators import (
    FetchParams,
    validate_horizon,
    validate_limit,
    validate_symbol,
    validate_universe,
)

__all__ = [
    "average",
    "clamp",
    "parse_number",
    "round_half_up",
    "safe_round",
    "sanitize_nan_inf",
    "sanitize_text",
    "df_from_csv",
    "df_to_csv",
    "standardize_ohlcv",
    "FetchParams",
    "validate_horizon",
    "validate_limit",
    "validate_symbol",
    "validate_universe",
]
