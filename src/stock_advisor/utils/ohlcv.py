"""OHLCV frame standardization utilities."""

import io

import pandas as pd

OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]
PRICE_COLUMNS = ["open", "high", "low", "close", "volume"]


def standardize_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """
    Standardize a raw price frame to the OHLCV schema.

    Output columns (always, in this order): date, open, high, low, close, volume.
    All lowercase, numeric price columns, ascending by date, no 'Adj Close'.
    Rows without a close are dropped.

    Args:
        df: Raw DataFrame from yfinance (date index or date column)

    Returns:
        Standardized DataFrame
    """
    df = df.copy()

    # yf.download returns a (field, ticker) MultiIndex even for one ticker
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)

    if "Adj Close" in df.columns:
        df = df.drop(columns=["Adj Close"])

    df.columns = [str(c).lower() for c in df.columns]

    if "date" not in df.columns:
        df = df.reset_index()
        date_cols = [c for c in df.columns if str(c).lower() in ("date", "datetime", "index")]
        if date_cols:
            df = df.rename(columns={date_cols[0]: "date"})

    for col in OHLCV_COLUMNS:
        if col not in df.columns:
            df[col] = float("nan")

    df = df[OHLCV_COLUMNS].copy()
    df[PRICE_COLUMNS] = df[PRICE_COLUMNS].apply(pd.to_numeric, errors="coerce")

    if pd.api.types.is_datetime64_any_dtype(df["date"]):
        df = df.sort_values("date")
        df["date"] = df["date"].dt.strftime("%Y-%m-%d")
    else:
        df = df.sort_values("date", kind="stable")

    df = df.dropna(subset=["close"])
    return df.reset_index(drop=True)


def df_to_csv(df: pd.DataFrame) -> str:
    """Convert to CSV string for cache storage."""
    return df.to_csv(index=False)


def df_from_csv(csv_text: str) -> pd.DataFrame:
    """Inverse of df_to_csv for cached frames."""
    return standardize_ohlcv(pd.read_csv(io.StringIO(csv_text)))
