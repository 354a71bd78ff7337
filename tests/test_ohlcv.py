"""Tests for OHLCV standardization."""

from io import StringIO

import pandas as pd

from stock_advisor.utils.ohlcv import df_from_csv, df_to_csv, standardize_ohlcv


class TestStandardizeOhlcv:
    """Tests for standardize_ohlcv function."""

    def test_standardize_basic(self, sample_ohlcv_df: pd.DataFrame) -> None:
        """Test basic standardization."""
        result = standardize_ohlcv(sample_ohlcv_df)

        # Check column order and names
        assert list(result.columns) == ["date", "open", "high", "low", "close", "volume"]

        # Check data integrity
        assert len(result) == 10
        assert result["close"].iloc[0] == 100.5

    def test_standardize_removes_adj_close(
        self, sample_ohlcv_df_with_adj_close: pd.DataFrame
    ) -> None:
        """Test that Adj Close column is removed."""
        result = standardize_ohlcv(sample_ohlcv_df_with_adj_close)

        assert "adj close" not in result.columns
        assert "Adj Close" not in result.columns
        assert list(result.columns) == ["date", "open", "high", "low", "close", "volume"]

    def test_standardize_handles_multi_index(self) -> None:
        """Test handling of multi-index columns from yf.download."""
        arrays = [
            ["Open", "High", "Low", "Close", "Volume"],
            ["AAPL", "AAPL", "AAPL", "AAPL", "AAPL"],
        ]
        tuples = list(zip(*arrays))
        index = pd.MultiIndex.from_tuples(tuples)

        df = pd.DataFrame(
            [[100, 101, 99, 100.5, 1000000]],
            index=pd.DatetimeIndex(["2024-01-01"], name="Date"),
            columns=index,
        )

        result = standardize_ohlcv(df)
        assert list(result.columns) == ["date", "open", "high", "low", "close", "volume"]
        assert result["close"].iloc[0] == 100.5

    def test_standardize_fills_missing_columns(self) -> None:
        """Test that missing columns are filled with NaN."""
        # DataFrame missing volume
        df = pd.DataFrame(
            {
                "Date": pd.date_range("2024-01-01", periods=3, freq="D"),
                "Open": [100, 101, 102],
                "High": [101, 102, 103],
                "Low": [99, 100, 101],
                "Close": [100.5, 101.5, 102.5],
            }
        ).set_index("Date")

        result = standardize_ohlcv(df)

        # Should have all 6 columns
        assert list(result.columns) == ["date", "open", "high", "low", "close", "volume"]
        # Volume should be NaN
        assert result["volume"].isna().all()

    def test_standardize_date_format_daily(self, sample_ohlcv_df: pd.DataFrame) -> None:
        """Test date formatting for daily data."""
        result = standardize_ohlcv(sample_ohlcv_df)

        # Daily data should be YYYY-MM-DD
        assert result["date"].iloc[0] == "2024-01-01"

    def test_standardize_sorts_and_drops_missing_close(self) -> None:
        """Rows come back ascending by date, rows without a close are dropped."""
        df = pd.DataFrame(
            {
                "Date": pd.to_datetime(["2024-01-03", "2024-01-01", "2024-01-02"]),
                "Close": [103.0, 101.0, None],
            }
        ).set_index("Date")

        result = standardize_ohlcv(df)

        assert list(result["date"]) == ["2024-01-01", "2024-01-03"]
        assert list(result["close"]) == [101.0, 103.0]

    def test_standardize_tz_aware_dates(self) -> None:
        """Test handling of timezone-aware dates."""
        df = pd.DataFrame(
            {
                "Date": pd.date_range("2024-01-01", periods=5, freq="D", tz="America/New_York"),
                "Open": [100, 101, 102, 101, 103],
                "High": [101, 102, 103, 102, 104],
                "Low": [99, 100, 101, 100, 102],
                "Close": [100.5, 101.5, 102.5, 101.5, 103.5],
                "Volume": [1000] * 5,
            }
        ).set_index("Date")

        result = standardize_ohlcv(df)

        assert len(result) == 5
        assert result["date"].iloc[-1] == "2024-01-05"


class TestDfToCsv:
    """Tests for df_to_csv and df_from_csv."""

    def test_df_to_csv_columns(self, sample_ohlcv_df: pd.DataFrame) -> None:
        """CSV carries the standard header and every row."""
        standardized = standardize_ohlcv(sample_ohlcv_df)
        parsed = pd.read_csv(StringIO(df_to_csv(standardized)))

        assert list(parsed.columns) == ["date", "open", "high", "low", "close", "volume"]
        assert len(parsed) == 10

    def test_df_from_csv_restores_frame(self, sample_ohlcv_df: pd.DataFrame) -> None:
        """A cached frame reads back identical to what was stored."""
        standardized = standardize_ohlcv(sample_ohlcv_df)
        restored = df_from_csv(df_to_csv(standardized))

        pd.testing.assert_frame_equal(restored, standardized, check_dtype=False)
