"""
Data provider protocols and their yfinance-backed implementations.

The orchestrator depends only on the protocols; tests inject fakes.
"""

import logging
import math
from typing import Any, Protocol, runtime_checkable

import pandas as pd

from stock_advisor.data.cache import SnapshotCache, get_snapshot_cache, info_uri, statements_uri
from stock_advisor.data.yfinance_client import (
    fetch_history,
    fetch_info,
    fetch_news,
    fetch_statements,
)
from stock_advisor.engines.sentiment import extract_articles, summarize_sentiment
from stock_advisor.models import CompanyFinancials, SentimentReading
from stock_advisor.utils.normalize import parse_number
from stock_advisor.utils.validators import FetchParams

logger = logging.getLogger(__name__)


@runtime_checkable
class PriceProvider(Protocol):
    async def get_current_price(self, symbol: str) -> float: ...

    async def get_historical_series(self, symbol: str, period: str) -> pd.DataFrame: ...


@runtime_checkable
class FundamentalsProvider(Protocol):
    async def get_company_financials(self, symbol: str) -> CompanyFinancials: ...


@runtime_checkable
class SentimentProvider(Protocol):
    async def get_sentiment(self, symbol: str) -> SentimentReading: ...


# info key -> CompanyFinancials field; values are already fractions or multiples
_INFO_FIELDS: dict[str, str] = {
    "trailingPE": "pe_ratio",
    "forwardPE": "forward_pe",
    "pegRatio": "peg_ratio",
    "priceToBook": "price_to_book",
    "priceToSalesTrailing12Months": "price_to_sales",
    "enterpriseToEbitda": "ev_to_ebitda",
    "grossMargins": "gross_margin",
    "operatingMargins": "operating_margin",
    "profitMargins": "profit_margin",
    "returnOnEquity": "return_on_equity",
    "returnOnAssets": "return_on_assets",
    "payoutRatio": "payout_ratio",
    "currentRatio": "current_ratio",
    "quickRatio": "quick_ratio",
    "revenueGrowth": "revenue_growth_1y",
    "earningsGrowth": "earnings_growth_1y",
    "totalRevenue": "total_revenue",
    "totalCash": "cash_and_equivalents",
    "marketCap": "market_cap",
    "beta": "beta",
}


def _fiscal_years(columns: pd.Index) -> list[int]:
    """Fiscal year of each period column; positional when the columns are not dates."""
    dates = pd.to_datetime(pd.Index(columns).astype(str), errors="coerce")
    if dates.isna().any():
        return list(range(len(columns) - 1, -1, -1))
    return [int(year) for year in dates.year]


def _statement_row(frame: pd.DataFrame | None, *labels: str) -> pd.Series:
    """
    Values of the first matching line item keyed by fiscal year, oldest first.

    yfinance statements have line items as rows and period-end dates as
    columns, newest first. Empty cells are dropped, so rows from different
    line items must be joined on the year index, never by position.
    """
    if frame is None or frame.empty:
        return pd.Series(dtype=float)
    for label in labels:
        if label in frame.index:
            row = frame.loc[label]
            if isinstance(row, pd.DataFrame):
                row = row.iloc[0]
            values = pd.Series(
                [parse_number(v) for v in row.values],
                index=_fiscal_years(frame.columns),
                dtype=float,
            )
            values = values[~values.index.duplicated(keep="first")]
            return values.dropna().sort_index()
    return pd.Series(dtype=float)


def _latest(values: pd.Series) -> float | None:
    return float(values.iloc[-1]) if not values.empty else None


def _cagr(history: pd.Series, years: int) -> float | None:
    """Compound annual growth from ``years`` fiscal years before the latest one."""
    if history.empty:
        return None
    end_year = history.index[-1]
    if end_year - years not in history.index:
        return None
    start, end = float(history.loc[end_year - years]), float(history.iloc[-1])
    if start <= 0 or end <= 0:
        return None
    return math.pow(end / start, 1 / years) - 1


def _ratio_history(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Year-by-year ratio over the fiscal years both rows report."""
    pairs = pd.concat([numerator, denominator], axis=1, join="inner")
    pairs = pairs[pairs.iloc[:, 1] != 0]
    return pairs.iloc[:, 0] / pairs.iloc[:, 1]


def financials_from_yfinance(
    symbol: str,
    info: dict[str, Any],
    balance_sheet: pd.DataFrame | None = None,
    income_statement: pd.DataFrame | None = None,
) -> CompanyFinancials:
    """
    Map a yfinance info dict and annual statements onto CompanyFinancials.

    yfinance reports debtToEquity in percent and dividendYield in percent;
    both are converted to the record's units here.
    """
    data: dict[str, Any] = {
        field: info.get(key) for key, field in _INFO_FIELDS.items() if key in info
    }
    data["name"] = info.get("longName") or info.get("shortName")
    data["sector"] = info.get("sector")
    if data.get("peg_ratio") is None and "trailingPegRatio" in info:
        data["peg_ratio"] = info.get("trailingPegRatio")

    de = parse_number(info.get("debtToEquity"))
    data["debt_to_equity"] = de / 100 if de is not None else None

    dividend_yield = parse_number(info.get("trailingAnnualDividendYield"))
    if dividend_yield is None:
        reported = parse_number(info.get("dividendYield"))
        dividend_yield = reported / 100 if reported is not None else None
    data["dividend_yield"] = dividend_yield

    revenue = _statement_row(income_statement, "Total Revenue", "Operating Revenue")
    net_income = _statement_row(income_statement, "Net Income", "Net Income Common Stockholders")
    ebit = _statement_row(income_statement, "EBIT", "Operating Income")
    interest = _statement_row(income_statement, "Interest Expense", "Interest Expense Non Operating")
    cost_of_revenue = _statement_row(income_statement, "Cost Of Revenue")

    total_assets = _statement_row(balance_sheet, "Total Assets")
    total_liabilities = _statement_row(
        balance_sheet, "Total Liabilities Net Minority Interest", "Total Liabilities"
    )
    equity = _statement_row(balance_sheet, "Stockholders Equity", "Common Stock Equity")
    inventory = _statement_row(balance_sheet, "Inventory")
    receivables = _statement_row(balance_sheet, "Accounts Receivable", "Receivables")

    statement_fields = {
        "total_assets": _latest(total_assets),
        "total_liabilities": _latest(total_liabilities),
        "current_assets": _latest(_statement_row(balance_sheet, "Current Assets")),
        "current_liabilities": _latest(_statement_row(balance_sheet, "Current Liabilities")),
        "inventory": _latest(inventory),
        "working_capital": _latest(_statement_row(balance_sheet, "Working Capital")),
        "retained_earnings": _latest(_statement_row(balance_sheet, "Retained Earnings")),
        "ebit": _latest(ebit),
    }
    for name, value in statement_fields.items():
        if value is not None:
            data[name] = value
    if data.get("cash_and_equivalents") is None:
        data["cash_and_equivalents"] = _latest(
            _statement_row(balance_sheet, "Cash And Cash Equivalents")
        )
    if data.get("total_revenue") is None:
        data["total_revenue"] = _latest(revenue)

    turnovers = {
        "interest_coverage": _ratio_history(ebit, interest.abs()),
        "inventory_turnover": _ratio_history(cost_of_revenue, inventory),
        "receivables_turnover": _ratio_history(revenue, receivables),
    }
    for name, history in turnovers.items():
        if not history.empty:
            data[name] = _latest(history)

    data["revenue_growth_3y"] = _cagr(revenue, 3)
    data["earnings_growth_3y"] = _cagr(net_income, 3)
    if data.get("revenue_growth_1y") is None:
        data["revenue_growth_1y"] = _cagr(revenue, 1)

    gross_profit = _statement_row(income_statement, "Gross Profit")
    if gross_profit.empty:
        gross_profit = (revenue - cost_of_revenue).dropna()
    operating_income = _statement_row(income_statement, "Operating Income", "EBIT")
    tax_rate = _statement_row(income_statement, "Tax Rate For Calcs")
    nopat = (ebit * (1 - tax_rate)).dropna() if not tax_rate.empty else ebit
    invested_capital = _statement_row(balance_sheet, "Invested Capital")

    histories = {
        "revenue_history": revenue,
        "profit_history": net_income,
        "roe_history": _ratio_history(net_income, equity),
        "roa_history": _ratio_history(net_income, total_assets),
        "roic_history": _ratio_history(nopat, invested_capital),
        "gross_margin_history": _ratio_history(gross_profit, revenue),
        "operating_margin_history": _ratio_history(operating_income, revenue),
        "net_margin_history": _ratio_history(net_income, revenue),
    }
    for name, history in histories.items():
        data[name] = history.tolist()

    return CompanyFinancials.from_mapping(symbol, data)


class YFinancePriceProvider:
    """Current price from ``info``, history from ``yf.download``; both read through the cache."""

    def __init__(self, cache: SnapshotCache | None = None):
        self._cache = cache

    @property
    def cache(self) -> SnapshotCache:
        if self._cache is None:
            self._cache = get_snapshot_cache()
        return self._cache

    async def get_current_price(self, symbol: str) -> float:
        info = await cached_info(symbol, self.cache)
        price = parse_number(info.get("regularMarketPrice"))
        if price is None:
            price = parse_number(info.get("currentPrice"))
        if price is None:
            raise ValueError(f"No current price available for {symbol}")
        return price

    async def get_historical_series(self, symbol: str, period: str) -> pd.DataFrame:
        params = FetchParams(symbol=symbol, period=period)
        cached = self.cache.get_history(params)
        if cached is not None:
            return cached
        df = await fetch_history(params)
        self.cache.store_history(params, df)
        return df


class YFinanceFundamentalsProvider:
    """CompanyFinancials from ``info`` plus the annual balance sheet and income statement."""

    def __init__(self, cache: SnapshotCache | None = None):
        self._cache = cache

    @property
    def cache(self) -> SnapshotCache:
        if self._cache is None:
            self._cache = get_snapshot_cache()
        return self._cache

    async def get_company_financials(self, symbol: str) -> CompanyFinancials:
        info = await cached_info(symbol, self.cache)

        uri = statements_uri(symbol)
        statements = self.cache.get_payload(uri)
        if statements is None:
            try:
                statements = await fetch_statements(symbol)
                self.cache.store_payload(uri, statements)
            except ValueError as e:
                # info alone still yields a usable partial record
                logger.warning(f"Statements unavailable for {symbol}: {e}")
                statements = {}

        return financials_from_yfinance(
            symbol,
            info,
            statements.get("balance_sheet"),
            statements.get("income_statement"),
        )


class YFinanceSentimentProvider:
    """Keyword-scored sentiment over recent ``Ticker.news`` items."""

    def __init__(self, days: int = 7):
        self.days = days

    async def get_sentiment(self, symbol: str) -> SentimentReading:
        news = await fetch_news(symbol)
        return summarize_sentiment(extract_articles(news, days=self.days))


async def cached_info(symbol: str, cache: SnapshotCache) -> dict[str, Any]:
    uri = info_uri(symbol)
    info = cache.get_payload(uri)
    if info is None:
        info = await fetch_info(symbol)
        cache.store_payload(uri, info)
    return info
