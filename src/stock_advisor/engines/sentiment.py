"""Keyword-based news sentiment."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from stock_advisor.models import SentimentReading
from stock_advisor.utils.normalize import clamp, sanitize_text

logger = logging.getLogger(__name__)

POSITIVE_KEYWORDS = {
    "beat", "beats", "exceed", "exceeded", "growth", "profit", "surge", "gain",
    "upgrade", "buy", "outperform", "record", "strong", "bullish", "raises",
    "raised", "higher", "boost", "soars", "jumps", "rise", "increase", "positive",
    "good", "excellent", "optimistic", "success", "expansion", "recovery", "boom",
    "rally", "breakthrough", "milestone", "dividend", "bonus", "acquisition",
    "merger", "partnership", "launch", "innovation",
}
NEGATIVE_KEYWORDS = {
    "miss", "missed", "decline", "loss", "cut", "downgrade", "sell", "weak",
    "bearish", "lawsuit", "investigation", "recall", "layoff", "warns", "warning",
    "falls", "drops", "lower", "slump", "plunge", "decrease", "fall", "drop",
    "negative", "bad", "poor", "pessimistic", "underperform", "disappoint",
    "crisis", "recession", "crash", "concern", "risk", "debt", "bankruptcy",
    "scandal", "fraud", "penalty",
}

_WORD_RE = re.compile(r"\w+")

# Share of positive (or negative) articles needed before the label tips
LABEL_THRESHOLD = 0.4


def score_text(text: str) -> str:
    """
    Classify one piece of text as positive/negative/neutral by keyword counts.

    Keywords count as whole words only, once per occurrence.
    """
    words = _WORD_RE.findall(text.lower())
    pos = sum(1 for w in words if w in POSITIVE_KEYWORDS)
    neg = sum(1 for w in words if w in NEGATIVE_KEYWORDS)

    if pos > neg:
        return "positive"
    elif neg > pos:
        return "negative"
    return "neutral"


def _parse_pub_date(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, OSError, OverflowError):
        return None


def extract_articles(news_data: Iterable[dict[str, Any]] | None, days: int = 7) -> list[dict[str, Any]]:
    """
    Normalize yfinance ``Ticker.news`` items into article dicts.

    Handles both the nested ``content`` layout and the older flat layout.
    Items without a title or older than ``days`` are skipped.
    """
    if not news_data:
        return []

    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    articles: list[dict[str, Any]] = []

    for item in news_data:
        content = item.get("content") or item
        title = sanitize_text(content.get("title", ""), max_length=200)
        if not title:
            continue

        pub_date = _parse_pub_date(content.get("pubDate") or content.get("providerPublishTime"))
        if pub_date is not None:
            if pub_date.tzinfo is None:
                pub_date = pub_date.replace(tzinfo=timezone.utc)
            if pub_date < cutoff:
                continue

        summary = sanitize_text(content.get("summary", ""), max_length=500) or ""
        articles.append({
            "date": pub_date.strftime("%Y-%m-%d") if pub_date else None,
            "title": title,
            "summary": summary,
            "sentiment": score_text(f"{title} {summary}"),
        })

    articles.sort(key=lambda a: a["date"] or "", reverse=True)
    return articles


def summarize_sentiment(articles: list[dict[str, Any]], max_headlines: int = 5) -> SentimentReading:
    """
    Aggregate per-article labels into a SentimentReading.

    score = 50 + 50 * (positive share - negative share), clamped to 0-100.
    The label is positive only when positives outnumber negatives and make
    up more than 40% of articles (mirrored for negative).
    """
    counts = {"positive": 0, "negative": 0, "neutral": 0}
    for a in articles:
        counts[a["sentiment"]] += 1

    total = len(articles)
    if total == 0:
        return SentimentReading(label="neutral", score=50.0, article_count=0)

    pos_ratio = counts["positive"] / total
    neg_ratio = counts["negative"] / total

    if pos_ratio > neg_ratio and pos_ratio > LABEL_THRESHOLD:
        label = "positive"
    elif neg_ratio > pos_ratio and neg_ratio > LABEL_THRESHOLD:
        label = "negative"
    else:
        label = "neutral"

    return SentimentReading(
        label=label,
        score=round(clamp(50 + 50 * (pos_ratio - neg_ratio)), 1),
        article_count=total,
        positive_count=counts["positive"],
        negative_count=counts["negative"],
        neutral_count=counts["neutral"],
        headlines=tuple(a["title"] for a in articles[:max_headlines]),
    )
