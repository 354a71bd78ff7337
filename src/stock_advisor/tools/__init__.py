"""Recommendation tools."""

from stock_advisor.tools.recommendations import (
    RecommendationEngine,
    action_for_confidence,
    composite_confidence,
    fundamental_score,
    price_targets,
    sentiment_score,
    technical_score,
)

__all__ = [
    "RecommendationEngine",
    "action_for_confidence",
    "composite_confidence",
    "fundamental_score",
    "price_targets",
    "sentiment_score",
    "technical_score",
]
