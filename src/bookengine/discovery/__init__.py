"""Recommendation discovery, scoring and ranking."""

from .scoring import Reason, RecommendationScoringStrategy, ScoredBook
from .strategies import RecommendationStrategyChain
from .recommendations import RecommendationEngine

__all__ = [
    "Reason",
    "RecommendationScoringStrategy",
    "ScoredBook",
    "RecommendationStrategyChain",
    "RecommendationEngine",
]
