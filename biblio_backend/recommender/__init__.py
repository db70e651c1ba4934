"""
Recommendation strategies and their shared building blocks.
"""

from .content_based import get_content_based_recommendations
from .features import FeatureExtractor, get_common_tags
from .hybrid_fusion import get_hybrid_recommendations
from .models import Book, FieldToggles, IdfTable, RankedResult, RecommendationOptions
from .popularity import SignalScorer, signal_key
from .settings import RecommenderSettings
from .style_based import get_style_based_recommendations

__all__ = [
    "Book",
    "FieldToggles",
    "IdfTable",
    "RankedResult",
    "RecommendationOptions",
    "RecommenderSettings",
    "FeatureExtractor",
    "SignalScorer",
    "get_common_tags",
    "signal_key",
    "get_content_based_recommendations",
    "get_style_based_recommendations",
    "get_hybrid_recommendations",
]
