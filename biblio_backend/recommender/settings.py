"""
settings.py
-----------
Immutable tuning values for the recommendation engine: stopwords,
field weights, score weights, thresholds and cache policy.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping

# Italian working set (the library catalogue is mostly Italian)
DEFAULT_STOPWORDS: FrozenSet[str] = frozenset({
    "il", "lo", "la", "i", "gli", "le", "un", "una", "di", "e", "a", "che", "in",
    "con", "per", "su", "da", "non", "è", "sono", "del", "della", "al", "d", "l",
    "molto", "più", "come", "anche", "solo", "prima", "dopo", "dove", "quando",
    "perché", "ma", "se", "già", "ancora", "poi", "così", "qui", "là", "questo",
    "quella", "questi", "quelle", "stesso", "stessa", "altri", "altre", "tutto",
    "tutti", "ogni", "qualche", "alcuni", "alcune", "niente", "nulla",
})

DEFAULT_FIELD_WEIGHTS: Mapping[str, int] = MappingProxyType({
    "title": 4,
    "author": 3,
    "tags": 2,
    "genre": 2,
    "description": 1,
})

# Style-mode composite score weights
DEFAULT_SCORE_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "similarity": 0.35,
    "rating": 0.25,
    "feedback": 0.20,
    "popularity": 0.15,
    "freshness": 0.05,
})

VALID_MODES = ("content", "style", "hybrid")
SIGNAL_KEYINGS = ("title", "id")


@dataclass(frozen=True)
class RecommenderSettings:
    """All knobs of the engine in one place. Build variants with ``with_overrides``."""

    # Tokenizer
    stopwords: FrozenSet[str] = DEFAULT_STOPWORDS
    min_token_length: int = 3
    max_tokens: int = 150

    # Vector space
    min_idf: float = 0.1
    min_term_weight: float = 0.01

    # Feature extraction
    field_weights: Mapping[str, int] = field(default_factory=lambda: DEFAULT_FIELD_WEIGHTS)

    # Style / composite scoring
    score_weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_SCORE_WEIGHTS)
    min_style_similarity: float = 0.05
    max_common_terms: int = 12
    neutral_rating: float = 0.5

    # Content scoring
    tag_bonus: float = 0.2
    tag_bonus_cap: float = 0.6
    author_bonus: float = 0.7
    high_rating_threshold: float = 4.0
    high_rating_bonus: float = 0.15
    content_feedback_weight: float = 0.2

    # Hybrid fusion
    hybrid_content_weight: float = 0.4
    hybrid_style_weight: float = 0.6

    # Reasons
    max_reasons: int = 4

    # Feedback
    feedback_decay: float = 0.85
    feedback_min: float = -1.0
    feedback_max: float = 1.0
    feedback_clamp: float = 2.0

    # Caching
    cache_ttl: float = 300.0
    invalidate_vectors_on_feedback: bool = False

    # Requests
    signal_keying: str = "title"
    default_mode: str = "hybrid"
    default_top_n: int = 8
    max_top_n: int = 50

    def __post_init__(self):
        if self.signal_keying not in SIGNAL_KEYINGS:
            raise ValueError(f"signal_keying must be one of {SIGNAL_KEYINGS}, got {self.signal_keying!r}")
        if self.default_mode not in VALID_MODES:
            raise ValueError(f"default_mode must be one of {VALID_MODES}, got {self.default_mode!r}")
        # Freeze whatever mapping/set types the caller handed in
        object.__setattr__(self, "stopwords", frozenset(self.stopwords))
        object.__setattr__(self, "field_weights", MappingProxyType(dict(self.field_weights)))
        object.__setattr__(self, "score_weights", MappingProxyType(dict(self.score_weights)))

    def with_overrides(self, **changes: Any) -> "RecommenderSettings":
        return replace(self, **changes)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RecommenderSettings":
        """Build settings from a Flask config (or any mapping of the same keys)."""
        return cls(
            cache_ttl=float(config.get("RECOMMENDATION_CACHE_TTL", 300)),
            invalidate_vectors_on_feedback=bool(config.get("INVALIDATE_VECTORS_ON_FEEDBACK", False)),
            signal_keying=str(config.get("SIGNAL_KEYING", "title")).lower(),
            default_mode=str(config.get("RECOMMENDATION_DEFAULT_MODE", "hybrid")).lower(),
            default_top_n=int(config.get("RECOMMENDATION_DEFAULT_TOP_N", 8)),
            max_top_n=int(config.get("RECOMMENDATION_MAX_TOP_N", 50)),
        )
