"""
popularity.py
-------------
Personalized signals for a candidate book: stored feedback, popularity,
freshness and normalized rating.
Formula: P_i = min(1, ln(views_i + 1) * 0.4 + max(feedback_i, 0) * 0.3 + (rating_i / 5) * 0.3)
"""

import math
from typing import Callable, Optional

from .models import Book
from .settings import RecommenderSettings


def signal_key(book: Book, keying: str = "title") -> str:
    """
    Key under which feedback and views are stored for a book.

    "title" merges signal across same-titled entries (editions, duplicates);
    "id" keeps them apart and falls back to the title for books with no id.
    """
    if keying == "id" and book.id is not None:
        return f"id:{book.id}"
    return book.title


def no_freshness(book: Book) -> float:
    # year weighting is switched off; every book gets the neutral value
    return 1.0


class SignalScorer:
    """Reads a user's signals and turns them into per-book score components."""

    def __init__(self, store, settings: RecommenderSettings, score_cache=None,
                 freshness: Optional[Callable[[Book], float]] = None):
        self.store = store
        self.settings = settings
        self.score_cache = score_cache
        self.freshness_fn = freshness or no_freshness

    def key(self, book: Book) -> str:
        return signal_key(book, self.settings.signal_keying)

    def _read_key(self, book: Book, signals) -> str:
        # id keys fall back to title-keyed signal given before the id was known
        key = self.key(book)
        if key != book.title and key not in signals:
            return book.title
        return key

    def feedback(self, book: Book) -> float:
        return self.store.get_feedback(self._read_key(book, self.store.feedback))

    def views(self, book: Book) -> int:
        return self.store.get_views(self._read_key(book, self.store.view_history))

    def popularity(self, book: Book) -> float:
        if book is None:
            return 0.0
        key = self.key(book)
        if self.score_cache is not None:
            cached = self.score_cache.get(f"pop:{key}:{book.rating}")
            if cached is not None:
                return cached

        views = self.views(book)
        feedback = self.feedback(book)
        rating = book.rating or 0.0
        score = math.log(views + 1) * 0.4 + max(feedback, 0.0) * 0.3 + (rating / 5) * 0.3
        score = min(score, 1.0)

        if self.score_cache is not None:
            self.score_cache.set(f"pop:{key}:{book.rating}", score)
        return score

    def freshness(self, book: Book) -> float:
        return self.freshness_fn(book)

    def rating_norm(self, book: Book) -> float:
        return book.rating / 5 if book.rating else self.settings.neutral_rating
