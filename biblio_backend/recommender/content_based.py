"""
content_based.py
----------------
Content-Based Filtering on structured book metadata:
shared tags, same author, rating, stored feedback and popularity.
"""

import logging
from typing import List, Sequence

from .features import get_common_tags, same_author
from .models import Book, RankedResult
from .popularity import SignalScorer

logger = logging.getLogger(__name__)


def score_candidate(selected: Book, book: Book, scorer: SignalScorer) -> RankedResult:
    settings = scorer.settings
    score = 0.0
    reasons = []

    # Shared tags
    common_tags = get_common_tags(selected, book)
    if common_tags:
        score += min(len(common_tags) * settings.tag_bonus, settings.tag_bonus_cap)
        reasons.append(f"Shared tags: {', '.join(common_tags[:3])}")

    # Same author
    if same_author(book, selected):
        score += settings.author_bonus
        reasons.append(f"Same author: {book.author}")

    # Book rating
    if book.rating and book.rating >= settings.high_rating_threshold:
        score += settings.high_rating_bonus
        reasons.append(f"Well rated book ({book.rating:g}/5)")

    # Previous user feedback, negative values push the book down
    feedback = scorer.feedback(book)
    if feedback:
        score += feedback * settings.content_feedback_weight
        if feedback > 0:
            reasons.append("You liked this before")

    # Popularity
    score += scorer.popularity(book) * settings.score_weights["popularity"]

    return RankedResult(book=book, score=score, reasons=reasons, method="content")


def get_content_based_recommendations(selected: Book, books: Sequence[Book], scorer: SignalScorer,
                                      top_n: int = 8) -> List[RankedResult]:
    """Score every candidate, sort by score and return the top N."""
    if not books or top_n <= 0:
        return []

    scored = [score_candidate(selected, book, scorer) for book in books]
    scored.sort(key=lambda rec: rec.score, reverse=True)

    logger.debug(f"[CB] scored {len(scored)} candidates for '{selected.title}'")
    return scored[:top_n]
