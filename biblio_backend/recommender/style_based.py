"""
style_based.py
--------------
Style (TF-IDF) recommendations.
Steps:
1. Build one text blob per book (selected + candidates)
2. Build a shared IDF table over that corpus
3. Vectorize the selected book; an empty vector falls back to content mode
4. Cosine similarity + composite score per candidate
5. Drop weak lexical matches, rank, return top-N
"""

import logging
from typing import List, Optional, Sequence

from .content_based import get_content_based_recommendations
from .features import FeatureExtractor, get_common_tags, same_author
from .models import Book, FieldToggles, RankedResult, TermVector
from .popularity import SignalScorer

logger = logging.getLogger(__name__)


def shared_terms(selected_vector: TermVector, book_vector: TermVector, limit: int = 12) -> List[str]:
    """Terms present in both vectors, heaviest in the candidate first."""
    common = [term for term in selected_vector if term in book_vector]
    common.sort(key=lambda term: book_vector.get(term, 0.0), reverse=True)
    return common[:limit]


def generate_reasons(book: Book, selected: Book, similarity: float, common_terms: Sequence[str],
                     scorer: SignalScorer) -> List[str]:
    """Human readable justification, most important first."""
    settings = scorer.settings
    reasons = []

    if similarity > 0.4:
        reasons.append(f"Very high stylistic affinity ({similarity * 100:.1f}%)")
    elif similarity > 0.25:
        reasons.append(f"Good stylistic affinity ({similarity * 100:.1f}%)")
    elif similarity > 0.1:
        reasons.append(f"Similar style ({similarity * 100:.1f}%)")

    common_tags = get_common_tags(selected, book)
    if common_tags:
        reasons.append(f"Shared themes: {', '.join(common_tags[:2])}")

    if same_author(book, selected):
        reasons.append(f"By the same author: {book.author}")

    if len(common_terms) > 5:
        top_terms = [term for term in common_terms[:3] if len(term) > 3]
        if top_terms:
            reasons.append(f"Key concepts: {', '.join(top_terms)}")

    if book.rating and book.rating >= settings.high_rating_threshold:
        reasons.append(f"Highly rated book ({book.rating:g}/5 stars)")

    if scorer.feedback(book) > 0.5:
        reasons.append("You liked this before")

    return reasons[:settings.max_reasons]


def get_style_based_recommendations(selected: Book, books: Sequence[Book], scorer: SignalScorer,
                                    vectorizer, extractor: FeatureExtractor,
                                    toggles: Optional[FieldToggles] = None,
                                    top_n: int = 8) -> List[RankedResult]:
    if not books or top_n <= 0:
        return []

    settings = scorer.settings
    weights = settings.score_weights
    toggles = toggles or FieldToggles()

    selected_text = extractor.extract_book_text(selected, toggles)
    texts = [extractor.extract_book_text(book, toggles) for book in books]

    idf = vectorizer.build_idf([selected_text, *texts])
    selected_vector = vectorizer.vectorize(selected_text, idf)

    if not selected_vector:
        logger.warning(f"Empty vector for '{selected.title}', falling back to content-based")
        return get_content_based_recommendations(selected, books, scorer, top_n)

    recommendations = []
    for book, text in zip(books, texts):
        book_vector = vectorizer.vectorize(text, idf)
        similarity = vectorizer.cosine_similarity(selected_vector, book_vector)
        if similarity <= settings.min_style_similarity:
            continue

        score = (
            similarity * weights["similarity"]
            + scorer.feedback(book) * weights["feedback"]
            + scorer.popularity(book) * weights["popularity"]
            + scorer.freshness(book) * weights["freshness"]
            + scorer.rating_norm(book) * weights["rating"]
        )
        common_terms = shared_terms(selected_vector, book_vector, settings.max_common_terms)

        recommendations.append(RankedResult(
            book=book,
            score=min(score, 1.0),
            reasons=generate_reasons(book, selected, similarity, common_terms, scorer),
            method="style",
            similarity=similarity,
            common_terms=common_terms,
        ))

    recommendations.sort(key=lambda rec: rec.score, reverse=True)
    logger.debug(f"[STYLE] {len(recommendations)} of {len(books)} candidates above similarity threshold")
    return recommendations[:top_n]
