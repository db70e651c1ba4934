# hybrid_fusion.py
from dataclasses import replace
from typing import Dict, List, Sequence

from .content_based import get_content_based_recommendations
from .models import Book, FieldToggles, RankedResult
from .popularity import SignalScorer
from .style_based import get_style_based_recommendations


def fuse(content_recs: Sequence[RankedResult], style_recs: Sequence[RankedResult], scorer: SignalScorer,
         top_n: int) -> List[RankedResult]:
    """
    Final_Score = 0.4 * content + 0.6 * style.
    A book found by one list only gets that list's share, so books confirmed
    by both signals rank higher.
    """
    settings = scorer.settings
    combined: Dict[str, RankedResult] = {}
    totals: Dict[str, float] = {}

    for rec in content_recs:
        key = scorer.key(rec.book)
        if key not in combined:
            combined[key] = replace(rec, reasons=list(rec.reasons), common_terms=list(rec.common_terms))
            totals[key] = 0.0
        totals[key] += rec.score * settings.hybrid_content_weight

    for rec in style_recs:
        key = scorer.key(rec.book)
        if key not in combined:
            combined[key] = replace(rec, reasons=list(rec.reasons), common_terms=list(rec.common_terms))
            totals[key] = 0.0
        totals[key] += rec.score * settings.hybrid_style_weight

        # carry the style details over to content-only entries
        existing = combined[key]
        if not existing.similarity and rec.similarity:
            existing.similarity = rec.similarity
            existing.common_terms = list(rec.common_terms)

    ranked = sorted(combined.items(), key=lambda item: totals[item[0]], reverse=True)
    return [replace(rec, score=totals[key], method="hybrid") for key, rec in ranked[:top_n]]


def get_hybrid_recommendations(selected: Book, books: Sequence[Book], scorer: SignalScorer,
                               vectorizer, extractor, toggles: FieldToggles = None,
                               top_n: int = 8) -> List[RankedResult]:
    if not books or top_n <= 0:
        return []
    content_recs = get_content_based_recommendations(selected, books, scorer, top_n * 2)
    style_recs = get_style_based_recommendations(selected, books, scorer, vectorizer, extractor,
                                                 toggles, top_n * 2)
    return fuse(content_recs, style_recs, scorer, top_n)
