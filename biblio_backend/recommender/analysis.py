"""
analysis.py
-----------
Summarizes a user's taste from stored feedback and views joined with the
library records: favourite tags, preferred authors, length and year
preferences, reading patterns.
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .models import Book
from .popularity import signal_key

BOOK_COLUMNS = ["key", "author", "pages", "year", "tags"]


def _js_round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _books_frame(books: Sequence[Book], keying: str) -> pd.DataFrame:
    rows = [{
        "key": signal_key(book, keying),
        "author": book.author,
        "pages": book.pages,
        "year": book.year,
        "tags": list(book.tags),
    } for book in books]
    df = pd.DataFrame(rows, columns=BOOK_COLUMNS)
    # first record wins when several books share a key
    df = df.drop_duplicates(subset="key", keep="first")
    df["pages"] = pd.to_numeric(df["pages"], errors="coerce")
    df["year"] = pd.to_numeric(df["year"], errors="coerce")
    return df


def _top_scores(liked: pd.DataFrame, column: str, label: str, limit: int = 5) -> List[Dict[str, Any]]:
    if liked.empty:
        return []
    frame = liked[[column, "feedback"]]
    if column == "tags":
        frame = frame.explode("tags")
    frame = frame.dropna(subset=[column])
    if frame.empty:
        return []
    totals = frame.groupby(column, sort=False)["feedback"].sum()
    totals = totals.sort_values(ascending=False, kind="stable").head(limit)
    return [{label: name, "score": float(score)} for name, score in totals.items()]


def _mean_of(liked: pd.DataFrame, column: str) -> Optional[int]:
    values = liked[column].dropna()
    values = values[values > 0]
    if values.empty:
        return None
    return _js_round(float(values.mean()))


def reading_patterns(feedback: Mapping[str, float], views: Mapping[str, int]) -> Dict[str, Any]:
    positive = sum(1 for value in feedback.values() if value > 0)
    negative = sum(1 for value in feedback.values() if value < 0)
    most_viewed = sorted(views.items(), key=lambda item: item[1], reverse=True)[:5]
    total = len(feedback)
    return {
        "totalInteractions": total,
        "positiveRatings": positive,
        "negativeRatings": negative,
        "mostViewedBooks": [{"title": title, "views": count} for title, count in most_viewed],
        "positivityRate": positive / total if total else 0,
    }


def analyze_user_preferences(books: Sequence[Book], feedback: Mapping[str, float],
                             views: Mapping[str, int], keying: str = "title") -> Dict[str, Any]:
    """Build the preference report for one user."""
    df = _books_frame(books, keying)
    feedback_df = pd.DataFrame(list(feedback.items()), columns=["key", "feedback"])
    joined = df.merge(feedback_df, on="key", how="inner")
    liked = joined[joined["feedback"] > 0]

    return {
        "favoriteGenres": _top_scores(liked, "tags", "genre"),
        "preferredAuthors": _top_scores(liked, "author", "author"),
        "bookLengthPreference": _mean_of(liked, "pages"),
        "yearPreference": _mean_of(liked, "year"),
        "readingPatterns": reading_patterns(feedback, views),
    }
