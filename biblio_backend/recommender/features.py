"""
features.py
-----------
Turns a book into the weighted text blob used for TF-IDF, and into the
structured bits (tags, author, rating) used by content scoring.
"""

from typing import List, Mapping, Optional

from .models import Book, FieldToggles
from .settings import DEFAULT_FIELD_WEIGHTS


class FeatureExtractor:
    """
    Field weighting is done by repetition: TF is frequency based, so a
    field repeated N times weighs N times as much in the vector.
    """

    FIELD_ORDER = ("title", "author", "tags", "genre", "description")

    def __init__(self, field_weights: Mapping[str, int] = DEFAULT_FIELD_WEIGHTS):
        self.field_weights = field_weights

    def field_text(self, book: Book, name: str) -> Optional[str]:
        if name == "tags":
            return " ".join(book.tags) if book.tags else None
        value = getattr(book, name, None)
        return value if isinstance(value, str) and value.strip() else None

    def extract_book_text(self, book: Optional[Book], toggles: Optional[FieldToggles] = None) -> str:
        if book is None:
            return ""
        toggles = toggles or FieldToggles()

        parts = []
        for name in self.FIELD_ORDER:
            if not toggles.enabled(name):
                continue
            text = self.field_text(book, name)
            if not text:
                continue
            repeat = max(int(self.field_weights.get(name, 1)), 0)
            parts.extend([text] * repeat)
        return " ".join(parts)


def get_common_tags(book_a: Optional[Book], book_b: Optional[Book]) -> List[str]:
    """Case-insensitive tag intersection, in book_a's order."""
    if book_a is None or book_b is None or not book_a.tags or not book_b.tags:
        return []
    other = {tag.lower() for tag in book_b.tags}
    return [tag.lower() for tag in book_a.tags if tag.lower() in other]


def same_author(book_a: Book, book_b: Book) -> bool:
    return bool(book_a.author and book_b.author and book_a.author.lower() == book_b.author.lower())
