"""
models.py
---------
Data structures shared by the recommendation modules.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

TermVector = Dict[str, float]


def safe_float_conversion(value) -> Optional[float]:
    """Safely convert value to float, handling Decimal/None/garbage"""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            return float(value)
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if result == result else None  # NaN


def safe_int_conversion(value) -> Optional[int]:
    number = safe_float_conversion(value)
    return int(number) if number is not None else None


def _clean_str(value) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _clean_tags(value) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple, set, frozenset)):
        return ()
    return tuple(t.strip() for t in value if isinstance(t, str) and t.strip())


@dataclass(frozen=True)
class Book:
    """Library record. Read-only input for the engine."""
    title: str
    id: Optional[Any] = None
    author: Optional[str] = None
    year: Optional[int] = None
    publisher: Optional[str] = None
    pages: Optional[int] = None
    isbn: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    tags: Tuple[str, ...] = ()
    rating: Optional[float] = None
    comment: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Book":
        """
        Build a Book from a loosely typed JSON record. Malformed fields
        degrade to None/empty instead of raising.
        """
        book_id = data.get("id", data.get("book_id"))
        if not isinstance(book_id, (str, int)) or isinstance(book_id, bool):
            book_id = None
        return cls(
            id=book_id,
            title=_clean_str(data.get("title")) or "",
            author=_clean_str(data.get("author")),
            year=safe_int_conversion(data.get("year")),
            publisher=_clean_str(data.get("publisher")),
            pages=safe_int_conversion(data.get("pages")),
            isbn=_clean_str(data.get("isbn")),
            description=_clean_str(data.get("description")),
            genre=_clean_str(data.get("genre")),
            tags=_clean_tags(data.get("tags")),
            rating=safe_float_conversion(data.get("rating")),
            comment=_clean_str(data.get("comment")),
        )

    @classmethod
    def coerce(cls, value) -> Optional["Book"]:
        if isinstance(value, Book):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "year": self.year,
            "publisher": self.publisher,
            "pages": self.pages,
            "isbn": self.isbn,
            "description": self.description,
            "genre": self.genre,
            "tags": list(self.tags),
            "rating": self.rating,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class FieldToggles:
    """Which book fields feed the text blob used for TF-IDF."""
    title: bool = True
    author: bool = True
    tags: bool = True
    genre: bool = True
    description: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "FieldToggles":
        """Accepts both the UI names (useTitle, ...) and the bare field names."""
        if not data:
            return cls()
        values = {}
        for name in ("title", "author", "tags", "genre", "description"):
            ui_name = "use" + name.capitalize()
            if ui_name in data:
                values[name] = bool(data[ui_name])
            elif name in data:
                values[name] = bool(data[name])
        return cls(**values)

    def enabled(self, name: str) -> bool:
        return bool(getattr(self, name, False))


@dataclass(frozen=True)
class RecommendationOptions:
    mode: Optional[str] = None
    field_toggles: FieldToggles = field(default_factory=FieldToggles)
    top_n: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RecommendationOptions":
        if not data:
            return cls()
        toggles = data.get("field_toggles", data.get("fieldToggles"))
        if toggles is None:
            # the UI sends the toggles flat, next to the mode
            toggles = {k: v for k, v in data.items() if k.startswith("use")}
        mode = data.get("mode")
        return cls(
            mode=mode.lower() if isinstance(mode, str) else None,
            field_toggles=FieldToggles.from_dict(toggles),
            top_n=safe_int_conversion(data.get("top_n", data.get("topN"))),
        )


@dataclass(frozen=True)
class IdfTable:
    """Inverse document frequencies for one corpus."""
    weights: Mapping[str, float]
    signature: str
    document_count: int = 0

    def get(self, term: str, default: float = 0.0) -> float:
        return self.weights.get(term, default)

    def __contains__(self, term) -> bool:
        return term in self.weights

    def __len__(self) -> int:
        return len(self.weights)


@dataclass
class RankedResult:
    """One scored candidate."""
    book: Book
    score: float
    reasons: List[str]
    method: str
    similarity: Optional[float] = None
    common_terms: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "book": self.book.to_dict(),
            "score": round(float(self.score), 6),
            "reasons": list(self.reasons),
            "similarity": round(float(self.similarity), 6) if self.similarity is not None else None,
            "commonTerms": list(self.common_terms),
            "method": self.method,
        }
