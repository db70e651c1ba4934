import hashlib
import logging
import math
import os
import re
import time
import unicodedata
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from sklearn.feature_extraction.text import TfidfVectorizer as SkTfidfVectorizer

from .cache import CachePolicy, ScoreCache, VectorSpaceCache
from .recommender.analysis import analyze_user_preferences
from .recommender.content_based import get_content_based_recommendations
from .recommender.features import FeatureExtractor, get_common_tags
from .recommender.hybrid_fusion import get_hybrid_recommendations
from .recommender.models import (
    Book,
    FieldToggles,
    IdfTable,
    RankedResult,
    RecommendationOptions,
    TermVector,
)
from .recommender.popularity import SignalScorer
from .recommender.settings import VALID_MODES, RecommenderSettings
from .recommender.style_based import get_style_based_recommendations
from .user_signals import FeedbackValidationError, SnapshotImportError, UserSignalStore
from .utils.user_resolver import get_or_create_device_user_id

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_ID_FILE = os.path.join(os.path.expanduser("~"), ".biblio_backend", "device_id.json")

_DIACRITICS_RE = re.compile("[\u0300-\u036f]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_NUMERIC_RE = re.compile(r"^\d+$")

# signal changes that make personalized scores stale
_SCORE_EVENTS = {"view", "feedback", "load", "import", "reset"}


def _digest(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def _pretokenized(tokens: List[str]) -> List[str]:
    return tokens


class TFIDFVectorizer:
    """TF-IDF over book text blobs, with IDF tables and vectors memoized in a VectorSpaceCache"""

    def __init__(self, settings: Optional[RecommenderSettings] = None,
                 cache: Optional[VectorSpaceCache] = None):
        self.settings = settings or RecommenderSettings()
        self.cache = cache
        # stopwords go through the same normalization as tokens
        self.stopwords = frozenset(self.normalize(word) for word in self.settings.stopwords)

    @staticmethod
    def normalize(text: str) -> str:
        """Lowercase, NFD, drop combining accents"""
        return _DIACRITICS_RE.sub("", unicodedata.normalize("NFD", text.lower()))

    def tokenize(self, text) -> List[str]:
        if not isinstance(text, str) or not text:
            return []
        s = self.settings
        cleaned = _NON_WORD_RE.sub(" ", self.normalize(text))

        tokens = []
        for token in cleaned.split():
            if len(token) < s.min_token_length or token in self.stopwords or _NUMERIC_RE.match(token):
                continue
            tokens.append(token)
            if len(tokens) >= s.max_tokens:
                break
        return tokens

    def build_idf(self, documents: Sequence[str]) -> IdfTable:
        """IDF = ln((N + 1) / (df + 1)) + 1, terms with IDF <= min_idf dropped"""
        texts = [doc if isinstance(doc, str) else "" for doc in documents]
        signature = _digest(f"{len(texts)}\x1e" + "\x1f".join(texts))

        if self.cache is not None:
            cached = self.cache.get_idf(signature)
            if cached is not None:
                return cached

        tokenized = [self.tokenize(text) for text in texts]
        n = len(texts)
        weights = {}
        if any(tokenized):
            # smooth_idf: ln((N + 1) / (df + 1)) + 1
            model = SkTfidfVectorizer(analyzer=_pretokenized, smooth_idf=True, norm=None)
            model.fit(tokenized)
            for token, idf in zip(model.get_feature_names_out(), model.idf_):
                if idf > self.settings.min_idf:
                    weights[str(token)] = float(idf)

        table = IdfTable(weights=weights, signature=signature, document_count=n)
        if self.cache is not None:
            self.cache.set_idf(signature, table)
        logger.debug(f"Built IDF table: {len(weights)} terms over {n} documents")
        return table

    def vectorize(self, text: str, idf: IdfTable) -> TermVector:
        """TF = count / max count; weight = TF * IDF, kept above min_term_weight"""
        if not isinstance(text, str) or not text or idf is None or not len(idf):
            return {}

        key = f"{_digest(text)}:{idf.signature}"
        if self.cache is not None:
            cached = self.cache.get_vector(key)
            if cached is not None:
                return dict(cached)

        tokens = self.tokenize(text)
        vector = {}
        if tokens:
            tf = Counter(tokens)
            max_count = max(tf.values())
            for token, count in tf.items():
                idf_score = idf.get(token, 0.0)
                if idf_score <= self.settings.min_idf:
                    continue
                weight = (count / max_count) * idf_score
                if weight > self.settings.min_term_weight:
                    vector[token] = weight

        if self.cache is not None:
            self.cache.set_vector(key, vector)
        return dict(vector)

    @staticmethod
    def cosine_similarity(vec1: TermVector, vec2: TermVector) -> float:
        """Cosine similarity between two sparse vectors, in [0, 1]"""
        if not vec1 or not vec2:
            return 0.0

        small, large = (vec1, vec2) if len(vec1) <= len(vec2) else (vec2, vec1)
        dot_product = sum(weight * large[term] for term, weight in small.items() if term in large)
        if dot_product == 0:
            return 0.0

        mag1 = math.sqrt(sum(v * v for v in vec1.values()))
        mag2 = math.sqrt(sum(v * v for v in vec2.values()))
        if mag1 == 0 or mag2 == 0:
            return 0.0

        return min(dot_product / (mag1 * mag2), 1.0)


BookLike = Union[Book, Mapping[str, Any]]


class BookRecommendationEngine:
    """
    Content-based recommendations for one user.

    Combines structured metadata (tags, author, rating), TF-IDF text
    similarity and the user's own feedback/view history. Vector caches may
    be shared between engines; personalized caches belong to this engine.
    """

    def __init__(self, user_id: Optional[str] = None, settings: Optional[RecommenderSettings] = None,
                 backend=None, vector_cache: Optional[VectorSpaceCache] = None, load: bool = True,
                 device_id_file: Optional[str] = None,
                 freshness: Optional[Callable[[Book], float]] = None):
        self.settings = settings or RecommenderSettings()
        if not user_id:
            user_id = get_or_create_device_user_id(device_id_file or DEFAULT_DEVICE_ID_FILE)

        self.vector_cache = vector_cache or VectorSpaceCache(CachePolicy(self.settings.cache_ttl))
        self.score_cache = ScoreCache(self.settings.cache_ttl)
        self.vectorizer = TFIDFVectorizer(self.settings, self.vector_cache)
        self.extractor = FeatureExtractor(self.settings.field_weights)
        self.store = UserSignalStore(user_id, backend, self.settings, on_change=self._on_signals_changed)
        self.scorer = SignalScorer(self.store, self.settings, self.score_cache, freshness)
        self._title_ids: Dict[str, set] = {}

        if load:
            self.store.load()
        logger.info(f"Recommendation engine ready for {user_id}")

    @property
    def user_id(self) -> str:
        return self.store.user_id

    # ---------------------------
    # Recommendations
    # ---------------------------

    def get_recommendations(self, selected_book: Optional[BookLike], candidate_pool: Iterable[BookLike],
                            options: Union[RecommendationOptions, Mapping[str, Any], None] = None
                            ) -> List[RankedResult]:
        selected = Book.coerce(selected_book)
        if selected is None or not selected.title:
            return []

        pool = self._coerce_pool(candidate_pool)
        if not pool:
            return []

        if not isinstance(options, RecommendationOptions):
            options = RecommendationOptions.from_dict(options)
        mode = self.resolve_mode(options)
        top_n = self.resolve_top_n(options)
        self._remember_ids([selected, *pool])

        self.store.record_view(self.scorer.key(selected))

        candidates = self._candidates(selected, pool)
        if not candidates:
            return []

        start = time.time()
        if mode == "content":
            results = get_content_based_recommendations(selected, candidates, self.scorer, top_n)
        elif mode == "style":
            results = get_style_based_recommendations(selected, candidates, self.scorer, self.vectorizer,
                                                      self.extractor, options.field_toggles, top_n)
        else:
            results = get_hybrid_recommendations(selected, candidates, self.scorer, self.vectorizer,
                                                 self.extractor, options.field_toggles, top_n)

        logger.info(
            f"Generated {len(results)} {mode} recommendations for '{selected.title}' "
            f"from {len(candidates)} candidates in {(time.time() - start) * 1000:.1f}ms"
        )
        return results

    def resolve_mode(self, options: Optional[RecommendationOptions] = None) -> str:
        """Mode a request runs in: the requested one, the default, or hybrid when unknown"""
        mode = (options.mode if options is not None else None) or self.settings.default_mode
        if mode not in VALID_MODES:
            logger.debug(f"Unknown mode {mode!r}, using hybrid")
            mode = "hybrid"
        return mode

    def resolve_top_n(self, options: Optional[RecommendationOptions] = None) -> int:
        requested = options.top_n if options is not None else None
        top_n = requested if requested and requested > 0 else self.settings.default_top_n
        if top_n > self.settings.max_top_n:
            logger.info(f"top_n {top_n} capped to {self.settings.max_top_n}")
            top_n = self.settings.max_top_n
        return top_n

    @staticmethod
    def _coerce_pool(candidate_pool: Optional[Iterable[BookLike]]) -> List[Book]:
        books = []
        skipped = 0
        for item in candidate_pool or []:
            book = Book.coerce(item)
            if book is None or not book.title:
                skipped += 1
                continue
            books.append(book)
        if skipped:
            logger.warning(f"Skipped {skipped} malformed book records")
        return books

    @staticmethod
    def _candidates(selected: Book, pool: Sequence[Book]) -> List[Book]:
        """Pool minus the selected book, first record kept per title"""
        seen = set()
        candidates = []
        for book in pool:
            if book.title == selected.title:
                continue
            if book.id is not None and selected.id is not None and book.id == selected.id:
                continue
            if book.title in seen:
                continue
            seen.add(book.title)
            candidates.append(book)
        return candidates

    # ---------------------------
    # Signals
    # ---------------------------

    def _remember_ids(self, books: Iterable[Book]) -> None:
        """With id keying, note which ids each title has been seen with"""
        if self.settings.signal_keying != "id":
            return
        for book in books:
            if book.id is not None:
                self._title_ids.setdefault(book.title, set()).add(book.id)

    def _signal_key_for(self, book: Union[BookLike, str]) -> str:
        if isinstance(book, str):
            title = book.strip()
            ids = self._title_ids.get(title)
            # a bare title maps to its id only when exactly one is known;
            # otherwise the title key applies to every edition
            if ids and len(ids) == 1:
                return self.scorer.key(Book(title=title, id=next(iter(ids))))
            return title
        coerced = Book.coerce(book)
        if coerced is None or not coerced.title:
            return ""
        self._remember_ids([coerced])
        return self.scorer.key(coerced)

    def submit_feedback(self, book: Union[BookLike, str], rating) -> float:
        """Record a like (0.8), neutral (0) or dislike (-0.5); returns the new accumulator"""
        return self.store.record_feedback(self._signal_key_for(book), rating)

    def record_view(self, book: Union[BookLike, str]) -> int:
        return self.store.record_view(self._signal_key_for(book))

    def get_feedback(self, book: Union[BookLike, str]) -> float:
        if isinstance(book, str):
            return self.store.get_feedback(self._signal_key_for(book))
        coerced = Book.coerce(book)
        return self.scorer.feedback(coerced) if coerced is not None and coerced.title else 0.0

    def calculate_popularity(self, book: BookLike) -> float:
        book = Book.coerce(book)
        return self.scorer.popularity(book) if book is not None else 0.0

    def calculate_freshness(self, book: BookLike) -> float:
        book = Book.coerce(book)
        return self.scorer.freshness(book) if book is not None else 0.0

    @staticmethod
    def get_common_tags(book_a: BookLike, book_b: BookLike) -> List[str]:
        return get_common_tags(Book.coerce(book_a), Book.coerce(book_b))

    def extract_book_text(self, book: BookLike, field_toggles: Union[FieldToggles, Mapping, None] = None) -> str:
        if not isinstance(field_toggles, FieldToggles):
            field_toggles = FieldToggles.from_dict(field_toggles)
        return self.extractor.extract_book_text(Book.coerce(book), field_toggles)

    # ---------------------------
    # Profile
    # ---------------------------

    def analyze_preferences(self, library: Iterable[BookLike]) -> Dict[str, Any]:
        books = self._coerce_pool(library)
        analysis = analyze_user_preferences(
            books, self.store.feedback_items(), self.store.view_items(), self.settings.signal_keying
        )
        self.store.update_preferences({
            "autoAnalysis": analysis,
            "lastAnalysis": int(time.time() * 1000),
        })
        return analysis

    def get_stats(self) -> Dict[str, Any]:
        return {
            "feedbackEntries": len(self.store.feedback),
            "viewHistory": len(self.store.view_history),
            "preferences": len(self.store.preferences),
            "userId": self.user_id,
            "cacheSize": self.vector_cache.size,
            "lastCacheUpdate": self.vector_cache.last_update_ms,
            "totalViews": sum(self.store.view_history.values()),
        }

    def export_data(self) -> Dict[str, Any]:
        return self.store.export_all()

    def import_data(self, snapshot) -> Dict[str, int]:
        return self.store.import_all(snapshot)

    def reset_all_data(self) -> None:
        self.store.reset()

    def sync(self) -> bool:
        return self.store.sync()

    def pop_warnings(self) -> List[str]:
        return self.store.pop_warnings()

    # ---------------------------
    # Caches
    # ---------------------------

    def invalidate_cache(self) -> None:
        self.vector_cache.invalidate()
        self.score_cache.clear()

    def _on_signals_changed(self, event: str) -> None:
        if event not in _SCORE_EVENTS:
            return
        self.score_cache.clear()
        if event in ("reset", "import"):
            self.vector_cache.invalidate()
        elif event == "feedback" and self.settings.invalidate_vectors_on_feedback:
            self.vector_cache.invalidate()


__all__ = [
    "Book",
    "FieldToggles",
    "IdfTable",
    "RankedResult",
    "RecommendationOptions",
    "RecommenderSettings",
    "TFIDFVectorizer",
    "BookRecommendationEngine",
    "FeedbackValidationError",
    "SnapshotImportError",
]
