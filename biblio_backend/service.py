# biblio_backend/service.py
import logging
import threading
from collections import OrderedDict
from typing import Optional, Tuple

from flask import current_app

from .cache import CachePolicy, VectorSpaceCache
from .database import build_signal_backend
from .extensions import cache
from .recommendation_system import BookRecommendationEngine
from .recommender.settings import RecommenderSettings
from .utils.user_resolver import resolve_user_id_from_request

logger = logging.getLogger(__name__)

EXTENSION_KEY = "recommendation_service"


class RecommendationService:
    """
    One engine per user id, created lazily. At most ``max_engines`` stay in
    memory; the least recently used one is dropped first and reloads its
    signals from the backend on its next request. All engines share the
    vector space cache, which lives in the app-wide Flask-Caching backend.
    """

    def __init__(self, settings: RecommenderSettings, backend, vector_cache: VectorSpaceCache,
                 max_engines: int = 1000):
        self.settings = settings
        self.backend = backend
        self.vector_cache = vector_cache
        self.max_engines = max(1, max_engines)
        self._engines: "OrderedDict[str, BookRecommendationEngine]" = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_app(cls, app) -> "RecommendationService":
        settings = RecommenderSettings.from_config(app.config)
        backend = build_signal_backend(app.config)
        vector_cache = VectorSpaceCache(CachePolicy(settings.cache_ttl), backend=cache)
        logger.info(f"[service] signal backend={backend.name} keying={settings.signal_keying}")
        return cls(settings, backend, vector_cache, int(app.config.get("MAX_ACTIVE_USERS", 1000)))

    def _cached_engine(self, user_id: str) -> Optional[BookRecommendationEngine]:
        # caller holds self._lock
        engine = self._engines.get(user_id)
        if engine is not None:
            self._engines.move_to_end(user_id)
        return engine

    def engine_for(self, user_id: str) -> BookRecommendationEngine:
        with self._lock:
            engine = self._cached_engine(user_id)
        if engine is not None:
            return engine

        # loading may wait on the database, so it happens outside the lock
        engine = BookRecommendationEngine(
            user_id=user_id,
            settings=self.settings,
            backend=self.backend,
            vector_cache=self.vector_cache,
        )

        with self._lock:
            existing = self._cached_engine(user_id)
            if existing is not None:
                return existing
            self._engines[user_id] = engine
            while len(self._engines) > self.max_engines:
                evicted, _ = self._engines.popitem(last=False)
                logger.info(f"[service] dropped idle engine for {evicted}")
        return engine

    def clear_caches(self) -> int:
        """Drop the shared vector cache and every engine's score cache"""
        self.vector_cache.invalidate()
        with self._lock:
            engines = list(self._engines.values())
        for engine in engines:
            engine.score_cache.clear()
        return len(engines)

    @property
    def active_users(self) -> int:
        return len(self._engines)


def init_service(app) -> RecommendationService:
    service = RecommendationService.from_app(app)
    app.extensions[EXTENSION_KEY] = service
    return service


def get_service() -> RecommendationService:
    return current_app.extensions[EXTENSION_KEY]


def engine_for_request(req) -> Tuple[Optional[BookRecommendationEngine], Optional[str]]:
    """(engine, None) for the request's user, or (None, error message)"""
    service = get_service()
    is_valid, user_id, error = resolve_user_id_from_request(req)
    if not is_valid:
        return None, error
    return service.engine_for(user_id), None
