# biblio_backend/cache.py
import logging
import os
import threading
import time
from typing import Callable, Optional

from cachelib import SimpleCache

from .extensions import cache

logger = logging.getLogger(__name__)


def init_cache(app):
    """
    Configure and initialize Flask-Caching.
    Uses Redis if REDIS_URL is present; falls back to in-memory SimpleCache.
    """
    redis_url = app.config.get("CACHE_REDIS_URL") or os.getenv("REDIS_URL")
    default_timeout = int(app.config.get("CACHE_DEFAULT_TIMEOUT", 300))

    if redis_url and app.config.get("CACHE_TYPE") != "SimpleCache":
        app.config.update(
            CACHE_TYPE="RedisCache",
            CACHE_REDIS_URL=redis_url,
            CACHE_DEFAULT_TIMEOUT=default_timeout,
            CACHE_KEY_PREFIX=app.config.get("CACHE_KEY_PREFIX", "biblio:"),
        )
    else:
        app.config.update(
            CACHE_TYPE="SimpleCache",
            CACHE_DEFAULT_TIMEOUT=default_timeout,
        )

    cache.init_app(app)
    logger.info(f"[cache] backend={app.config.get('CACHE_TYPE')} timeout={default_timeout}s")
    return cache


class CachePolicy:
    """
    Time-to-live policy with a single global epoch.

    Every table governed by the policy is valid only while less than ``ttl``
    seconds have passed since the last ``touch()``.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self.last_update: Optional[float] = None

    def touch(self) -> None:
        self.last_update = self.clock()

    def reset(self) -> None:
        self.last_update = None

    def is_valid(self) -> bool:
        return self.last_update is not None and (self.clock() - self.last_update) < self.ttl

    @property
    def last_update_ms(self) -> Optional[int]:
        return int(self.last_update * 1000) if self.last_update is not None else None


class VectorSpaceCache:
    """
    Memo tables for IDF tables (by corpus signature) and TF-IDF vectors
    (by text digest + IDF signature).

    Entries depend only on the corpus shape, never on user signals. The
    backend is anything with cachelib's get/set/delete interface: a
    ``cachelib.SimpleCache`` by default, or the app-wide Flask-Caching
    instance so vectors are shared between users.
    """

    IDF_PREFIX = "idf:"
    VECTOR_PREFIX = "vec:"

    def __init__(self, policy: Optional[CachePolicy] = None, backend=None, threshold: int = 2000):
        self.policy = policy or CachePolicy()
        # timeout=0: entries never expire on their own, the policy decides
        self.backend = backend if backend is not None else SimpleCache(threshold=threshold, default_timeout=0)
        # guards the key sets and the policy epoch; backend calls run outside it
        self._lock = threading.Lock()
        self._idf_keys: set = set()
        self._vector_keys: set = set()

    # ---------------------------
    # IDF table
    # ---------------------------

    def get_idf(self, signature: str):
        if not self._check_epoch():
            return None
        table = self.backend.get(self.IDF_PREFIX + signature)
        if table is None:
            with self._lock:
                self._idf_keys.discard(signature)
        else:
            logger.debug(f"IDF cache hit {signature[:12]}")
        return table

    def set_idf(self, signature: str, table) -> None:
        self.backend.set(self.IDF_PREFIX + signature, table, timeout=0)
        with self._lock:
            self._idf_keys.add(signature)
            self.policy.touch()

    # ---------------------------
    # Term vectors
    # ---------------------------

    def get_vector(self, key: str):
        if not self._check_epoch():
            return None
        vector = self.backend.get(self.VECTOR_PREFIX + key)
        if vector is None:
            with self._lock:
                self._vector_keys.discard(key)
        return vector

    def set_vector(self, key: str, vector) -> None:
        self.backend.set(self.VECTOR_PREFIX + key, vector, timeout=0)
        with self._lock:
            self._vector_keys.add(key)

    # ---------------------------
    # Invalidation
    # ---------------------------

    def invalidate(self) -> None:
        with self._lock:
            idf_keys, self._idf_keys = self._idf_keys, set()
            vector_keys, self._vector_keys = self._vector_keys, set()
            self.policy.reset()
        for signature in idf_keys:
            self.backend.delete(self.IDF_PREFIX + signature)
        for key in vector_keys:
            self.backend.delete(self.VECTOR_PREFIX + key)
        logger.info("Vector space cache invalidated")

    def _check_epoch(self) -> bool:
        with self._lock:
            if self.policy.is_valid():
                return True
            stale = bool(self._idf_keys or self._vector_keys)
        if stale:
            # expired epoch: drop both tables
            self.invalidate()
        return False

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._idf_keys) + len(self._vector_keys)

    @property
    def last_update_ms(self) -> Optional[int]:
        return self.policy.last_update_ms


class ScoreCache:
    """
    Per-user memo of personalized values (popularity per signal key).
    Cleared whenever the user's signals change.
    """

    def __init__(self, ttl: float = 300.0, threshold: int = 1000):
        self._cache = SimpleCache(threshold=threshold, default_timeout=int(ttl))

    def get(self, key: str) -> Optional[float]:
        return self._cache.get(key)

    def set(self, key: str, value: float) -> None:
        self._cache.set(key, value)

    def clear(self) -> None:
        self._cache.clear()
