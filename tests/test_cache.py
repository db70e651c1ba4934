import threading
import time

from cachelib import SimpleCache

from biblio_backend.cache import CachePolicy, ScoreCache, VectorSpaceCache
from biblio_backend.recommender.models import IdfTable


def test_policy_is_invalid_until_touched(clock):
    policy = CachePolicy(ttl=300, clock=clock)
    assert not policy.is_valid()
    policy.touch()
    assert policy.is_valid()
    assert policy.last_update_ms == int(clock.now * 1000)


def test_policy_expires_after_ttl(clock):
    policy = CachePolicy(ttl=300, clock=clock)
    policy.touch()
    clock.advance(299)
    assert policy.is_valid()
    clock.advance(2)
    assert not policy.is_valid()


def test_vector_space_cache_round_trip(clock):
    cache = VectorSpaceCache(CachePolicy(ttl=300, clock=clock))
    table = IdfTable(weights={"dune": 1.5}, signature="abc", document_count=2)
    cache.set_idf("abc", table)
    cache.set_vector("text:abc", {"dune": 1.5})

    assert cache.get_idf("abc") == table
    assert cache.get_vector("text:abc") == {"dune": 1.5}
    assert cache.get_idf("missing") is None
    assert cache.size == 2


def test_expired_epoch_drops_both_tables(clock):
    cache = VectorSpaceCache(CachePolicy(ttl=300, clock=clock))
    cache.set_idf("abc", IdfTable(weights={"dune": 1.5}, signature="abc"))
    cache.set_vector("text:abc", {"dune": 1.5})

    clock.advance(301)
    assert cache.get_vector("text:abc") is None
    assert cache.size == 0
    assert cache.get_idf("abc") is None
    assert cache.last_update_ms is None


def test_invalidate_clears_everything(clock):
    cache = VectorSpaceCache(CachePolicy(ttl=300, clock=clock))
    cache.set_idf("abc", IdfTable(weights={"dune": 1.5}, signature="abc"))
    cache.set_vector("text:abc", {"dune": 1.5})

    cache.invalidate()
    assert cache.size == 0
    assert cache.get_idf("abc") is None
    assert cache.get_vector("text:abc") is None



class ReentrantBackend(SimpleCache):
    """Writes a new vector through the cache while a delete is in progress"""

    def __init__(self):
        super().__init__(default_timeout=0)
        self.owner = None

    def delete(self, key):
        if self.owner is not None:
            owner, self.owner = self.owner, None
            owner.set_vector("late", {"spezia": 1.0})
        return super().delete(key)


def test_vector_written_during_invalidate_survives(clock):
    backend = ReentrantBackend()
    cache = VectorSpaceCache(CachePolicy(ttl=300, clock=clock), backend=backend)
    cache.set_vector("a", {"dune": 1.0})
    cache.set_vector("b", {"deserto": 1.0})

    backend.owner = cache
    cache.invalidate()

    assert cache.size == 1
    assert backend.get("vec:a") is None
    assert backend.get("vec:late") == {"spezia": 1.0}


class SlowDeleteBackend(SimpleCache):
    def delete(self, key):
        time.sleep(0.001)
        return super().delete(key)


def test_invalidate_while_other_threads_write():
    cache = VectorSpaceCache(CachePolicy(ttl=300), backend=SlowDeleteBackend(default_timeout=0))
    for i in range(200):
        cache.set_vector(f"old:{i}", {"dune": 1.0})

    errors = []

    def invalidate():
        try:
            cache.invalidate()
        except Exception as e:
            errors.append(e)

    worker = threading.Thread(target=invalidate)
    worker.start()
    for i in range(200):
        cache.set_vector(f"new:{i}", {"spezia": 1.0})
    worker.join()

    assert errors == []
    assert cache.size <= 200

def test_score_cache():
    cache = ScoreCache(ttl=300)
    assert cache.get("pop:Dune:5.0") is None
    cache.set("pop:Dune:5.0", 0.42)
    assert cache.get("pop:Dune:5.0") == 0.42
    cache.clear()
    assert cache.get("pop:Dune:5.0") is None
