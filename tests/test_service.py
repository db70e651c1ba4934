from biblio_backend.cache import CachePolicy, VectorSpaceCache
from biblio_backend.database import LocalFileSignalBackend
from biblio_backend.service import RecommendationService


class LockRecordingBackend(LocalFileSignalBackend):
    """Remembers whether the registry lock was held while a user was loaded"""

    def __init__(self, directory):
        super().__init__(directory)
        self.service = None
        self.locked_during_load = []

    def load(self, user_id):
        self.locked_during_load.append(self.service._lock.locked())
        return super().load(user_id)


def make_service(settings, backend, max_engines=2):
    return RecommendationService(settings, backend, VectorSpaceCache(CachePolicy(settings.cache_ttl)),
                                 max_engines=max_engines)


def test_same_engine_per_user(settings, backend):
    service = make_service(settings, backend)
    assert service.engine_for("alice") is service.engine_for("alice")
    assert service.engine_for("alice") is not service.engine_for("bob")


def test_least_recently_used_engine_is_dropped(settings, backend):
    service = make_service(settings, backend)
    alice = service.engine_for("alice")
    service.engine_for("bob")
    assert service.engine_for("alice") is alice

    service.engine_for("carol")
    assert service.active_users == 2
    # bob was idle longest
    assert service.engine_for("alice") is alice
    assert service.engine_for("carol") is service.engine_for("carol")


def test_dropped_engine_reloads_signals(settings, backend):
    service = make_service(settings, backend, max_engines=1)
    service.engine_for("alice").submit_feedback("Dune", 0.8)
    service.engine_for("bob")

    reloaded = service.engine_for("alice")
    assert reloaded.store.feedback_items() == {"Dune": 0.8}


def test_engines_load_outside_the_registry_lock(settings, tmp_path):
    backend = LockRecordingBackend(str(tmp_path / "signals"))
    service = make_service(settings, backend)
    backend.service = service

    service.engine_for("alice")
    service.engine_for("bob")
    assert backend.locked_during_load == [False, False]
