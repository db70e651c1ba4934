import json

import pytest

from biblio_backend.user_signals import (
    SNAPSHOT_VERSION,
    FeedbackValidationError,
    SnapshotImportError,
    UserSignalStore,
)


@pytest.fixture
def store(backend, settings):
    return UserSignalStore("reader", backend, settings)


def test_feedback_decays_and_clamps(store):
    values = [store.record_feedback("Dune", 1.0) for _ in range(3)]
    assert values == pytest.approx([1.0, 1.85, 2.0])
    increments = [values[0], values[1] - values[0], values[2] - values[1]]
    assert increments[0] > increments[1] > increments[2]


def test_negative_feedback_accumulates(store):
    store.record_feedback("Dune", -1.0)
    assert store.record_feedback("Dune", -1.0) == pytest.approx(-1.85)
    for _ in range(5):
        store.record_feedback("Dune", -1.0)
    assert store.get_feedback("Dune") == -2.0


@pytest.mark.parametrize("rating", [1.5, -1.01, "0.5", None, True, float("nan"), [0.8]])
def test_invalid_feedback_leaves_state_untouched(store, rating):
    store.record_feedback("Dune", 0.8)
    revision = store.revision
    with pytest.raises(FeedbackValidationError):
        store.record_feedback("Dune", rating)
    assert store.get_feedback("Dune") == pytest.approx(0.8)
    assert store.revision == revision


def test_feedback_requires_a_key(store):
    with pytest.raises(FeedbackValidationError):
        store.record_feedback("", 0.8)


def test_views_count_up(store):
    assert store.record_view("Dune") == 1
    assert store.record_view("Dune") == 2
    assert store.get_views("Emma") == 0


def test_preferences(store):
    store.set_preference("theme", "dark")
    store.set_preference("nothing", None)
    assert store.get_preference("theme") == "dark"
    assert store.get_preference("nothing", "default") is None
    assert store.get_preference("missing", "default") == "default"

    assert store.remove_preference("theme") is True
    assert store.remove_preference("theme") is False
    with pytest.raises(ValueError):
        store.set_preference("bad", object())


def test_export_shape(store):
    store.record_feedback("Dune", 0.8)
    store.record_view("Dune")
    store.set_preference("theme", "dark")

    snapshot = store.export_all()
    assert snapshot["feedback"] == {"Dune": pytest.approx(0.8)}
    assert snapshot["viewHistory"] == {"Dune": 1}
    assert snapshot["preferences"] == {"theme": "dark"}
    assert snapshot["userId"] == "reader"
    assert snapshot["version"] == SNAPSHOT_VERSION == "2.1"
    assert isinstance(snapshot["timestamp"], int)


def test_import_replaces_state(store):
    store.record_feedback("Old", 0.8)
    counts = store.import_all({"feedback": {"Dune": 0.5}, "viewHistory": {"Dune": 3}, "preferences": {"a": [1, 2]}})

    assert counts == {"feedback": 1, "viewHistory": 1, "preferences": 1}
    assert store.feedback_items() == {"Dune": 0.5}
    assert store.get_views("Dune") == 3
    assert store.get_preference("a") == [1, 2]


def test_import_tolerates_missing_sections(store):
    store.import_all({"feedback": {"Dune": 1}})
    assert store.feedback_items() == {"Dune": 1.0}
    assert store.view_items() == {}
    assert store.preferences == {}


def test_import_accepts_json_text(store):
    store.import_all(json.dumps({"viewHistory": {"Emma": 2}}))
    assert store.get_views("Emma") == 2


@pytest.mark.parametrize("snapshot", [
    "{not json",
    [1, 2, 3],
    {"feedback": {"Dune": 0.5}, "viewHistory": {"Dune": "many"}},
    {"feedback": {"Dune": "high"}},
    {"viewHistory": {"Dune": -1}},
    {"preferences": "dark"},
])
def test_invalid_import_is_all_or_nothing(store, snapshot):
    store.record_feedback("Emma", 0.8)
    before = store.export_all()

    with pytest.raises(SnapshotImportError):
        store.import_all(snapshot)

    after = store.export_all()
    assert after["feedback"] == before["feedback"]
    assert after["viewHistory"] == before["viewHistory"]


def test_state_survives_reload(store, backend, settings):
    store.record_feedback("Dune", 0.8)
    store.record_view("Dune")
    store.set_preference("theme", "dark")

    reloaded = UserSignalStore("reader", backend, settings)
    assert reloaded.load() is True
    assert reloaded.get_feedback("Dune") == pytest.approx(0.8)
    assert reloaded.get_views("Dune") == 1
    assert reloaded.get_preference("theme") == "dark"


def test_reset_clears_memory_and_storage(store, backend, settings):
    store.record_feedback("Dune", 0.8)
    store.reset()

    assert store.feedback_items() == {}
    assert backend.load("reader") is None
    assert UserSignalStore("reader", backend, settings).load() is False


def test_persistence_failures_become_warnings(failing_backend, settings):
    store = UserSignalStore("offline", failing_backend, settings)
    assert store.load() is False

    assert store.record_feedback("Dune", 0.8) == pytest.approx(0.8)
    store.reset()
    warnings = store.pop_warnings()

    assert len(warnings) == 3
    assert all("connection refused" in w for w in warnings)
    assert store.pop_warnings() == []


def test_corrupt_stored_snapshot_is_ignored(backend, settings):
    backend.save("reader", {"feedback": {"Dune": "broken"}})
    store = UserSignalStore("reader", backend, settings)

    assert store.load() is False
    assert store.feedback_items() == {}
    assert store.warnings


def test_on_change_events(backend, settings):
    events = []
    store = UserSignalStore("reader", backend, settings, on_change=events.append)
    store.record_view("Dune")
    store.record_feedback("Dune", 0.8)
    store.set_preference("theme", "dark")
    store.import_all({})
    store.reset()
    assert events == ["view", "feedback", "preference", "import", "reset"]


def test_sync_reloads_then_saves(store, backend, settings):
    store.record_feedback("Dune", 0.8)
    other = UserSignalStore("reader", backend, settings)
    assert other.sync() is True
    assert other.get_feedback("Dune") == pytest.approx(0.8)
