"""
user_signals.py
---------------
Per-user signal store: feedback accumulators, view counts and free-form
preferences, with snapshot export/import and persistence through a
``database.py`` backend.

Persistence problems never interrupt the caller: they are logged and
collected in ``warnings`` while the in-memory state keeps serving.
"""

import json
import logging
import math
import numbers
import time
from copy import deepcopy
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .recommender.settings import RecommenderSettings

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "2.1"


class FeedbackValidationError(ValueError):
    """Feedback rating is not a number in the accepted range."""


class SnapshotImportError(ValueError):
    """Snapshot could not be parsed or has invalid content."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def parse_snapshot(snapshot, clamp: float = 2.0) -> Tuple[Dict[str, float], Dict[str, int], Dict[str, Any]]:
    """
    Validate a snapshot (dict or JSON string) and return its three maps.
    Missing sections are treated as empty. Raises SnapshotImportError on
    the first invalid entry, so callers can apply all or nothing.
    """
    if isinstance(snapshot, (str, bytes)):
        try:
            snapshot = json.loads(snapshot)
        except ValueError as e:
            raise SnapshotImportError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(snapshot, Mapping):
        raise SnapshotImportError("Snapshot must be a JSON object")

    def section(name: str) -> Mapping:
        value = snapshot.get(name)
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise SnapshotImportError(f"'{name}' must be an object")
        return value

    feedback = {}
    for key, value in section("feedback").items():
        if not isinstance(key, str) or not _is_number(value):
            raise SnapshotImportError(f"Invalid feedback entry for {key!r}")
        feedback[key] = max(-clamp, min(clamp, float(value)))

    views = {}
    for key, value in section("viewHistory").items():
        if not isinstance(key, str) or not _is_number(value) or value < 0 or int(value) != value:
            raise SnapshotImportError(f"Invalid view count for {key!r}")
        views[key] = int(value)

    preferences = {}
    for key, value in section("preferences").items():
        if not isinstance(key, str):
            raise SnapshotImportError(f"Invalid preference key {key!r}")
        preferences[key] = deepcopy(value)

    return feedback, views, preferences


class UserSignalStore:
    """
    Signals of one user. Mutated only through its methods; every mutation
    calls ``on_change(event)`` and, with autosave on, persists a snapshot.
    """

    def __init__(self, user_id: str, backend=None, settings: Optional[RecommenderSettings] = None,
                 on_change: Optional[Callable[[str], None]] = None, autosave: bool = True):
        self.user_id = user_id
        self.backend = backend
        self.settings = settings or RecommenderSettings()
        self.on_change = on_change
        self.autosave = autosave

        self.feedback: Dict[str, float] = {}
        self.view_history: Dict[str, int] = {}
        self.preferences: Dict[str, Any] = {}

        self.revision = 0
        self.warnings: List[str] = []

    # ---------------------------
    # Reads
    # ---------------------------

    def get_feedback(self, key: str) -> float:
        return self.feedback.get(key, 0.0)

    def get_views(self, key: str) -> int:
        return self.view_history.get(key, 0)

    def feedback_items(self) -> Dict[str, float]:
        return dict(self.feedback)

    def view_items(self) -> Dict[str, int]:
        return dict(self.view_history)

    def pop_warnings(self) -> List[str]:
        warnings, self.warnings = self.warnings, []
        return warnings

    # ---------------------------
    # Mutations
    # ---------------------------

    def record_view(self, key: str) -> int:
        if not key:
            raise ValueError("A signal key is required to record a view")
        count = self.view_history.get(key, 0) + 1
        self.view_history[key] = count
        self._changed("view")
        return count

    def record_feedback(self, key: str, rating) -> float:
        """
        new = old * decay + rating, clamped to [-clamp, clamp].
        Older feedback fades, so repeated identical ratings converge.
        """
        s = self.settings
        if not key:
            raise FeedbackValidationError("A book title is required for feedback")
        if not _is_number(rating):
            raise FeedbackValidationError(f"Feedback rating must be a number, got {rating!r}")
        if rating < s.feedback_min or rating > s.feedback_max:
            raise FeedbackValidationError(
                f"Feedback rating must be between {s.feedback_min:g} and {s.feedback_max:g}, got {rating!r}"
            )

        current = self.feedback.get(key, 0.0)
        value = current * s.feedback_decay + float(rating)
        value = max(-s.feedback_clamp, min(s.feedback_clamp, value))
        self.feedback[key] = value

        logger.info(f"Feedback for '{key}': {current:.3f} -> {value:.3f}")
        self._changed("feedback")
        return value

    def get_preference(self, key: str, default: Any = None) -> Any:
        if key not in self.preferences:
            return default
        return deepcopy(self.preferences[key])

    def set_preference(self, key: str, value: Any) -> None:
        self.update_preferences({key: value})

    def update_preferences(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            if not isinstance(key, str) or not key:
                raise ValueError("Preference key must be a non-empty string")
            try:
                json.dumps(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Preference '{key}' is not JSON serializable: {e}") from e
        for key, value in values.items():
            self.preferences[key] = deepcopy(value)
        self._changed("preference")

    def remove_preference(self, key: str) -> bool:
        if key not in self.preferences:
            return False
        del self.preferences[key]
        self._changed("preference")
        return True

    # ---------------------------
    # Snapshots
    # ---------------------------

    def export_all(self) -> Dict[str, Any]:
        return {
            "feedback": dict(self.feedback),
            "viewHistory": dict(self.view_history),
            "preferences": deepcopy(self.preferences),
            "userId": self.user_id,
            "timestamp": _now_ms(),
            "version": SNAPSHOT_VERSION,
        }

    def import_all(self, snapshot) -> Dict[str, int]:
        """Replace all signals with the snapshot's. Nothing changes if it is invalid."""
        feedback, views, preferences = parse_snapshot(snapshot, self.settings.feedback_clamp)

        self.feedback = feedback
        self.view_history = views
        self.preferences = preferences
        logger.info(f"Imported signals for {self.user_id}: {len(feedback)} feedback, {len(views)} views")
        self._changed("import")

        return {
            "feedback": len(feedback),
            "viewHistory": len(views),
            "preferences": len(preferences),
        }

    def reset(self) -> None:
        self.feedback = {}
        self.view_history = {}
        self.preferences = {}
        self.revision += 1
        logger.info(f"Signals reset for {self.user_id}")
        if self.on_change:
            self.on_change("reset")

        if self.backend is not None:
            try:
                self.backend.delete(self.user_id)
            except Exception as e:
                self._warn(f"Could not delete stored signals: {e}")

    # ---------------------------
    # Persistence
    # ---------------------------

    def load(self) -> bool:
        """Load the stored snapshot. Missing or unreadable data leaves an empty store."""
        if self.backend is None:
            return False
        try:
            snapshot = self.backend.load(self.user_id)
        except Exception as e:
            self._warn(f"Could not load stored signals: {e}")
            return False
        if snapshot is None:
            logger.info(f"No stored signals for {self.user_id}")
            return False

        try:
            feedback, views, preferences = parse_snapshot(snapshot, self.settings.feedback_clamp)
        except SnapshotImportError as e:
            self._warn(f"Ignoring corrupt stored signals: {e}")
            return False

        self.feedback = feedback
        self.view_history = views
        self.preferences = preferences
        self.revision += 1
        if self.on_change:
            self.on_change("load")
        logger.info(f"Loaded signals for {self.user_id}: {len(feedback)} feedback, {len(views)} views")
        return True

    def save(self) -> bool:
        if self.backend is None:
            return True
        try:
            self.backend.save(self.user_id, self.export_all())
        except Exception as e:
            self._warn(f"Could not save signals: {e}")
            return False
        logger.debug(f"Saved signals for {self.user_id}")
        return True

    def sync(self) -> bool:
        """Reload from the backend, then write the merged state back."""
        self.load()
        return self.save()

    def _changed(self, event: str) -> None:
        self.revision += 1
        if self.on_change:
            self.on_change(event)
        if self.autosave:
            self.save()

    def _warn(self, message: str) -> None:
        logger.warning(f"[signals:{self.user_id}] {message}")
        self.warnings.append(message)
