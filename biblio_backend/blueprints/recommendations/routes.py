# blueprints/recommendations/routes.py
# Recommendation, feedback and signal management endpoints
import logging
from dataclasses import replace

from flask import Blueprint, jsonify, request

from biblio_backend.recommender.models import RecommendationOptions
from biblio_backend.service import engine_for_request, get_service
from biblio_backend.user_signals import FeedbackValidationError, SnapshotImportError

# Create blueprint
rec_bp = Blueprint("recommendations", __name__, url_prefix="/api/recommendations")
logger = logging.getLogger(__name__)


def _bad_request(message: str):
    return jsonify({"success": False, "error": message}), 400


def _server_error(action: str, e: Exception):
    logger.error(f"Error {action}: {e}", exc_info=True)
    return jsonify({"success": False, "error": f"Error {action}"}), 500


def _respond(engine, payload: dict, status: int = 200):
    """Attach soft persistence warnings collected during the request"""
    warnings = engine.pop_warnings()
    if warnings:
        payload["warnings"] = warnings
    return jsonify(payload), status


def _book_key(data: dict):
    """Title (or book record) the request is about"""
    book = data.get("book")
    if isinstance(book, dict):
        return book
    title = data.get("title", book)
    return title if isinstance(title, str) and title.strip() else None


# ───────────────────────────────────────────────────────────────
# POST /api/recommendations → ranked similar books
# ───────────────────────────────────────────────────────────────
@rec_bp.route("", methods=["POST"])
def get_recommendations():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _bad_request("JSON body required")

    selected = data.get("book")
    books = data.get("books", [])
    if not isinstance(selected, dict):
        return _bad_request("Missing required field: book")
    if not isinstance(books, list):
        return _bad_request("'books' must be a list")

    try:
        options = RecommendationOptions.from_dict(data)
        mode = engine.resolve_mode(options)
        top_n = engine.resolve_top_n(options)

        results = engine.get_recommendations(selected, books, replace(options, mode=mode, top_n=top_n))
        return _respond(engine, {
            "success": True,
            "userId": engine.user_id,
            "mode": mode,
            "topN": top_n,
            "count": len(results),
            "recommendations": [r.to_dict() for r in results],
        })
    except Exception as e:
        return _server_error("generating recommendations", e)


# ───────────────────────────────────────────────────────────────
# POST /api/recommendations/feedback → like / neutral / dislike
# ───────────────────────────────────────────────────────────────
@rec_bp.route("/feedback", methods=["POST"])
def submit_feedback():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")

    data = request.get_json(silent=True) or {}
    book = _book_key(data)
    if book is None:
        return _bad_request("Missing required field: title")
    if "rating" not in data:
        return _bad_request("Missing required field: rating")

    try:
        value = engine.submit_feedback(book, data.get("rating"))
        return _respond(engine, {"success": True, "feedback": value})
    except FeedbackValidationError as e:
        return _bad_request(str(e))
    except Exception as e:
        return _server_error("saving feedback", e)


@rec_bp.route("/views", methods=["POST"])
def record_view():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")

    data = request.get_json(silent=True) or {}
    book = _book_key(data)
    if book is None:
        return _bad_request("Missing required field: title")

    try:
        count = engine.record_view(book)
        return _respond(engine, {"success": True, "views": count})
    except ValueError as e:
        return _bad_request(str(e))
    except Exception as e:
        return _server_error("recording view", e)


# ───────────────────────────────────────────────────────────────
# Snapshot export / import / reset
# ───────────────────────────────────────────────────────────────
@rec_bp.route("/export", methods=["GET"])
def export_data():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")
    try:
        return _respond(engine, {"success": True, "snapshot": engine.export_data()})
    except Exception as e:
        return _server_error("exporting data", e)


@rec_bp.route("/import", methods=["POST"])
def import_data():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")

    data = request.get_json(silent=True)
    if data is None:
        return _bad_request("JSON body required")
    # either {"snapshot": {...}} or the snapshot itself
    snapshot = data.get("snapshot", data) if isinstance(data, dict) else data

    try:
        counts = engine.import_data(snapshot)
        return _respond(engine, {"success": True, "imported": counts})
    except SnapshotImportError as e:
        return _bad_request(str(e))
    except Exception as e:
        return _server_error("importing data", e)


@rec_bp.route("/reset", methods=["POST"])
def reset_data():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")
    try:
        engine.reset_all_data()
        return _respond(engine, {"success": True, "message": "All recommendation data reset"})
    except Exception as e:
        return _server_error("resetting data", e)


# ───────────────────────────────────────────────────────────────
# Stats / analysis / sync
# ───────────────────────────────────────────────────────────────
@rec_bp.route("/stats", methods=["GET"])
def get_stats():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")
    try:
        return _respond(engine, {"success": True, "stats": engine.get_stats()})
    except Exception as e:
        return _server_error("reading stats", e)


@rec_bp.route("/analysis", methods=["POST"])
def analyze_preferences():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")

    data = request.get_json(silent=True) or {}
    books = data.get("books", [])
    if not isinstance(books, list):
        return _bad_request("'books' must be a list")

    try:
        analysis = engine.analyze_preferences(books)
        return _respond(engine, {"success": True, "analysis": analysis})
    except Exception as e:
        return _server_error("analyzing preferences", e)


@rec_bp.route("/sync", methods=["POST"])
def sync_data():
    engine, error = engine_for_request(request)
    if engine is None:
        return _bad_request(f"Invalid user ID: {error}")
    try:
        synced = engine.sync()
        return _respond(engine, {"success": synced, "synced": synced})
    except Exception as e:
        return _server_error("syncing data", e)


@rec_bp.route("/health", methods=["GET"])
def recommendations_health():
    service = get_service()
    return jsonify({
        "status": "healthy",
        "service": "recommendations",
        "activeUsers": service.active_users,
        "vectorCacheSize": service.vector_cache.size,
        "signalBackend": service.backend.name,
    })
