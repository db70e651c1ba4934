import logging

from flask import Blueprint, jsonify, request

from biblio_backend.service import engine_for_request

# Register blueprint with URL prefix
profile_bp = Blueprint("profile", __name__, url_prefix="/api/profile")
logger = logging.getLogger(__name__)


def _with_warnings(engine, payload: dict):
    warnings = engine.pop_warnings()
    if warnings:
        payload["warnings"] = warnings
    return payload


# ───────────────────────────────────────────────────────────────
# GET /api/profile/preferences → all stored preferences
# ───────────────────────────────────────────────────────────────
@profile_bp.get("/preferences")
def list_preferences():
    engine, error = engine_for_request(request)
    if engine is None:
        return jsonify({"success": False, "error": f"Invalid user ID: {error}"}), 400
    return jsonify({"success": True, "preferences": dict(engine.store.preferences)}), 200


# ───────────────────────────────────────────────────────────────
# GET /api/profile/preferences/<key> → one preference
# ───────────────────────────────────────────────────────────────
@profile_bp.get("/preferences/<key>")
def get_preference(key):
    engine, error = engine_for_request(request)
    if engine is None:
        return jsonify({"success": False, "error": f"Invalid user ID: {error}"}), 400

    if key not in engine.store.preferences:
        return jsonify({"success": False, "error": f"Preference '{key}' not found"}), 404
    return jsonify({"success": True, "key": key, "value": engine.store.get_preference(key)}), 200


# ───────────────────────────────────────────────────────────────
# PUT /api/profile/preferences/<key> → {"value": ...}
# ───────────────────────────────────────────────────────────────
@profile_bp.put("/preferences/<key>")
def set_preference(key):
    engine, error = engine_for_request(request)
    if engine is None:
        return jsonify({"success": False, "error": f"Invalid user ID: {error}"}), 400

    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "value" not in data:
        return jsonify({"success": False, "error": "Missing required field: value"}), 400

    try:
        engine.store.set_preference(key, data["value"])
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.error(f"Error saving preference {key}: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Error saving preference"}), 500

    return jsonify(_with_warnings(engine, {"success": True, "key": key, "value": data["value"]})), 200


# ───────────────────────────────────────────────────────────────
# DELETE /api/profile/preferences/<key>
# ───────────────────────────────────────────────────────────────
@profile_bp.delete("/preferences/<key>")
def remove_preference(key):
    engine, error = engine_for_request(request)
    if engine is None:
        return jsonify({"success": False, "error": f"Invalid user ID: {error}"}), 400

    if not engine.store.remove_preference(key):
        return jsonify({"success": False, "error": f"Preference '{key}' not found"}), 404
    return jsonify(_with_warnings(engine, {"success": True, "key": key})), 200
