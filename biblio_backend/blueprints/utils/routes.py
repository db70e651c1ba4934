from flask import Blueprint, jsonify
import logging

from biblio_backend.extensions import cache
from biblio_backend.service import get_service

utils_bp = Blueprint("utils", __name__)
logger = logging.getLogger(__name__)


def _clear_all() -> int:
    cache.clear()
    return get_service().clear_caches()


@utils_bp.route("/admin/clear_cache", methods=["POST"])
def clear_cache():
    """Clear the application cache and every engine's derived caches"""
    try:
        engines = _clear_all()
        logger.info(f"Cache cleared successfully ({engines} engines)")
        return jsonify({
            "success": True,
            "message": "Cache cleared successfully",
            "engines": engines,
        }), 200
    except Exception as e:
        logger.error(f"Error clearing cache: {e}")
        return jsonify({
            "success": False,
            "error": str(e)
        }), 500


@utils_bp.route("/admin/clear_cache", methods=["GET"])
def clear_cache_get():
    """Clear the application cache (GET method for easy testing)"""
    try:
        engines = _clear_all()
        logger.info("Cache cleared successfully via GET")
        return jsonify({
            "status": "cache cleared",
            "success": True,
            "message": "Cache cleared successfully",
            "engines": engines,
        }), 200
    except Exception as e:
        logger.error(f"Error clearing cache: {e}")
        return jsonify({
            "status": "error",
            "success": False,
            "error": str(e)
        }), 500


@utils_bp.route("/admin/cache_status", methods=["GET"])
def cache_status():
    """Check cache status and test cache functionality"""
    try:
        test_key = "cache_test"
        test_value = "working"

        cache.set(test_key, test_value, timeout=10)
        retrieved_value = cache.get(test_key)
        cache_working = retrieved_value == test_value

        service = get_service()
        return jsonify({
            "success": True,
            "cache_working": cache_working,
            "vector_cache_size": service.vector_cache.size,
            "last_cache_update": service.vector_cache.last_update_ms,
            "message": "Cache is working" if cache_working else "Cache test failed"
        }), 200

    except Exception as e:
        logger.error(f"Error checking cache status: {e}")
        return jsonify({
            "success": False,
            "cache_working": False,
            "error": str(e)
        }), 500
