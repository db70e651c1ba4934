from flask import Blueprint, jsonify, current_app

from biblio_backend.extensions import cache
from biblio_backend.service import get_service

bp = Blueprint("health", __name__, url_prefix="/api")


@bp.get("/health")
def health():
    return jsonify({"status": "healthy", "service": "book-recommendation-api", "version": "1.0.0"})


@bp.get("/health/detailed")
def detailed():
    try:
        db_status = "not configured"
        if current_app.config.get("DATABASE_URL") and current_app.config.get("SIGNAL_BACKEND") != "local":
            from biblio_backend.database import get_db_connection
            conn = get_db_connection(current_app.config["DATABASE_URL"], current_app.config.get("DATABASE_SSLMODE"))
            db_status = "connected" if conn else "failed"
            if conn:
                conn.close()

        cache_ok = True
        if current_app.config.get("CACHE_TYPE") == "RedisCache":
            try:
                cache.set("health:ping", "pong", timeout=5)
                cache_ok = cache.get("health:ping") == "pong"
            except Exception:
                cache_ok = False

        service = get_service()
        status = "healthy" if (db_status != "failed" and cache_ok) else "degraded"
        return jsonify({
            "status": status,
            "database": db_status,
            "cache": "connected" if cache_ok else "failed",
            "signal_backend": service.backend.name,
            "active_users": service.active_users,
        })
    except Exception as e:
        return jsonify({"status": "unhealthy", "error": str(e)}), 500
