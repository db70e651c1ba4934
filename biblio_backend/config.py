import os


class Config:
    # --- Core ---
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- CORS ---
    FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
    EXTRA_ORIGINS = os.getenv("EXTRA_ORIGINS", "http://localhost:3000").split(",")

    CORS_RESOURCES = {
        r"/api/*": {
            "origins": [FRONTEND_ORIGIN, *[o.strip() for o in EXTRA_ORIGINS if o.strip()]],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        }
    }
    CORS_SUPPORTS_CREDENTIALS = False
    CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "X-User-Id"]
    CORS_EXPOSE_HEADERS = ["Content-Type"]

    # --- Cache (Flask-Caching) ---
    # RedisCache when REDIS_URL is set, SimpleCache otherwise.
    CACHE_TYPE = os.getenv("CACHE_TYPE", "RedisCache" if os.getenv("REDIS_URL") else "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = int(os.getenv("CACHE_DEFAULT_TIMEOUT", "300"))
    CACHE_REDIS_URL = os.getenv("REDIS_URL")
    CACHE_KEY_PREFIX = os.getenv("CACHE_KEY_PREFIX", "biblio:")

    # --- Signal persistence ---
    DATABASE_URL = os.getenv("DATABASE_URL")
    DATABASE_SSLMODE = os.getenv("DATABASE_SSLMODE", "require")
    # "auto" uses Postgres when DATABASE_URL is set, local JSON files otherwise
    SIGNAL_BACKEND = os.getenv("SIGNAL_BACKEND", "auto")
    SIGNAL_STORE_DIR = os.getenv("SIGNAL_STORE_DIR", os.path.join(os.getcwd(), ".signal_store"))

    # --- Recommendations ---
    SIGNAL_KEYING = os.getenv("SIGNAL_KEYING", "title")  # "title" or "id"
    # engines kept in memory at once; the least recently used is dropped first
    MAX_ACTIVE_USERS = int(os.getenv("MAX_ACTIVE_USERS", "1000"))
    RECOMMENDATION_CACHE_TTL = int(os.getenv("RECOMMENDATION_CACHE_TTL", "300"))
    RECOMMENDATION_DEFAULT_MODE = os.getenv("RECOMMENDATION_DEFAULT_MODE", "hybrid")
    RECOMMENDATION_DEFAULT_TOP_N = int(os.getenv("RECOMMENDATION_DEFAULT_TOP_N", "8"))
    RECOMMENDATION_MAX_TOP_N = int(os.getenv("RECOMMENDATION_MAX_TOP_N", "50"))
    INVALIDATE_VECTORS_ON_FEEDBACK = os.getenv("INVALIDATE_VECTORS_ON_FEEDBACK", "false").lower() == "true"
