import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS

# Load .env only in local/dev, before Config reads the environment
if os.getenv("FLASK_ENV", "production") != "production":
    from dotenv import load_dotenv
    load_dotenv()

from biblio_backend.cache import init_cache
from biblio_backend.config import Config
from biblio_backend.service import init_service


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    # CORS
    CORS(
        app,
        resources=app.config["CORS_RESOURCES"],
        supports_credentials=app.config["CORS_SUPPORTS_CREDENTIALS"],
        allow_headers=app.config["CORS_ALLOW_HEADERS"],
        expose_headers=app.config["CORS_EXPOSE_HEADERS"],
    )

    # Cache
    init_cache(app)

    # Recommendation engines (one per user)
    init_service(app)

    # Blueprints
    from biblio_backend.blueprints.health.routes import bp as health_bp
    from biblio_backend.blueprints.profile.routes import profile_bp
    from biblio_backend.blueprints.recommendations.routes import rec_bp
    from biblio_backend.blueprints.utils.routes import utils_bp

    app.register_blueprint(rec_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(utils_bp, url_prefix="/api")

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app
