# =============================================================================
# FLASK BOOK RECOMMENDATION API - ENTRYPOINT
# =============================================================================
import os

from biblio_backend import create_app

app = create_app()

# =============================================================================
# APPLICATION RUNNER
# =============================================================================
if __name__ == '__main__':
    app.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "5000")),
        debug=app.config.get("FLASK_ENV") == "development",
    )
