"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from typing import Any, Dict

from flask import Flask, jsonify

from chunkwise.logger import get_logger

from .routes.translation import translation_bp

logger = get_logger(__name__)


def build_app(config: Dict[str, Any]) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.config["JSON_AS_ASCII"] = False
    app.json.ensure_ascii = False
    app.config["CHUNKWISE_CONFIG"] = config

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(translation_bp, url_prefix="/api")


def register_default_routes(app: Flask) -> None:
    """Register health check and JSON error handlers."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok"})

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception(f"Internal server error: {e}")
        return jsonify({"error": "Internal server error"}), 500
