from __future__ import annotations

import os
from typing import Any, Dict

import structlog
from flask import Flask, jsonify, g, request

from catalog_admin.config import Config
from catalog_admin.errors import CategoryError, CorruptHierarchy
from catalog_admin.extensions import (
    db,
    migrate,
    limiter,
    cache,
)
from catalog_admin.logging_config import configure_logging
from catalog_admin import models  # noqa: F401  ensure models imported for migrations


def create_app(config_overrides: Dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=False)

    # Load config
    app.config.from_object(Config())
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(
        app.config.get("LOG_LEVEL", "INFO"),
        cache_loggers=not app.config.get("TESTING", False),
    )
    log = structlog.get_logger("catalog_admin")

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    cache.init_app(app)

    # Rate limiter (in-memory for dev). Strict on category mutations
    limiter.init_app(app)

    # Request context enrichment for logging
    @app.before_request
    def add_request_context() -> None:
        g.request_id = request.headers.get("X-Request-ID") or os.urandom(8).hex()

    @app.after_request
    def echo_request_id(resp):
        resp.headers.setdefault("X-Request-ID", getattr(g, "request_id", ""))
        return resp

    # Blueprints
    from catalog_admin.blueprints.api.categories import bp as admin_categories_bp

    app.register_blueprint(admin_categories_bp)

    # CLI
    from catalog_admin.cli import categories_cli

    app.cli.add_command(categories_cli)

    # Health route
    @app.get("/health")
    def health():
        try:
            db.session.execute(db.text("SELECT 1"))
            db_ok = "connected"
        except Exception:
            db_ok = "error"
        return jsonify({"status": "ok", "db": db_ok}), 200

    # Category engine failures carry their own code and status
    @app.errorhandler(CategoryError)
    def category_error(e: CategoryError):
        if isinstance(e, CorruptHierarchy):
            # Data was changed outside the engine; needs an operator, not the user
            log.error("category_hierarchy_alert", path=request.path, **e.details)
        return jsonify(e.to_dict()), e.status_code

    # Error handlers (JSON)
    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "bad_request", "message": str(e)}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found", "message": "resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed", "message": str(e)}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "rate_limited", "message": "too many requests"}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "server_error", "message": "internal server error"}), 500

    return app
