# laundry/__init__.py
from __future__ import annotations

from typing import Any, Mapping

from flask import Flask, jsonify, render_template, request

from .settings import Config
from .extensions import db, migrate, login_manager, limiter


def create_app(overrides: Mapping[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Global template context (Shop identity + helpers)
    # ======================
    from .config import shop_context
    from .services.lifecycle import OrderStatus, PaymentStatus, status_value

    @app.context_processor
    def inject_shop():
        return shop_context()

    app.jinja_env.globals["ORDER_STATUSES"] = [s.value for s in OrderStatus]
    app.jinja_env.globals["PAYMENT_STATUSES"] = [s.value for s in PaymentStatus]

    @app.template_filter("money")
    def money_filter(value):
        try:
            return f"{app.config.get('CURRENCY', 'KES')} {float(value or 0):,.2f}"
        except (TypeError, ValueError):
            return f"{app.config.get('CURRENCY', 'KES')} 0.00"

    @app.template_filter("label")
    def label_filter(value):
        return status_value(value).replace("_", " ").capitalize()

    # ======================
    # Register Blueprints
    # ======================
    from .routes import main
    from .auth import auth
    from .public import public
    from .reports import reports_bp
    from .functions import functions

    app.register_blueprint(main)
    app.register_blueprint(auth)
    app.register_blueprint(public)
    app.register_blueprint(reports_bp)
    app.register_blueprint(functions)

    # ======================
    # CLI commands
    # ======================
    from .cli import register_cli

    register_cli(app)

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        if request.path.startswith("/functions/"):
            return jsonify({"error": "Too many requests"}), 429
        return "Too many requests. Please try again later.", 429

    # ======================
    # Forbidden handler
    # ======================
    @app.errorhandler(403)
    def forbidden(e):
        return render_template("403.html"), 403

    # ======================
    # Not found handler
    # ======================
    @app.errorhandler(404)
    def not_found(e):
        return render_template("404.html"), 404

    return app
