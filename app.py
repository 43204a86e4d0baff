from datetime import datetime

from flask import Flask, g, jsonify, session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from extensions import db, limiter, mail, migrate
from routes.analytics import analytics_bp
from routes.class_routes import class_bp
from routes.fee_routes import fee_bp
from routes.import_export_routes import import_export_bp
from routes.reminder_routes import reminder_bp
from routes.settings_routes import settings_bp
from routes.student_routes import student_bp
from utils.realtime import DashboardFeed
from utils.session_context import load_session_context
from utils.store import COLLECTIONS, RecordNotFound, StoreUnavailable

SESSION_KEY = "dashboard_context"


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json.sort_keys = app.config.get("JSON_SORT_KEYS", False)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    app.config.setdefault("STARTED_AT", datetime.now())

    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)
    limiter.init_app(app)

    app.register_blueprint(student_bp)
    app.register_blueprint(class_bp)
    app.register_blueprint(fee_bp)
    app.register_blueprint(reminder_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(import_export_bp)
    app.register_blueprint(settings_bp)

    register_session_context(app)
    register_error_handlers(app)
    register_health(app)

    app.extensions["dashboard_feed"] = DashboardFeed().start()

    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from scheduler import start_scheduler
        app.extensions["reminder_scheduler"] = start_scheduler(app)

    return app


def register_session_context(app):
    @app.before_request
    def _load_session_context():
        g.session_context = load_session_context(
            session.get(SESSION_KEY),
            app.config.get("SESSION_TIMEOUT_MS", 30 * 60 * 1000),
        )

    @app.after_request
    def _save_session_context(response):
        context = g.get("session_context")
        if context is not None:
            session[SESSION_KEY] = context.to_dict()
        return response


def register_error_handlers(app):
    @app.errorhandler(StoreUnavailable)
    def _store_unavailable(e):
        return jsonify({"ok": False, "error": str(e)}), 503

    @app.errorhandler(RecordNotFound)
    def _not_found(e):
        return jsonify({"ok": False, "error": str(e)}), 404

    @app.errorhandler(ValueError)
    def _bad_request(e):
        return jsonify({"ok": False, "error": str(e)}), 400


def register_health(app):
    @app.route("/health")
    def health():
        """Readiness probe: can the record store be reached and every collection read."""
        tables = {}
        try:
            db.session.execute(text("SELECT 1"))
            for name, model in COLLECTIONS.items():
                tables[name] = db.session.query(model).count()
        except SQLAlchemyError as e:
            db.session.rollback()
            app.logger.error("Health check failed: %s", e)
            return jsonify({"ok": False, "database": "unreachable", "error": str(e.__class__.__name__)}), 503
        uptime = max(0, int((datetime.now() - app.config["STARTED_AT"]).total_seconds()))
        return jsonify({"ok": True, "database": "connected", "tables": tables, "uptime_seconds": uptime})


if __name__ == "__main__":
    create_app().run(debug=True)
