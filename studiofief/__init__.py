import logging
from uuid import uuid4

from flask import Flask, g, request
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

from config import Config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from . import models  # noqa: F401  (registers user_loader + tables)

    @app.before_request
    def bind_request_id():
        incoming = (request.headers.get("X-Request-Id") or "").strip()
        g.request_id = incoming[:64] if incoming else uuid4().hex

    @app.after_request
    def echo_request_id(resp):
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers["X-Request-Id"] = rid
        resp.headers.setdefault("Cache-Control", "no-store")
        return resp

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Blueprints
    from .auth.routes import auth_bp
    from .catalog.routes import catalog_bp
    from .projects.routes import projects_bp
    from .quotes.routes import quotes_bp
    from .invoices.routes import invoices_bp
    from .payments.routes import payments_bp
    from .settings.routes import settings_bp

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(catalog_bp, url_prefix="/api/businesses/<int:business_id>")
    app.register_blueprint(projects_bp, url_prefix="/api/businesses/<int:business_id>")
    app.register_blueprint(quotes_bp, url_prefix="/api/businesses/<int:business_id>")
    app.register_blueprint(invoices_bp, url_prefix="/api/businesses/<int:business_id>")
    app.register_blueprint(payments_bp, url_prefix="/api/businesses/<int:business_id>")
    app.register_blueprint(settings_bp, url_prefix="/api/businesses/<int:business_id>")

    from .cli import register_cli
    register_cli(app)

    @app.route("/health")
    def health():
        return {"ok": True}

    return app
