# backend/fuelcash/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.audit_service import init_audit_sink
    init_audit_sink(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.handovers import handovers_bp  # Custody chain
    from .routes.settlements import settlements_bp  # Daily reconciliation

    app.register_blueprint(system_bp)
    app.register_blueprint(handovers_bp)
    app.register_blueprint(settlements_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
