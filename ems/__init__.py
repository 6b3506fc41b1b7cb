# ems/__init__.py

import logging

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_jwt_extended import JWTManager
from werkzeug.middleware.proxy_fix import ProxyFix

# Extensions are bound to an app in create_app()
db = SQLAlchemy()  # Database ORM
migrate = Migrate()  # DB migrations
limiter = Limiter(key_func=get_remote_address)
jwt = JWTManager()


@jwt.expired_token_loader
def expired_token_callback(jwt_header, jwt_payload):
    return jsonify({"error": "TOKEN_EXPIRED", "message": "Token has expired"}), 401


@jwt.unauthorized_loader
def missing_token_callback(reason):
    return jsonify({"error": "UNAUTHORIZED", "message": reason}), 401


def create_app(config_object=None, clock=None):
    """Build the Flask application.

    ``clock`` overrides the configured clock source; tests pass a fixed clock
    so the election window can be evaluated deterministically.
    """
    from ems.config import Config
    from ems.voting.clock import build_clock
    from ems.audit.audit_logger import AuditLogger

    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(level=app.config['LOG_LEVEL'], format=app.config['LOG_FORMAT'])

    # Fix proxy headers for HTTPS
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    jwt.init_app(app)

    app.extensions['ems'] = {
        'clock': clock or build_clock(app.config),
        'audit_logger': AuditLogger(log_dir=app.config['AUDIT_LOG_DIR']),
    }

    # Ensure model modules are imported so SQLAlchemy metadata is populated
    # for Flask-Migrate / Alembic (`flask db migrate`).
    from ems.database import models  # noqa: F401

    from ems.routes import bp as election_bp
    from ems.operations.health_monitor import bp as health_bp
    app.register_blueprint(election_bp)
    app.register_blueprint(health_bp)

    from ems.cli import register_commands
    register_commands(app)

    return app
