import datetime
import logging
import os

import click
import mongoengine
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_login import LoginManager
from flask_mail import Mail

from routes.admin_routes.admin_bp import admin_bp
from routes.auth_routes.auth_bp import auth_bp
from routes.guards import load_user_from_request, unauthorized
from routes.help_routes.help_bp import help_bp
from services.accounts import AccountService
from services.assignment import AssignmentService
from services.clock import Clock
from services.errors import ServiceError
from services.expiry_sweeper import ExpirySweeper
from services.help_requests import HelpRequestService
from services.notifier import EmailNotifier
from services.session_manager import SessionManager
from services.token_codec import TokenCodec

# ==========================================
# 1. LOAD ENV
# ==========================================

load_dotenv()

mail = Mail()
login_manager = LoginManager()


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def default_config():
    return {
        "SECRET_KEY": os.getenv("SECRET_KEY", "dev-secret-key"),
        "JWT_SECRET": os.getenv("JWT_SECRET", "dev-jwt-secret"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "CLIENT_URL": os.getenv("CLIENT_URL", "http://localhost:5173"),

        # MongoDB
        "MONGO_URI": os.getenv("MONGO_URI", "mongodb://localhost:27017/scan"),
        "MONGO_CLIENT_CLASS": None,

        # Mail
        "MAIL_SERVER": os.getenv("MAIL_SERVER", "smtp.gmail.com"),
        "MAIL_PORT": int(os.getenv("MAIL_PORT", "587")),
        "MAIL_USE_TLS": _env_flag("MAIL_USE_TLS", True),
        "MAIL_USERNAME": os.getenv("MAIL_USERNAME"),
        "MAIL_PASSWORD": os.getenv("MAIL_PASSWORD"),
        "MAIL_DEFAULT_SENDER": os.getenv("MAIL_DEFAULT_SENDER", os.getenv("MAIL_USERNAME")),

        # Sessions and help requests
        "SESSION_TTL_MINUTES": int(os.getenv("SESSION_TTL_MINUTES", "15")),
        "IDLE_TIMEOUT_MINUTES": int(os.getenv("IDLE_TIMEOUT_MINUTES", "15")),
        "REFRESH_TTL_DAYS": int(os.getenv("REFRESH_TTL_DAYS", "7")),
        "MIN_ADVANCE_HOURS": float(os.getenv("MIN_ADVANCE_HOURS", "3")),
        "CANCEL_CUTOFF_HOURS": float(os.getenv("CANCEL_CUTOFF_HOURS", "2")),
        "SWEEP_INTERVAL_SECONDS": int(os.getenv("SWEEP_INTERVAL_SECONDS", "300")),
        "START_SWEEPER": _env_flag("START_SWEEPER", True),
        "CLOCK": None,
    }


def create_app(config=None):
    app = Flask(__name__)

    # ==========================================
    # 2. CONFIG
    # ==========================================

    app.config.update(default_config())
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # ==========================================
    # 3. MAIL
    # ==========================================

    mail.init_app(app)

    # ==========================================
    # 4. MONGODB
    # ==========================================

    connect_kwargs = {"host": app.config["MONGO_URI"]}
    if app.config["MONGO_CLIENT_CLASS"] is not None:
        connect_kwargs["mongo_client_class"] = app.config["MONGO_CLIENT_CLASS"]

    mongoengine.disconnect()
    connection = mongoengine.connect(**connect_kwargs)

    if not app.testing:
        try:
            connection.server_info()
            app.logger.info("MongoDB connected successfully")
        except Exception:
            app.logger.exception("MongoDB connection failed")

    # ==========================================
    # 5. SERVICES
    # ==========================================

    clock = app.config["CLOCK"] or Clock()
    notifier = EmailNotifier(mail, app.config["CLIENT_URL"])
    sessions = SessionManager(
        TokenCodec(app.config["JWT_SECRET"], clock),
        clock,
        session_ttl=datetime.timedelta(minutes=app.config["SESSION_TTL_MINUTES"]),
        refresh_ttl=datetime.timedelta(days=app.config["REFRESH_TTL_DAYS"]),
        idle_timeout=datetime.timedelta(minutes=app.config["IDLE_TIMEOUT_MINUTES"]),
    )
    sweeper = ExpirySweeper(
        notifier, clock, interval=app.config["SWEEP_INTERVAL_SECONDS"], app=app
    )

    app.extensions["scan"] = {
        "clock": clock,
        "notifier": notifier,
        "sessions": sessions,
        "accounts": AccountService(notifier, clock, sessions),
        "help_requests": HelpRequestService(
            clock,
            min_advance=datetime.timedelta(hours=app.config["MIN_ADVANCE_HOURS"]),
            cancel_cutoff=datetime.timedelta(hours=app.config["CANCEL_CUTOFF_HOURS"]),
        ),
        "assignment": AssignmentService(clock, notifier),
        "sweeper": sweeper,
    }

    # ==========================================
    # 6. LOGIN MANAGER
    # ==========================================

    login_manager.init_app(app)
    login_manager.request_loader(load_user_from_request)
    login_manager.unauthorized_handler(unauthorized)

    # ==========================================
    # 7. ROUTES & ERRORS
    # ==========================================

    app.register_blueprint(auth_bp)
    app.register_blueprint(help_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.route("/")
    def home():
        return jsonify({"message": "SCAN help desk API running"})

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.argument("name")
    def create_admin(email, password, name):
        """Seed an admin account."""
        app.extensions["scan"]["accounts"].create_admin(email, password, name)
        click.echo(f"Admin {email} created")

    # ==========================================
    # 8. EXPIRY SWEEPER
    # ==========================================

    if app.config["START_SWEEPER"] and not app.testing:
        sweeper.start()

    return app


if __name__ == "__main__":
    create_app().run(debug=_env_flag("FLASK_DEBUG", False), port=int(os.getenv("PORT", "5000")))
