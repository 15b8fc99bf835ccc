import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
socketio = SocketIO()
cache = Cache()
migrate = Migrate()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


def _redis_url_if_available(url):
    """Return url when a Redis server answers there, None otherwise"""
    if not url:
        return None
    import redis

    try:
        redis_client = redis.Redis.from_url(url, socket_connect_timeout=1)
        redis_client.ping()
        return url
    except (redis.exceptions.RedisError, ValueError) as e:
        logger.warning(f"Redis not available at {url}: {e}")
        return None


limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
)


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Setup logging first so extension start-up messages are captured
    from pronostics.utils.logging_config import setup_logging

    setup_logging(app)

    redis_url = None
    if not app.config.get("TESTING", False):
        redis_url = _redis_url_if_available(
            os.environ.get("REDIS_URL") or app.config.get("CACHE_REDIS_URL")
        )

    # Use Redis for shared rate limiting across workers when available
    app.config.setdefault("RATELIMIT_STORAGE_URI", redis_url or "memory://")

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    from pronostics.services.refresh_broadcaster import refresh_broadcaster

    refresh_broadcaster.init_app(app)

    # Handlers registered before init_app are re-attached to every app instance
    from pronostics import socketio_handlers  # noqa: F401 - imported for side effects

    # Configure WebSocket CORS based on environment
    allowed_origins = app.config.get("SOCKETIO_CORS_ORIGINS", "*")
    if allowed_origins == "*" and not (app.config.get("DEBUG") or app.config.get("TESTING")):
        allowed_origins = os.environ.get(
            "ALLOWED_ORIGINS", "https://pronostics.example.com"
        ).split(",")

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "eventlet"),
        ping_timeout=60,
        ping_interval=25,
        message_queue=redis_url,
    )
    if redis_url:
        logger.info(f"Socket.IO using Redis message queue at {redis_url}")

    # Import and register blueprints
    from pronostics.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    register_error_handlers(app)

    # Show configuration summary
    show_config_summary(app, config_name)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from pronostics.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def show_config_summary(app, config_name):
    """Log configuration warnings and status"""
    logger.info(f"Pronostics starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("FOOTBALL_DATA_API_KEY"):
        logger.warning("FOOTBALL_DATA_API_KEY not set - football live sync disabled")
    if not app.config.get("RUGBY_API_KEY"):
        logger.warning("RUGBY_API_KEY not set - rugby live sync disabled")

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        if "memory" in db_url:
            logger.info("Using SQLite database (in-memory)")
        else:
            logger.info("Using SQLite database (development mode)")
    elif "postgresql" in db_url:
        # Hide credentials, only keep host and database name
        host_part = db_url.split("@")[-1]
        logger.info(f"Using PostgreSQL database at {host_part}")
    else:
        logger.info(
            f"Using database: {db_url.split('://')[0] if '://' in db_url else 'Unknown'}"
        )


def register_error_handlers(app):
    """Register global error handlers"""

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": getattr(error, "description", "Bad request")}), 400

    @app.errorhandler(403)
    def forbidden_error(error):
        return jsonify({"error": "Access forbidden"}), 403

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(503)
    def service_unavailable_error(error):
        return jsonify({"error": "Service unavailable"}), 503


from pronostics import models  # noqa: F401, E402 - imported for model registration
