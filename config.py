import os
import secrets
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


class Config:
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "SECRET_KEY not set! Using auto-generated key. "
            "Signed values will not survive an app restart.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "pronostics_db"
            db_user = os.environ.get("DB_USER") or "pronostics"
            db_password = os.environ.get("DB_PASSWORD") or "pronostics"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "pronostics.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External score providers
    FOOTBALL_DATA_API_KEY = os.environ.get("FOOTBALL_DATA_API_KEY")
    FOOTBALL_DATA_BASE_URL = (
        os.environ.get("FOOTBALL_DATA_BASE_URL") or "https://api.football-data.org/v4"
    )
    # Only external matches of this competition are reconciled (empty = all)
    FOOTBALL_COMPETITION_FILTER = os.environ.get(
        "FOOTBALL_COMPETITION_FILTER", "UEFA Champions League"
    )
    RUGBY_API_KEY = os.environ.get("RUGBY_API_KEY")
    RUGBY_API_BASE_URL = (
        os.environ.get("RUGBY_API_BASE_URL") or "https://v1.rugby.api-sports.io"
    )

    # Scoring
    RUGBY_CLOSE_SCORE_TOLERANCE = int(os.environ.get("RUGBY_CLOSE_SCORE_TOLERANCE") or 3)

    # Live games older than this are finished even without provider data,
    # long enough to cover extra time and penalties
    LIVE_GAME_MAX_DURATION_HOURS = float(
        os.environ.get("LIVE_GAME_MAX_DURATION_HOURS") or 3
    )
    RUGBY_LIVE_GAME_MAX_DURATION_HOURS = float(
        os.environ.get("RUGBY_LIVE_GAME_MAX_DURATION_HOURS") or 4
    )

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", 300))
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pronostics:"

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    LIVE_SYNC_INTERVAL_SECONDS = int(os.environ.get("LIVE_SYNC_INTERVAL_SECONDS") or 60)
    STATUS_SYNC_INTERVAL_SECONDS = int(
        os.environ.get("STATUS_SYNC_INTERVAL_SECONDS") or 60
    )

    # Real-time refresh
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "eventlet")
    SSE_KEEPALIVE_SECONDS = int(os.environ.get("SSE_KEEPALIVE_SECONDS") or 20)
    SSE_QUEUE_SIZE = int(os.environ.get("SSE_QUEUE_SIZE") or 100)

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        import redis

        try:
            redis_client = redis.Redis.from_url(
                self.CACHE_REDIS_URL, socket_connect_timeout=1
            )
            redis_client.ping()
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not explicitly set!",
                UserWarning,
            )
        if not os.environ.get("FOOTBALL_DATA_API_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: FOOTBALL_DATA_API_KEY not set, "
                "football live scores will not be synced.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CACHE_TYPE = "NullCache"
    SCHEDULER_ENABLED = False
    SOCKETIO_ASYNC_MODE = "threading"
    RATELIMIT_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    FOOTBALL_DATA_API_KEY = "test-football-key"
    RUGBY_API_KEY = "test-rugby-key"
    SSE_KEEPALIVE_SECONDS = 1

    def __init__(self):
        # Keep the in-memory database regardless of DATABASE_URL
        pass


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
