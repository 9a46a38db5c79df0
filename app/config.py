"""
Process Mapping Studio
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'process_studio_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    # Rate limiter storage (memory:// when Redis is absent)
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    ORCHESTRATE_RATE_LIMIT = os.getenv("ORCHESTRATE_RATE_LIMIT", "30/minute")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # ── LLM gateway ──────────────────────────────────────────────────────
    LLM_DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gpt-4o")
    LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
    LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))

    # ── Orchestration engine ─────────────────────────────────────────────
    # Similarity thresholds are exclusive: a score must be strictly greater.
    PROCESS_MATCH_THRESHOLD = float(os.getenv("PROCESS_MATCH_THRESHOLD", "0.6"))
    STEP_MATCH_THRESHOLD = float(os.getenv("STEP_MATCH_THRESHOLD", "0.7"))
    PROCESS_MATCH_CANDIDATES = int(os.getenv("PROCESS_MATCH_CANDIDATES", "10"))
    INTENT_CONFIDENCE_MIN = float(os.getenv("INTENT_CONFIDENCE_MIN", "0.6"))
    EXTRACTION_CONFIDENCE_MIN = float(os.getenv("EXTRACTION_CONFIDENCE_MIN", "0.7"))
    HISTORY_WINDOW = int(os.getenv("HISTORY_WINDOW", "5"))
    SESSION_HISTORY_LIMIT = int(os.getenv("SESSION_HISTORY_LIMIT", "30"))
    OPPORTUNITY_SCAN_WORKERS = int(os.getenv("OPPORTUNITY_SCAN_WORKERS", "4"))
    METADATA_MERGE_RETRIES = int(os.getenv("METADATA_MERGE_RETRIES", "3"))
    GOVERNANCE_AUTO_RISK_DRAFT = _env_bool("GOVERNANCE_AUTO_RISK_DRAFT", "true")
    SESSION_AUTO_TITLE = _env_bool("SESSION_AUTO_TITLE", "true")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a single static connection; pool sizing does not apply
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    LLM_MAX_RETRIES = 1
    OPPORTUNITY_SCAN_WORKERS = 2
    SESSION_AUTO_TITLE = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
