"""
Sitetrack — Chantier Management Platform
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'sitetrack_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

# Firestore rejects write batches larger than this
MAX_STORE_BATCH_SIZE = 500


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
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # CORS (admin SPA runs on a separate origin)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting backend
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # Document store: "sql" (documents table) | "firestore"
    DOCUMENT_STORE = os.getenv("DOCUMENT_STORE", "sql")
    FIRESTORE_PROJECT_ID = os.getenv("FIRESTORE_PROJECT_ID")

    # ── Chantier phase migration ─────────────────────────────────────────
    CHANTIER_COLLECTION = os.getenv("CHANTIER_COLLECTION", "chantiers")
    MIGRATION_BATCH_SIZE = min(
        int(os.getenv("MIGRATION_BATCH_SIZE", str(MAX_STORE_BATCH_SIZE))),
        MAX_STORE_BATCH_SIZE,
    )

    # Status classification policy (see services/progress.StatusPolicy)
    STATUS_AT_RISK_WINDOW_DAYS = int(os.getenv("STATUS_AT_RISK_WINDOW_DAYS", "14"))
    STATUS_AT_RISK_PROGRESS_THRESHOLD = float(
        os.getenv("STATUS_AT_RISK_PROGRESS_THRESHOLD", "80")
    )
    STATUS_BLOCKED_IS_AT_RISK = _env_bool("STATUS_BLOCKED_IS_AT_RISK", "true")


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
    SQLALCHEMY_ENGINE_OPTIONS = {}
    DOCUMENT_STORE = "sql"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url
        # Firestore deployments only need a throwaway engine for the extension
        else (_SQLITE_TEST if Config.DOCUMENT_STORE == "firestore" else None)
    )
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI and self.DOCUMENT_STORE == "sql":
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
