"""
EDMS Approval Workflow Engine configuration.

``create_app`` picks the class from ``APP_ENV`` (development / testing /
production). Everything tunable comes from environment variables:

    DATABASE_URL          PostgreSQL in production, SQLite fallback in dev
    SECRET_KEY            Flask secret; JWT_SECRET_KEY falls back to it
    JWT_ACCESS_EXPIRES    access token lifetime in seconds
    CORS_ORIGINS          comma-separated origins, "*" in dev
    REDIS_URL             Flask-Limiter storage (memory:// when unset)
    LOG_LEVEL             root log level
    DEFAULT_TENANT_PLAN   plan given to industry instances without one
"""

import os
import secrets

_SQLITE_DEV = "sqlite:///edms_dev.db"
_SQLITE_TEST = "sqlite:///:memory:"

# Regenerated per process, so dev tokens die on restart
_DEV_SECRET = secrets.token_hex(32)


def _database_url(default=None):
    # SQLAlchemy 2 only accepts the postgresql:// scheme
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "900"))

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    DEFAULT_TENANT_PLAN = os.getenv("DEFAULT_TENANT_PLAN", "trial")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key-not-for-production-use-0123456789abcdef"
    JWT_SECRET_KEY = "test-jwt-secret-key-not-for-production-use-0123456789"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # StaticPool (in-memory SQLite) rejects pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = "memory://"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # Approval transitions and provisioning must finish within 30s
    SQLALCHEMY_ENGINE_OPTIONS = {
        **Config.SQLALCHEMY_ENGINE_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
