"""
Requisition Approval Engine
Configuration classes for the Flask app factory.

Selected by APP_ENV (development | testing | production):

    app = create_app()            # APP_ENV or "development"
    app = create_app("testing")

Environment variables:
    DATABASE_URL            PostgreSQL URL (required in production)
    TEST_DATABASE_URL       override the in-memory SQLite test database
    SECRET_KEY              required in production
    CORS_ORIGINS            comma-separated origins ("*" outside production)
    RATELIMIT_STORAGE_URI   Flask-Limiter backend (memory:// by default)
    APPROVAL_RATE_LIMIT     limit on the approval endpoints
    WORKFLOW_ADMIN_RATE_LIMIT  limit on template administration
    APPROVAL_COLLAPSE_DUPLICATE_APPROVERS  skip a step whose approver already
                            holds an earlier step of the same chain
    SLOW_REQUEST_MS         threshold for slow-request warnings
    LOG_LEVEL / LOG_FORMAT  read by middleware/logging_config.py
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'approval_engine_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _database_url(fallback=None):
    """DATABASE_URL with the legacy postgres:// scheme rewritten for SQLAlchemy 2."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Approval payloads are small JSON documents
    MAX_CONTENT_LENGTH = 256 * 1024

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    APPROVAL_RATE_LIMIT = os.getenv("APPROVAL_RATE_LIMIT", "120/minute")
    WORKFLOW_ADMIN_RATE_LIMIT = os.getenv("WORKFLOW_ADMIN_RATE_LIMIT", "60/minute")

    APPROVAL_COLLAPSE_DUPLICATE_APPROVERS = _env_flag("APPROVAL_COLLAPSE_DUPLICATE_APPROVERS")

    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    # Tests opt in per case with monkeypatch
    APPROVAL_COLLAPSE_DUPLICATE_APPROVERS = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        # 30s statement timeout
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
