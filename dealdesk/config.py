"""
DealDesk — checklist engine
Configuration classes for the Flask App Factory.

Usage:
    from dealdesk.config import get_config
    app.config.from_object(get_config(os.getenv("APP_ENV", "development")))

Environment variables:
    DATABASE_URL                  PostgreSQL / SQLite URL (required in production)
    SECRET_KEY                    Flask secret (required in production)
    LOG_LEVEL                     DEBUG | INFO | WARNING ... (default per environment)
    CORS_ORIGINS                  Comma-separated origins, "*" outside production
    SLOW_REQUEST_MS               Requests slower than this are logged as warnings
    CHECKLIST_MANUAL_TASK_ORDER   Order given to manually created tasks
    SEED_CATALOG_ON_STARTUP       "true" seeds the default buy/sell-side catalog at boot
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'dealdesk_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _database_url(fallback=None):
    """DATABASE_URL with the legacy ``postgres://`` scheme rewritten for SQLAlchemy 2."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))

    # Checklist engine
    CHECKLIST_MANUAL_TASK_ORDER = int(os.getenv("CHECKLIST_MANUAL_TASK_ORDER", "999"))
    SEED_CATALOG_ON_STARTUP = _env_flag("SEED_CATALOG_ON_STARTUP")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    SEED_CATALOG_ON_STARTUP = _env_flag("SEED_CATALOG_ON_STARTUP", "true")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # in-memory SQLite rejects pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SEED_CATALOG_ON_STARTUP = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")


class ProductionConfig(Config):
    """Production: PostgreSQL with a bounded pool and a statement timeout."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
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


def get_config(name: str | None) -> Config:
    """Instantiate the config class registered under ``name``."""
    try:
        return config[name or "default"]()
    except KeyError:
        raise RuntimeError(
            f"Unknown APP_ENV {name!r}; expected one of {', '.join(sorted(config))}"
        ) from None
