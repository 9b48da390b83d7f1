"""
Checklist Hub
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'checklist_hub_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _csv(value):
    return [v.strip() for v in (value or "").split(",") if v.strip()]


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

    # Redis (rate-limit storage)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # ── Checklist scheduling ─────────────────────────────────────────────
    # IANA zone in which due times, "today" and period boundaries are evaluated
    ORG_TIMEZONE = os.getenv("ORG_TIMEZONE", "UTC")
    CHECKLIST_ESCALATION_DAILY_MINUTES = int(os.getenv("CHECKLIST_ESCALATION_DAILY_MINUTES", "60"))
    CHECKLIST_ESCALATION_DEFAULT_MINUTES = int(os.getenv("CHECKLIST_ESCALATION_DEFAULT_MINUTES", "1440"))
    # Weekday (0=Monday) weekly checklists fall on when they carry no schedule_day
    CHECKLIST_WEEKLY_DAY = int(os.getenv("CHECKLIST_WEEKLY_DAY", "0"))
    # Day of month monthly checklists fall on when they carry no schedule_day
    CHECKLIST_MONTHLY_DAY = int(os.getenv("CHECKLIST_MONTHLY_DAY", "1"))

    # Roles that may manage checklists and act on any user's run
    CHECKLIST_MANAGER_ROLES = _csv(os.getenv(
        "CHECKLIST_MANAGER_ROLES",
        "owner-super-admin,general-manager,store-manager,manager",
    ))
    # Respond 404 instead of 403 on role/ownership failures
    HIDE_FORBIDDEN_AS_NOT_FOUND = os.getenv("HIDE_FORBIDDEN_AS_NOT_FOUND", "false").lower() == "true"

    # Analytics
    ANALYTICS_MAX_RANGE_DAYS = int(os.getenv("ANALYTICS_MAX_RANGE_DAYS", "366"))
    ANALYTICS_TREND_POINTS = int(os.getenv("ANALYTICS_TREND_POINTS", "30"))


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
    # In-memory SQLite runs on a StaticPool, which rejects queue-pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    ORG_TIMEZONE = "UTC"
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

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
