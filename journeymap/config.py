"""
Journey Map Workspace
Configuration classes for the app factory.

    app.config.from_object(config[os.getenv("APP_ENV", "development")]())

Environment variables:
    STORAGE_BACKEND   local | database | memory
    STATE_FILE        snapshot path for the local backend
    DATABASE_URL      SQLAlchemy URL for the database backend
    SAVE_DEBOUNCE_MS  quiet period before a free-text edit is saved
    CORS_ORIGINS      comma separated, "*" for any
    LOG_LEVEL         overrides the per-environment default
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
instance_dir = os.path.join(basedir, "instance")

STORAGE_BACKENDS = ("local", "database", "memory")


def _database_url(var: str, fallback: str) -> str:
    url = os.getenv(var, "")
    if not url:
        return fallback
    # Hosted Postgres hands out postgres://, SQLAlchemy 2 only accepts postgresql://
    return url.replace("postgres://", "postgresql://", 1)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    STATE_FILE = os.getenv("STATE_FILE", os.path.join(instance_dir, "journeymap-state.json"))
    SAVE_DEBOUNCE_MS = int(os.getenv("SAVE_DEBOUNCE_MS", "400"))

    SQLALCHEMY_DATABASE_URI = _database_url(
        "DATABASE_URL", f"sqlite:///{os.path.join(instance_dir, 'journeymap.db')}",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    def __init__(self):
        if self.STORAGE_BACKEND not in STORAGE_BACKENDS:
            raise RuntimeError(
                f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {self.STORAGE_BACKEND!r}"
            )


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True
    STORAGE_BACKEND = "memory"
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    # No timer threads; pending edits are written by flush()
    SAVE_DEBOUNCE_MS = 0


class ProductionConfig(Config):
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "database")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    def __init__(self):
        super().__init__()
        if self.STORAGE_BACKEND == "database" and not os.getenv("DATABASE_URL"):
            raise RuntimeError("DATABASE_URL environment variable is required for the database backend")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
