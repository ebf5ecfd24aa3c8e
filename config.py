"""
config.py
Centralized configuration (database path, logging, cycle-engine switches).
"""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration with defaults"""

    APP_TITLE = "Barbershop Dashboard"

    # Database
    DB_FILE = Path(os.environ.get("BARBER_DB", str(BASE_DIR / "barbershop.db")))

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE = os.environ.get("LOG_FILE", "barbershop.log")

    # Cycle engine
    # When the appointment store cannot be read, autofill either fails (default)
    # or treats the client as having an empty cycle window.
    TREAT_LOOKUP_FAILURE_AS_NEW = _env_bool("TREAT_LOOKUP_FAILURE_AS_NEW")

    # Plans page: days past the next due date before a subscriber shows as pending
    PENDING_GRACE_DAYS = int(os.environ.get("PENDING_GRACE_DAYS", "0"))

    CURRENCY = "R$"


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production-specific configuration"""
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")


class TestingConfig(Config):
    """Testing-specific configuration"""
    DB_FILE = Path(os.environ.get("BARBER_TEST_DB", str(BASE_DIR / "test_barbershop.db")))
    LOG_LEVEL = "DEBUG"
    TREAT_LOOKUP_FAILURE_AS_NEW = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


def get_config():
    """Get configuration based on the APP_ENV environment variable"""
    env = os.environ.get("APP_ENV", "development")
    return config_by_name.get(env, DevelopmentConfig)
