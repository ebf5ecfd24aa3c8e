"""
logging_config.py
Console + rotating file logging for the dashboard.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path


def setup_logging(config) -> logging.Logger:
    """
    Configure the root logger from a config class (see config.py).

    Safe to call on every Streamlit rerun: existing handlers are closed and
    replaced, not stacked.
    """
    log_level = getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO)
    formatter = logging.Formatter(config.LOG_FORMAT)

    log_dir = Path(config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / config.LOG_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
        old.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Streamlit's own loggers are chatty at DEBUG
    logging.getLogger("streamlit").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    root_logger.debug("Logging initialized at %s level, file: %s", logging.getLevelName(log_level), log_path)
    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
