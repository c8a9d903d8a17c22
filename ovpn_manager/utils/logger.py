"""Logging configuration."""

import logging
from pathlib import Path
from typing import Optional

from ovpn_manager.models.config import AppConfig


def setup_logger(config: Optional[AppConfig] = None, log_to_file: bool = True) -> logging.Logger:
    """
    Configure application logger.

    Args:
        config: Application configuration
        log_to_file: Attach the file handler from config.logging.file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("ovpn_manager")

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    # Set level
    level = logging.INFO
    if config and hasattr(config, "logging"):
        level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logger.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler (if config provided)
    if config and log_to_file:
        log_file = Path(config.logging.file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            logger.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(config.logging.format))
            logger.addHandler(file_handler)

    return logger
