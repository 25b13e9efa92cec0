"""Logging setup utilities for remotetouch.

Configures logging for the whole package from the logging section of
the settings.
"""

from __future__ import annotations

import logging
import sys

from remotetouch.config.settings import LoggingConfig


def setup_logging(config: LoggingConfig | None = None, verbose: bool = False) -> None:
    """Configure the ``remotetouch`` logger.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
        verbose: Force DEBUG level regardless of ``config.level``.
    """
    if config is None:
        config = LoggingConfig()

    package_logger = logging.getLogger("remotetouch")
    level = logging.DEBUG if verbose else getattr(logging, config.level.upper(), logging.INFO)
    package_logger.setLevel(level)

    # repeated calls (tests, one-shot CLI runs) must not stack handlers
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    package_logger.debug("Logging initialized at %s level", logging.getLevelName(level))
