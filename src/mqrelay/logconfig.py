"""
Relay logging configuration.

Configures logging from arguments, falling back to environment variables:
- MQRELAY_DEBUG: Enable debug logging (default: false)
- MQRELAY_LOG_FILE: Also write the log to this file (default: stderr only)
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    debug: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the ``mqrelay`` logger hierarchy.

    Args:
        debug: Enable debug level. Defaults to MQRELAY_DEBUG env var.
        log_file: Log file path. Defaults to MQRELAY_LOG_FILE env var;
                  no file handler when neither is set.

    Returns:
        Root logger for mqrelay
    """
    if debug is None:
        debug = os.environ.get("MQRELAY_DEBUG", "").lower() in ("true", "1", "yes")
    if log_file is None:
        log_file = os.environ.get("MQRELAY_LOG_FILE") or None

    level = logging.DEBUG if debug else logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    logger = logging.getLogger("mqrelay")
    logger.setLevel(level)
    logger.propagate = False

    # Clear existing handlers
    logger.handlers.clear()

    # The operator banner and connection events go to stderr regardless
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.setLevel(level)
    logger.addHandler(stderr_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {log_path}")

    return logger


def get_logger(component: str) -> logging.Logger:
    """
    Get a logger for a specific component.

    Args:
        component: Component name (e.g., "connection", "sink", "http")

    Returns:
        Logger instance for the component
    """
    return logging.getLogger(f"mqrelay.{component}")
