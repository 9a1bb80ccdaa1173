"""
Centralized logging configuration for the holder rewards worker.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from holder_rewards.config.paths import WORKER_LOG

PACKAGE_LOGGER = "holder_rewards"


def setup_logger(
    name: str = PACKAGE_LOGGER,
    log_file: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
    to_file: bool = True,
) -> logging.Logger:
    """
    Set up a logger with consistent formatting and handlers.

    Child loggers obtained through get_logger() propagate to this one, so it
    only needs to be called once by an entry point.

    Args:
        name: The name of the logger
        log_file: Optional log file path. Defaults to logs/holder_rewards.log
        level: Log level name or number
        to_file: Attach the rotating file handler

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Add handlers if they don't exist
    if logger.handlers:
        return logger

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if to_file:
        log_path = Path(log_file) if log_file else WORKER_LOG
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File handler with rotation
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger. Names outside the package are nested under it so
    records still reach the handlers installed by setup_logger().
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
