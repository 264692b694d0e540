"""
Logging configuration for the course marketplace.

One package logger ("coursemarket") configured once from LOG_LEVEL;
modules ask for children through get_logger().
"""
import logging
import sys

from coursemarket.core.config import settings

LOG_LEVEL = settings.log_level.upper()
logger = logging.getLogger("coursemarket")
logger.setLevel(LOG_LEVEL)

if not logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

# Prevent propagation to root logger (avoid duplicate logs)
logger.propagate = False


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional name for the logger (will be appended to 'coursemarket')
    """
    if name:
        return logging.getLogger(f"coursemarket.{name}")
    return logger
