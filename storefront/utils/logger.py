"""
Centralized logging for the storefront package.

All modules log through children of the "storefront" logger. The level
starts from LOG_LEVEL and is re-applied from StorefrontConfig when the
services are built.
"""
import logging
import os
import sys
from typing import Optional, Union

ROOT_NAME = "storefront"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(ROOT_NAME)


def _install_handler(target: logging.Logger) -> None:
    if any(getattr(handler, "_storefront", False) for handler in target.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._storefront = True
    target.addHandler(handler)


def set_level(level: Union[str, int]) -> None:
    """Apply a level (name or number) to the package logger and its handler."""
    if isinstance(level, str):
        level = level.upper()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


_install_handler(logger)
set_level(os.getenv("LOG_LEVEL", "INFO"))
# Records stop here; the host application's root handlers would print them twice
logger.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Package logger, or the "storefront.<name>" child when a name is given."""
    if name:
        return logging.getLogger(f"{ROOT_NAME}.{name}")
    return logger
