"""Centralized logging configuration for the API."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Iterable


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> Logger:
    """Configure the root logger once; later calls only adjust the level."""

    logger = logging.getLogger()
    logger.setLevel(level)

    if handlers is not None:
        for handler in handlers:
            logger.addHandler(handler)
    elif not logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(stream_handler)

    return logger


__all__ = ["configure_logging", "DEFAULT_LOG_FORMAT"]
