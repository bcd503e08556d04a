"""Logging setup for the command-line entrypoint."""

from __future__ import annotations

import logging

LOGGER_NAME = "distforge"


def setup_logger(verbose: bool = False) -> logging.Logger:
    """
    Configure the package logger with a single stderr handler.

    Diagnostics go through `logging`; user-facing status lines go through
    `Reporter`. `verbose` lowers the threshold to DEBUG.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)

    logger.addHandler(stream_handler)
    logger.propagate = False

    logger.debug("Verbose logging enabled")
    return logger
