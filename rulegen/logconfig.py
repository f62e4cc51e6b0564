"""
Log configuration — Engine and parser log levels

Two levels are configured independently:
- RULEGEN_LOG_LEVEL: the engine and everything under `rulegen`
- RULEGEN_PARSER_LOG_LEVEL: the parser collaborator only

Both default to the values of the `log` config section.

Usage:
    configure_logging(*log_levels())
"""

import logging
import os
import sys
from typing import Optional, Tuple

ROOT_LOGGER = "rulegen"
PARSER_LOGGER = "rulegen.services.parser"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(filename)s:%(lineno)d %(message)s"

_handler: Optional[logging.Handler] = None


def log_levels(default: str = "INFO", parser_default: str = "WARNING") -> Tuple[str, str]:
    """
    (engine level, parser level) from the environment.

    Unknown level names fall back to the defaults.
    """
    return (
        _level_env("RULEGEN_LOG_LEVEL", default),
        _level_env("RULEGEN_PARSER_LOG_LEVEL", parser_default),
    )


def configure_logging(level: str = "INFO", parser_level: str = "WARNING") -> logging.Logger:
    """
    Install one stderr handler on the `rulegen` logger.

    Safe to call more than once; later calls only change the levels.
    """
    global _handler

    root = logging.getLogger(ROOT_LOGGER)
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_handler)
        root.propagate = False

    root.setLevel(level.upper())
    logging.getLogger(PARSER_LOGGER).setLevel(parser_level.upper())
    return root


def _level_env(key: str, default: str) -> str:
    value = os.environ.get(key, "").upper()
    if value in LOG_LEVELS:
        return value
    return default.upper()
