"""
Logging setup for the resolver.

Everything logs under the ``xsd_resolver`` logger hierarchy. Output goes to
stderr because stdout carries the MCP stdio transport.
"""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "xsd_resolver"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stderr handler to the package logger; safe to call repeatedly.

    Args:
        level: Level name such as ``"DEBUG"`` or ``"info"``. Unknown names
            fall back to INFO.

    Returns:
        The configured ``xsd_resolver`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_xsd_resolver_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._xsd_resolver_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = True
    return logger


__all__ = ["setup_logging", "LOGGER_NAME"]
