"""Package logger configuration."""

from __future__ import annotations

import logging
from typing import Optional, TextIO

from .environment import EnvironmentSnapshot
from .settings import DD_TRACE_DEBUG

PACKAGE_LOGGER = "ciorigin"
LOG_FORMAT = "[ciorigin] %(levelname)s %(name)s: %(message)s"


def configure_logging(
    env: Optional[EnvironmentSnapshot] = None,
    *,
    stream: Optional[TextIO] = None,
    level: Optional[int] = None,
) -> logging.Logger:
    """Attach one stream handler to the package logger.

    The level is DEBUG when ``DD_TRACE_DEBUG`` is truthy, WARNING otherwise,
    unless ``level`` is given. Calling this again replaces the handler.
    """
    env = env if env is not None else EnvironmentSnapshot.capture()
    if level is None:
        level = logging.DEBUG if env.flag(DD_TRACE_DEBUG) else logging.WARNING

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_ciorigin_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._ciorigin_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
