"""Logging for the ``verisage`` package.

- ``configure_logging(...)``: attach one ``StreamHandler`` to the ``verisage``
  logger. The CLI calls it from its root callback, with the level taken from
  ``--log-level``, else ``VERISAGE_LOG_LEVEL``, else ``INFO``.
- ``get_logger(name)``: logger for a module, silent (``NullHandler``) until the
  host configures logging.

Records about a form or a batch carry ``form_id`` / ``batch_id`` through
``extra=``; the default format renders them after the message::

    2024-05-04 10:00:00,000 verisage.api INFO form:posted url=/exports/x.csv [form_id=3f2c]

Library modules never attach handlers of their own.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "verisage"
_LEVEL_ENV = "VERISAGE_LOG_LEVEL"
_CONTEXT_KEYS = ("form_id", "batch_id")
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s%(context)s"

_handler: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = logging.getLevelName(level)
        if isinstance(numeric, int):
            return numeric
        raise ValueError(f"Unknown log level: {level!r}")
    env_val = os.getenv(_LEVEL_ENV)
    if env_val and env_val.strip():
        try:
            return _parse_level(env_val)
        except ValueError:
            return logging.INFO
    return logging.INFO


class FormContextFilter(logging.Filter):
    """Render ``form_id`` / ``batch_id`` extras as a ``context`` suffix."""

    def filter(self, record: logging.LogRecord) -> bool:
        parts = [
            f"{key}={getattr(record, key)}"
            for key in _CONTEXT_KEYS
            if getattr(record, key, None)
        ]
        record.context = f" [{' '.join(parts)}]" if parts else ""
        return True


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
    force: bool = False,
) -> None:
    """Configure the ``verisage`` logger.

    Repeated calls are no-ops unless ``force`` is set, in which case the
    previous handler is replaced. ``stream`` defaults to the ``sys.stderr`` of
    the moment of the call. An unknown level name raises ``ValueError``.
    """

    global _handler
    if _handler is not None and not force:
        return

    resolved = _parse_level(level)
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler) or h is _handler:
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(FormContextFilter())
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    _handler = handler


def reset_logging() -> None:
    """Drop the handler installed by :func:`configure_logging`."""

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()
        _handler = None
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "FormContextFilter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
