"""Structured logging helpers for reconciliation runs."""

from __future__ import annotations

import json
import logging
import sys
from typing import Final


LOGGER_NAME: Final[str] = "bugzilla_gate"
_MAX_VALUE_LEN: Final[int] = 120
_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s %(message)s"
_LEVELS: Final[dict[str, int]] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_logger(name: str = "") -> logging.Logger:
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def configure_logging(level: str | None) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = False
    logger.handlers.clear()

    if level is None:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.CRITICAL + 1)
        return

    normalized = level.strip().lower()
    if normalized not in _LEVELS:
        raise ValueError(f"Unsupported log level: {level!r}")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(_LEVELS[normalized])


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: object
) -> None:
    logger.log(level, build_event_message(event=event, fields=fields))


def build_event_message(*, event: str, fields: dict[str, object]) -> str:
    parts = [f"event={_normalize_field_value(event)}"]
    for key in sorted(fields.keys()):
        parts.append(f"{key}={_normalize_field_value(fields[key])}")
    return " ".join(parts)


def _normalize_field_value(value: object) -> str:
    if value is None:
        normalized = "null"
    elif isinstance(value, bool):
        normalized = "true" if value else "false"
    elif isinstance(value, int | float):
        normalized = str(value)
    elif isinstance(value, BaseException):
        normalized = _collapse(f"{type(value).__name__}: {value}")
    elif isinstance(value, str):
        normalized = _collapse(value)
    else:
        normalized = f"<{type(value).__name__}>"

    if any(ch.isspace() for ch in normalized) or "=" in normalized:
        return json.dumps(normalized)
    return normalized


def _collapse(value: str) -> str:
    collapsed = " ".join(value.split())
    if len(collapsed) > _MAX_VALUE_LEN:
        collapsed = f"{collapsed[:_MAX_VALUE_LEN]}..."
    return collapsed if collapsed else "<empty>"
