"""Helpers for the web backend: relaying frontend log messages and rendering the API document."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Dict, Mapping

from phononkit.wxsgen import render_template

_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JSLogLevel(IntEnum):
    """Numeric log levels used by the browser frontend's logger."""

    DEBUG = 20
    INFO = 30
    WARN = 40
    ERROR = 50
    CRITICAL = 60


# The frontend's critical level has no stronger counterpart here, so it logs as an error.
_PYTHON_LEVELS = {
    JSLogLevel.DEBUG: logging.DEBUG,
    JSLogLevel.INFO: logging.INFO,
    JSLogLevel.WARN: logging.WARNING,
    JSLogLevel.ERROR: logging.ERROR,
    JSLogLevel.CRITICAL: logging.ERROR,
}


def parse_js_log_level(value: Any) -> int:
    """Return the numeric level held in a frontend level object ``{"value": <number>}``.

    Raises ValueError if ``value`` is not a mapping, has no "value" key, or
    that key does not hold a number.
    """
    if not isinstance(value, dict):
        raise ValueError("unable to parse level data from map")
    if "value" not in value:
        raise ValueError("unable to find value key within level object")
    raw = value["value"]
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"unable to parse level value: {raw} into number")
    return int(raw)


def _record_fields(message: Mapping[Any, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, value in message.items():
        name = str(key)
        # Keys that clash with record attributes are kept under a prefixed name.
        fields["fields." + name if name in _RESERVED_ATTRS else name] = value
    return fields


def log_frontend_message(message: Mapping[Any, Any], logger: logging.Logger) -> int:
    """Log a decoded frontend message at the level it names and return that logging level.

    The message's entries become attributes of the log record. Messages with
    no level, or with a level that cannot be read, are logged at debug level.
    """
    if not isinstance(message, Mapping):
        raise ValueError("unable to decode logs")
    fields = _record_fields(message)
    if "level" not in message:
        logger.debug("", extra=fields)
        return logging.DEBUG
    try:
        js_level = parse_js_log_level(message["level"])
    except ValueError as exc:
        logger.debug("unable to decode log level from frontend: %s. Defaulting to debug", exc)
        logger.debug("", extra=fields)
        return logging.DEBUG
    try:
        level = _PYTHON_LEVELS[JSLogLevel(js_level)]
    except ValueError:
        logger.debug("unable to decode log level from frontend. Defaulting to debug")
        level = logging.DEBUG
    logger.log(level, "", extra=fields)
    return level


def render_swagger(template: str, port: str) -> str:
    """Render the API document template with the server port in place of ``{{.}}``."""
    return render_template(template, port)