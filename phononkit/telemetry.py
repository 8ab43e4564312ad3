"""Shipping log records to the telemetry server and checking telemetry keys."""

from __future__ import annotations

import datetime
import json
import logging
import os
import sys
import threading
from typing import Optional

import requests

TELEMETRY_URL_ENV = "PHONON_TELEMETRY_URL"
LOG_PATH = "/log"
TEST_KEY_PATH = "/testKey"
SEND_FAILURE = "unable to send logs to telemetry server"

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class TelemetryError(Exception):
    """Raised when the telemetry server rejects a key or cannot be reached."""


def _endpoint(path: str) -> Optional[str]:
    base = os.environ.get(TELEMETRY_URL_ENV)
    return base.rstrip("/") + path if base else None


def check_telemetry_key(key: str) -> None:
    """Ask the telemetry server to accept ``key``; raise TelemetryError if it does not."""
    url = _endpoint(TEST_KEY_PATH)
    if url is None:
        raise TelemetryError(f"no telemetry server configured; set {TELEMETRY_URL_ENV}")
    try:
        response = requests.post(url, headers={"AuthToken": key}, timeout=10.0)
    except requests.RequestException as exc:
        raise TelemetryError(str(exc)) from exc
    if response.status_code != 200:
        raise TelemetryError(response.text)


class JsonFormatter(logging.Formatter):
    """Formats a record as a single JSON object with its extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        entry["level"] = _LEVEL_NAMES.get(record.levelno, record.levelname.lower())
        entry["msg"] = record.getMessage()
        entry["time"] = datetime.datetime.fromtimestamp(record.created).astimezone().isoformat()
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TelemetryHandler(logging.Handler):
    """A logging handler that posts every record to the telemetry server."""

    def __init__(
        self,
        api_key: str,
        url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        level: int = logging.NOTSET,
    ):
        super().__init__(level)
        self.api_key = api_key
        self.url = url or _endpoint(LOG_PATH)
        self.timeout = timeout
        self._session = session or requests.Session()
        self._local = threading.local()
        self.setFormatter(JsonFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        # Records raised while sending (for instance by the HTTP stack) are not resent.
        if self.url is None or getattr(self._local, "busy", False):
            return
        self._local.busy = True
        try:
            line = self.format(record)
            try:
                response = self._session.post(
                    self.url,
                    data=line.encode("utf-8"),
                    headers={"ContentType": "application/json", "AuthToken": self.api_key},
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                print(SEND_FAILURE, exc, file=sys.stderr)
                return
            if response.status_code != 200:
                print(SEND_FAILURE, response.text, file=sys.stderr)
        except Exception:
            self.handleError(record)
        finally:
            self._local.busy = False