"""The local web backend: a WSGI application serving the frontend, its logs and the API document."""

from __future__ import annotations

import io
import json
import logging
import mimetypes
import socketserver
import ssl
import webbrowser
from http import HTTPStatus
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from phononkit.telemetry import TelemetryError, check_telemetry_key
from phononkit.weblog import log_frontend_message, render_swagger

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "HEAD", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Origin")
_NOT_FOUND = "404 page not found"

_Response = Tuple[int, List[Tuple[str, str]], bytes]


def _status_line(code: int) -> str:
    return f"{code} {HTTPStatus(code).phrase}"


def _error(message: str, code: int) -> _Response:
    headers = [
        ("Content-Type", "text/plain; charset=utf-8"),
        ("X-Content-Type-Options", "nosniff"),
    ]
    return code, headers, (message + "\n").encode("utf-8")


def _content(body: bytes, content_type: str) -> _Response:
    return 200, [("Content-Type", content_type)], body


def _read_body(environ: dict) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    stream = environ.get("wsgi.input") or io.BytesIO()
    return stream.read(length) if length > 0 else b""


class WebApp:
    """WSGI application for the phonon web UI backend.

    Serves ``/logs`` (a sink for frontend log messages), ``/swagger.json``
    (the API document rendered with the server port), ``/telemetryCheck``,
    the API documentation files under ``/swagger/``, and the frontend build:
    ``/static/`` and ``/assets/`` from ``frontend_dir``, with ``index.html``
    answering every other path. Responses carry CORS headers allowing any origin.
    """

    def __init__(
        self,
        port: str = "8080",
        telemetry_key: str = "",
        swagger_template: str = "",
        frontend_dir: Union[str, Path, None] = None,
        swagger_dir: Union[str, Path, None] = None,
        frontend_logger: Optional[logging.Logger] = None,
    ):
        self.port = str(port)
        self.telemetry_key = telemetry_key
        self.swagger_document = render_swagger(swagger_template, self.port).encode("utf-8")
        self.frontend_dir = Path(frontend_dir) if frontend_dir is not None else None
        self.swagger_dir = Path(swagger_dir) if swagger_dir is not None else None
        self.frontend_logger = frontend_logger or logging.getLogger(__name__ + ".frontend")
        index = self.frontend_dir / "index.html" if self.frontend_dir is not None else None
        self.index_html = index.read_bytes() if index is not None and index.is_file() else b""
        self._routes: Dict[str, Callable[[dict], _Response]] = {
            "/logs": self._logs,
            "/swagger.json": self._swagger_json,
            "/telemetryCheck": self._telemetry_check,
        }

    def __call__(self, environ: dict, start_response) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET").upper()
        origin = environ.get("HTTP_ORIGIN", "")
        if method == "OPTIONS" and environ.get("HTTP_ACCESS_CONTROL_REQUEST_METHOD"):
            code, headers, body = 200, self._preflight_headers(environ, origin), b""
        else:
            code, headers, body = self._dispatch(environ)
            headers.append(("Vary", "Origin"))
            if origin:
                headers += [
                    ("Access-Control-Allow-Origin", origin),
                    ("Access-Control-Allow-Credentials", "true"),
                ]
        headers.append(("Content-Length", str(len(body))))
        start_response(_status_line(code), headers)
        return [b""] if method == "HEAD" else [body]

    def _preflight_headers(self, environ: dict, origin: str) -> List[Tuple[str, str]]:
        headers = [
            ("Vary", "Origin"),
            ("Vary", "Access-Control-Request-Method"),
            ("Vary", "Access-Control-Request-Headers"),
        ]
        requested_method = environ["HTTP_ACCESS_CONTROL_REQUEST_METHOD"].upper()
        if not origin or requested_method not in ALLOWED_METHODS:
            return headers
        requested = [
            name.strip()
            for name in environ.get("HTTP_ACCESS_CONTROL_REQUEST_HEADERS", "").split(",")
            if name.strip()
        ]
        allowed = {name.lower() for name in ALLOWED_HEADERS}
        if any(name.lower() not in allowed for name in requested):
            return headers
        headers += [
            ("Access-Control-Allow-Origin", origin),
            ("Access-Control-Allow-Methods", requested_method),
            ("Access-Control-Allow-Credentials", "true"),
        ]
        if requested:
            headers.append(("Access-Control-Allow-Headers", ", ".join(requested)))
        return headers

    def _dispatch(self, environ: dict) -> _Response:
        path = environ.get("PATH_INFO") or "/"
        handler = self._routes.get(path)
        if handler is not None:
            return handler(environ)
        if path.startswith("/swagger/"):
            return self._file(self.swagger_dir, path[len("/swagger/"):])
        frontend = self.frontend_dir
        for prefix in ("/static/", "/assets/"):
            if path.startswith(prefix):
                root = frontend / prefix.strip("/") if frontend is not None else None
                return self._file(root, path[len(prefix):])
        return _content(self.index_html, "text/html; charset=utf-8")

    def _logs(self, environ: dict) -> _Response:
        try:
            message = json.loads(_read_body(environ).decode("utf-8"))
            if not isinstance(message, dict):
                raise ValueError("log message is not an object")
        except (ValueError, UnicodeDecodeError) as exc:
            logger.error("unable to decode logs from frontend: %s", exc)
            return _error("unable to decode logs", 400)
        log_frontend_message(message, self.frontend_logger)
        return 200, [], b""

    def _swagger_json(self, environ: dict) -> _Response:
        return _content(self.swagger_document, "application/json")

    def _telemetry_check(self, environ: dict) -> _Response:
        try:
            check_telemetry_key(self.telemetry_key)
        except TelemetryError as exc:
            logger.debug("telemetry check failed: %s", exc)
            return _error("telemetry check not successful", 500)
        return 200, [], b""

    @staticmethod
    def _file(root: Optional[Path], relative: str) -> _Response:
        if root is None or not relative:
            return _error(_NOT_FOUND, 404)
        base = root.resolve()
        target = (base / relative).resolve()
        if target != base and base not in target.parents or not target.is_file():
            return _error(_NOT_FOUND, 404)
        content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        if content_type.startswith("text/"):
            content_type += "; charset=utf-8"
        return _content(target.read_bytes(), content_type)


class _ThreadingWSGIServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def serve(port: str = "8080", cert_file: str = "", key_file: str = "", telemetry_key: str = "") -> None:
    """Run the web backend on ``port``, over TLS when both a certificate and key are given."""
    app = WebApp(port=port, telemetry_key=telemetry_key)
    server = make_server("", int(port), app, server_class=_ThreadingWSGIServer, handler_class=_QuietHandler)
    scheme = "http"
    if cert_file and key_file:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(cert_file, key_file)
        server.socket = context.wrap_socket(server.socket, server_side=True)
        scheme = "https"
    logger.debug("listening for incoming connections on %s", port)
    print("listen and serve")
    webbrowser.open(f"{scheme}://localhost:{port}/")
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass