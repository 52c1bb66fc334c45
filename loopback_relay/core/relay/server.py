from __future__ import annotations

import errno
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from types import TracebackType

from ..constants import (
    CORS_MAX_AGE,
    DEFAULT_CALLBACK_PATH,
    DEFAULT_HOST,
    DEFAULT_LOGIN_TIMEOUT,
    DEFAULT_PORT,
    SERVE_POLL_INTERVAL,
)
from .errors import BindError
from .handler import RelaySession, ResultListener
from .models import RedirectRequest, RelayOptions, RelayResponse, RelayResult

logger = logging.getLogger(__name__)


class RelayRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler that hands provider redirects to the relay session."""

    server_version = "LoopbackRelay/1.0"

    def do_GET(self) -> None:  # noqa: N802
        server = self.server
        assert isinstance(server, RelayHTTPServer)
        request = RedirectRequest.from_target(self.path)
        options = server.session.options
        server.session.dispatch(request, respond=lambda response: self._send(response, options))

    def do_OPTIONS(self) -> None:  # noqa: N802
        server = self.server
        assert isinstance(server, RelayHTTPServer)
        options = server.session.options
        self.send_response(204)
        if options.cors_allow_origin:
            self.send_header("Access-Control-Allow-Origin", options.cors_allow_origin)
            self.send_header("Access-Control-Allow-Methods", "GET, OPTIONS")
            requested = self.headers.get("Access-Control-Request-Headers")
            if requested:
                self.send_header("Access-Control-Allow-Headers", requested)
            self.send_header("Access-Control-Max-Age", str(CORS_MAX_AGE))
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _send(self, response: RelayResponse, options: RelayOptions) -> None:
        body = response.encoded()
        self.send_response(response.status)
        self.send_header("Content-Type", response.content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        if options.cors_allow_origin:
            self.send_header("Access-Control-Allow-Origin", options.cors_allow_origin)
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


class RelayHTTPServer(ThreadingHTTPServer):
    """Local HTTP server bound to one relay session."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], session: RelaySession):
        self.session = session
        super().__init__(address, RelayRequestHandler)


class ListenHandle:
    """A running relay: the open socket, its serve thread, and the session result.

    Returned by :func:`start`; pass it to :func:`stop` (or call ``stop()``)
    to release the port. Stopping is idempotent.
    """

    def __init__(self, server: RelayHTTPServer, redirect_host: str = "localhost"):
        self._server = server
        self._redirect_host = redirect_host
        self._stop_lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": SERVE_POLL_INTERVAL},
            name=f"relay-{self.port}",
            daemon=True,
        )
        self._thread.start()

    @property
    def session(self) -> RelaySession:
        return self._server.session

    @property
    def host(self) -> str:
        return str(self._server.server_address[0])

    @property
    def port(self) -> int:
        return int(self._server.server_address[1])

    @property
    def callback_path(self) -> str:
        return self.session.callback_path

    @property
    def redirect_uri(self) -> str:
        return f"http://{self._redirect_host}:{self.port}{self.callback_path}"

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, listener: ResultListener) -> None:
        self.session.add_listener(listener)

    def wait(self, timeout: float | None = None) -> RelayResult | None:
        """Block until the provider redirect arrives; None on timeout."""
        return self.session.wait(timeout)

    def stop(self) -> None:
        with self._stop_lock:
            if self._closed:
                return
            self._closed = True
            self._server.shutdown()
            self._server.server_close()
        self._thread.join(timeout=5)
        logger.info("Relay stopped on %s:%d", self.host, self.port)

    def __enter__(self) -> ListenHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()


def _bind_reason(exc: OSError) -> str:
    if exc.errno == errno.EADDRINUSE:
        return "in_use"
    if exc.errno in (errno.EACCES, errno.EPERM):
        return "permission"
    return "os"


def start(
    port: int = DEFAULT_PORT,
    callback_path: str = DEFAULT_CALLBACK_PATH,
    *,
    host: str = DEFAULT_HOST,
    options: RelayOptions | None = None,
    redirect_host: str = "localhost",
) -> ListenHandle:
    """Bind the relay and start serving on a background thread.

    Raises:
        BindError: the port is taken, out of range, or may not be bound by this process.
    """
    session = RelaySession(callback_path, options)
    try:
        server = RelayHTTPServer((host, port), session)
    except OSError as exc:
        reason = _bind_reason(exc)
        raise BindError(f"Cannot listen on {host}:{port}: {exc.strerror or exc}", host, port, reason) from exc
    except OverflowError as exc:  # port outside 0-65535
        raise BindError(f"Cannot listen on {host}:{port}: {exc}", host, port, "os") from exc

    handle = ListenHandle(server, redirect_host=redirect_host)
    logger.info("Relay listening at %s", handle.redirect_uri)
    return handle


def stop(handle: ListenHandle) -> None:
    handle.stop()


def run_relay(
    port: int = DEFAULT_PORT,
    callback_path: str = DEFAULT_CALLBACK_PATH,
    timeout: float = DEFAULT_LOGIN_TIMEOUT,
    *,
    host: str = DEFAULT_HOST,
    options: RelayOptions | None = None,
) -> RelayResult | None:
    """Start a relay, wait up to *timeout* seconds for one redirect, always stop."""
    handle = start(port, callback_path, host=host, options=options)
    try:
        return handle.wait(timeout)
    finally:
        handle.stop()
