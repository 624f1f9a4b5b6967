"""Loopback HTTP listener that captures the authorization redirect.

:class:`CallbackListener` binds a small threaded HTTP server to the host and
port of the flow's ``redirect_uri`` and classifies every inbound request with
:func:`classify_callback`. The first *terminal* request (an authorization code
or a provider error carrying the right ``state``) is handed to the waiting
flow through a one-shot channel; everything else is absorbed.

Lifecycle::

    LISTENING --(terminal callback)--> SHUTTING_DOWN --stop()--> STOPPED
    LISTENING --(wait() deadline)----> TIMED_OUT ------stop()--> STOPPED

Each instance owns its own server socket and handler state, so several
listeners can coexist in one process (e.g. in a test suite) as long as they
bind different ports.

Every response is a ``303 See Other`` to a neutral landing page regardless of
outcome, so nothing about the flow leaks into the browser window or history.
"""

from __future__ import annotations

import enum
import hmac
import logging
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from loopauth.exceptions import (
    CallbackStateMismatch,
    ConfigurationError,
    FlowTimeoutError,
)
from loopauth.models import CallbackKind, CallbackResult

logger = logging.getLogger(__name__)

LANDING_PATH = "/loopauth/complete"

_LANDING_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Sign-in finished</title>
  </head>
  <body>
    <div style="max-width: 640px; margin: 80px auto;
                font-family: system-ui, -apple-system, sans-serif;">
      <h1>Sign-in finished</h1>
      <p>You can close this window and return to the terminal.</p>
    </div>
  </body>
</html>
"""


class ListenerStatus(str, enum.Enum):
    """Lifecycle states of a :class:`CallbackListener`."""

    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


def classify_callback(params: dict[str, list[str]], expected_state: str) -> CallbackResult:
    """Classify the query parameters of one redirect request.

    Args:
        params: Parsed query string as returned by :func:`urllib.parse.parse_qs`.
        expected_state: The flow's anti-forgery token.

    Returns:
        A :class:`CallbackResult`. The ``state`` check comes first, so a
        request with a wrong or missing ``state`` is a
        :attr:`~CallbackKind.STATE_MISMATCH` whatever else it carries.
    """
    states = params.get("state", [])
    if len(states) != 1 or not hmac.compare_digest(
        states[0].encode("utf-8"), expected_state.encode("utf-8")
    ):
        return CallbackResult.state_mismatch()

    codes = params.get("code", [])
    errors = [e for e in params.get("error", []) if e]

    if errors:
        descriptions = params.get("error_description", [])
        return CallbackResult.provider_error(
            errors[0], descriptions[0] if descriptions else None
        )
    if len(codes) == 1 and codes[0]:
        return CallbackResult.code_received(codes[0])
    return CallbackResult.malformed()


class _CallbackServer(ThreadingHTTPServer):
    """Threaded HTTP server bound to one :class:`CallbackListener`."""

    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], listener: CallbackListener):
        self.listener = listener
        super().__init__(server_address, _CallbackHandler)


class _CallbackServerV6(_CallbackServer):
    address_family = socket.AF_INET6


class _CallbackHandler(BaseHTTPRequestHandler):
    """Route requests to the owning listener and always answer with a redirect."""

    server: _CallbackServer

    def do_GET(self) -> None:
        listener = self.server.listener
        parts = urlsplit(self.path)

        if parts.path == LANDING_PATH and listener.serves_landing_page:
            self._send_landing_page()
            listener.landing_page_served()
            return

        listener.handle_callback(parts.query)
        self._redirect(listener.landing_url)

    def do_POST(self) -> None:
        self._method_not_allowed()

    def do_PUT(self) -> None:
        self._method_not_allowed()

    def do_DELETE(self) -> None:
        self._method_not_allowed()

    def log_message(self, format: str, *args: Any) -> None:
        # The default writes to stderr and includes the query string (the code).
        logger.debug(
            "callback %s %s from %s",
            self.command,
            urlsplit(self.path).path,
            self.client_address[0],
        )

    def _redirect(self, location: str) -> None:
        self.send_response(303)
        self.send_header("Location", location)
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _send_landing_page(self) -> None:
        encoded = _LANDING_PAGE_HTML.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _method_not_allowed(self) -> None:
        self.send_response(405)
        self.send_header("Allow", "GET")
        self.send_header("Content-Length", "0")
        self.end_headers()


class CallbackListener:
    """Single-use loopback listener for one authorization-code flow.

    The socket is bound when the listener is constructed, so a port conflict
    is reported before the browser is ever opened. Requests are served once
    :meth:`start` is called. Use it as a context manager to guarantee the
    socket is released::

        with CallbackListener(redirect_uri, state) as listener:
            launcher.launch(url)
            result = listener.wait(timeout=120)

    Args:
        redirect_uri: The loopback redirect URI registered with the provider.
        csrf_token: The ``state`` value expected on the redirect.
        landing_url: Where to send the browser after every callback. Defaults
            to a neutral page served by the listener itself.

    Raises:
        ConfigurationError: If the redirect URI has no host/port or the
            address cannot be bound.
    """

    def __init__(
        self,
        redirect_uri: str,
        csrf_token: str,
        landing_url: Optional[str] = None,
    ) -> None:
        parts = urlsplit(redirect_uri)
        try:
            port = parts.port
        except ValueError as exc:
            raise ConfigurationError(f"Invalid redirect URI port: {exc}") from exc
        if not parts.hostname or not port:
            raise ConfigurationError(
                f"Redirect URI must include a host and port: {redirect_uri}"
            )

        self._csrf_token = csrf_token
        self._landing_url = landing_url or f"http://{parts.netloc}{LANDING_PATH}"
        self._serves_landing_page = landing_url is None

        self._lock = threading.Lock()
        self._signal = threading.Event()
        self._landing_served = threading.Event()
        self._result: Optional[CallbackResult] = None
        self._status = ListenerStatus.LISTENING
        self._mismatches = 0
        self._thread: Optional[threading.Thread] = None
        self._closed = False

        server_cls = _CallbackServerV6 if ":" in parts.hostname else _CallbackServer
        try:
            self._server = server_cls((parts.hostname, port), self)
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot listen on {parts.hostname}:{port} for the OAuth callback: {exc}"
            ) from exc
        logger.debug("Callback listener bound to %s:%s", parts.hostname, port)

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def status(self) -> ListenerStatus:
        with self._lock:
            return self._status

    @property
    def landing_url(self) -> str:
        return self._landing_url

    @property
    def serves_landing_page(self) -> bool:
        return self._serves_landing_page

    @property
    def mismatched_callbacks(self) -> int:
        """Number of callbacks rejected for a missing or wrong ``state``."""
        with self._lock:
            return self._mismatches

    @property
    def server_address(self) -> tuple[str, int]:
        return self._server.server_address[:2]

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Begin serving requests on a background daemon thread."""
        with self._lock:
            if self._closed:
                raise RuntimeError("CallbackListener cannot be restarted after stop()")
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._server.serve_forever,
                name="loopauth-callback",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Stop serving and release the socket. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread

        if thread is not None:
            self._server.shutdown()
            thread.join()
        self._server.server_close()

        with self._lock:
            self._status = ListenerStatus.STOPPED
        logger.debug("Callback listener stopped")

    def __enter__(self) -> CallbackListener:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    # Callback handling
    # ------------------------------------------------------------------ #

    def handle_callback(self, query: str) -> CallbackResult:
        """Classify one request's query string and deliver it if terminal.

        Called from request-handler threads. Returns the classification so
        the caller can decide how to respond; the response itself is the
        same redirect in every case.
        """
        result = classify_callback(parse_qs(query, keep_blank_values=True), self._csrf_token)

        if result.kind is CallbackKind.STATE_MISMATCH:
            with self._lock:
                self._mismatches += 1
            if query:
                logger.warning("Ignoring callback with a missing or mismatched state parameter")
            else:
                # Stray browser fetches such as /favicon.ico carry no query.
                logger.debug("Ignoring request without a query string")
        elif result.kind is CallbackKind.MALFORMED_REQUEST:
            logger.debug("Ignoring callback without a code or error parameter")
        elif not self._deliver(result):
            logger.debug("Ignoring %s after the flow already completed", result.kind.value)
        return result

    def _deliver(self, result: CallbackResult) -> bool:
        """Write *result* to the one-shot channel. Only the first write wins."""
        with self._lock:
            if self._status is not ListenerStatus.LISTENING:
                return False
            self._result = result
            self._status = ListenerStatus.SHUTTING_DOWN
            self._signal.set()
        logger.debug("Terminal callback received: %s", result.kind.value)
        return True

    def wait(self, timeout: float) -> CallbackResult:
        """Block until a terminal callback arrives or *timeout* seconds pass.

        Returns:
            The terminal :class:`CallbackResult` (a code or a provider error).

        Raises:
            CallbackStateMismatch: If the deadline passed and the only
                traffic received had a bad ``state``.
            FlowTimeoutError: If the deadline passed otherwise.
        """
        self._signal.wait(timeout)
        with self._lock:
            if self._result is not None:
                return self._result
            if self._status is ListenerStatus.LISTENING:
                self._status = ListenerStatus.TIMED_OUT
            mismatches = self._mismatches

        if mismatches:
            raise CallbackStateMismatch(
                f"No valid callback within {timeout:g}s; rejected {mismatches} "
                "callback(s) whose state did not match this login attempt"
            )
        raise FlowTimeoutError(f"No callback received within {timeout:g}s")

    def landing_page_served(self) -> None:
        self._landing_served.set()

    def wait_for_landing_page(self, timeout: float) -> bool:
        """Give the browser up to *timeout* seconds to fetch the landing page.

        Only meaningful when the listener serves the page itself; returns
        ``True`` immediately when an external ``landing_url`` is configured.
        """
        if not self._serves_landing_page:
            return True
        return self._landing_served.wait(timeout)
