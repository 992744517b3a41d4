"""Single-use local listener for the OAuth redirect.

:class:`CallbackListener` is a small state machine around
:class:`http.server.ThreadingHTTPServer`::

    IDLE --bind()--> LISTENING --callback--> VALIDATING --valid--> EXCHANGING --> DONE
                                                  |                     |
                                                  +----- rejected ------+--> DONE (failure)

The server runs ``serve_forever`` on a background thread and handles each
connection on its own thread, so an idle socket (a browser preconnect, for
instance) cannot hold up the redirect. The first request to the callback
path ends the wait, whatever its outcome; anything else (``/favicon.ico``
and the like) gets a 404 and the listener keeps waiting.
The listener never calls ``sys.exit``: :meth:`CallbackListener.wait`
returns a :class:`CallbackOutcome` and the caller decides what to do.
"""

from __future__ import annotations

import hmac
import logging
import socket
import threading
import time
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlparse

from sfconnect.exceptions import (
    CallbackProtocolError,
    CallbackTimeoutError,
    ListenerBindError,
    SfconnectError,
)
from sfconnect.models import EnvironmentRecord
from sfconnect.oauth.pages import render_error_page, render_not_found_page, render_success_page
from sfconnect.oauth.pkce import Session

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 0.5
REQUEST_READ_TIMEOUT = 10.0
POLL_INTERVAL = 0.1


class ListenerState(str, Enum):
    """Lifecycle states of a :class:`CallbackListener`."""

    IDLE = "idle"
    LISTENING = "listening"
    VALIDATING = "validating"
    EXCHANGING = "exchanging"
    DONE = "done"


@dataclass
class CallbackOutcome:
    """Result of the one callback the listener serviced.

    Exactly one of ``record`` and ``error`` is set.
    """

    record: Optional[EnvironmentRecord] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.record is not None


def _same_state(received: str, expected: str) -> bool:
    """Exact, constant-time comparison of two state tokens."""
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


class _CallbackServer(ThreadingHTTPServer):
    daemon_threads = True

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.debug("Error while serving %s", client_address, exc_info=True)


class _CallbackServer6(_CallbackServer):
    address_family = socket.AF_INET6


class CallbackListener:
    """Wait for the provider to redirect back, validate it, and finish the handshake.

    The listener closes over exactly one :class:`~sfconnect.oauth.pkce.Session`.
    When a valid callback arrives it calls *on_authorized* with the
    authorization code; that callable performs the token exchange and the
    registry update and returns the stored record.

    Args:
        session: PKCE material and state of this handshake.
        on_authorized: Called with the authorization code once the callback
            has been validated. Any exception it raises fails the handshake.
        host: Interface to bind.
        port: Port to bind; ``0`` lets the OS pick one (see :attr:`port`).
        callback_path: Path of the redirect URI.
        shutdown_grace: Seconds :meth:`close` waits after a callback was
            served before closing the socket.

    Example::

        listener = CallbackListener(session, finish, host="127.0.0.1", port=1717)
        listener.bind()
        try:
            outcome = listener.wait(timeout=300)
        finally:
            listener.close()
    """

    def __init__(
        self,
        session: Session,
        on_authorized: Callable[[str], EnvironmentRecord],
        *,
        host: str,
        port: int,
        callback_path: str = "/callback",
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ) -> None:
        self._session = session
        self._on_authorized = on_authorized
        self._host = host
        self._port = port
        self._callback_path = callback_path
        self._shutdown_grace = shutdown_grace
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._received = threading.Event()
        self._done = threading.Event()
        self._expired = False
        self._outcome: Optional[CallbackOutcome] = None
        self.state = ListenerState.IDLE

    @property
    def port(self) -> int:
        """The bound port, or the configured one before :meth:`bind`."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    @property
    def outcome(self) -> Optional[CallbackOutcome]:
        return self._outcome

    def bind(self) -> None:
        """Bind the listening socket.

        Raises:
            ListenerBindError: If the address is unavailable (e.g. the port
                is already in use).
        """
        if self._server is not None:
            raise RuntimeError("Callback listener is already bound")
        try:
            server_class = _CallbackServer6 if ":" in self._host else _CallbackServer
            self._server = server_class((self._host, self._port), self._make_handler())
        except OSError as exc:
            reason = exc.strerror or str(exc)
            raise ListenerBindError(
                f"Cannot listen on {self._host}:{self._port} for the OAuth callback: {reason}"
            ) from exc
        self._transition(ListenerState.LISTENING)
        logger.debug("Listening on %s:%s%s", self._host, self.port, self._callback_path)

    def wait(self, timeout: Optional[float] = None) -> CallbackOutcome:
        """Serve requests until the first callback has been handled.

        *timeout* bounds the arrival of the callback. Once it has arrived,
        the wait continues until the exchange finished, which is bounded by
        the token request timeout.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits forever.

        Returns:
            The :class:`CallbackOutcome` of the serviced callback.

        Raises:
            CallbackTimeoutError: If no callback arrived in time.
        """
        if self._server is None:
            raise RuntimeError("bind() must be called before wait()")

        if self._thread is None:
            self._thread = threading.Thread(
                target=self._server.serve_forever,
                kwargs={"poll_interval": POLL_INTERVAL},
                name="sfconnect-callback",
                daemon=True,
            )
            self._thread.start()

        if not self._received.wait(timeout) and self._expire():
            raise CallbackTimeoutError(f"No OAuth callback received within {timeout:g} seconds")
        self._done.wait()
        assert self._outcome is not None
        return self._outcome

    def close(self) -> None:
        """Close the socket, after the grace period if a callback was served."""
        if self._server is None:
            return
        if self._outcome is not None and self._shutdown_grace > 0:
            time.sleep(self._shutdown_grace)
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
            self._thread = None
        self._server.server_close()
        self._server = None
        logger.debug("Callback listener closed")

    # ------------------------------------------------------------------ #
    # State machine
    # ------------------------------------------------------------------ #

    def _claim(self) -> bool:
        """Reserve the listener for the calling request; False if already taken."""
        with self._lock:
            if self._received.is_set() or self._expired:
                return False
            self._received.set()
            return True

    def _expire(self) -> bool:
        """Stop accepting callbacks; False if one arrived just before the deadline."""
        with self._lock:
            if self._received.is_set():
                return False
            self._expired = True
            return True

    def _transition(self, state: ListenerState) -> None:
        logger.debug("Callback listener: %s -> %s", self.state.value, state.value)
        self.state = state

    def _fail(
        self, error: BaseException, status: HTTPStatus, reason: Optional[str] = None
    ) -> tuple[HTTPStatus, str]:
        self._outcome = CallbackOutcome(error=error)
        self._transition(ListenerState.DONE)
        return status, render_error_page(reason or str(error))

    def _handle_callback(self, query: dict[str, list[str]]) -> tuple[HTTPStatus, str]:
        """Validate one callback request and, if valid, complete the handshake."""
        self._transition(ListenerState.VALIDATING)
        params = {key: values[0] for key, values in query.items() if values}

        provider_error = params.get("error")
        if provider_error:
            description = params.get("error_description")
            logger.debug("Provider reported %s: %s", provider_error, description)
            return self._fail(
                CallbackProtocolError(
                    f"Provider returned an error: {description or provider_error}",
                    provider_error=provider_error,
                    description=description,
                ),
                HTTPStatus.BAD_REQUEST,
            )

        code = params.get("code")
        state = params.get("state")
        if not code or not state or not _same_state(state, self._session.state):
            logger.warning("Rejected OAuth callback: missing code/state or state mismatch")
            return self._fail(
                CallbackProtocolError(
                    "Invalid callback: missing code or state, or state does not match this session"
                ),
                HTTPStatus.BAD_REQUEST,
            )

        self._transition(ListenerState.EXCHANGING)
        try:
            record = self._on_authorized(code)
        except Exception as exc:
            if isinstance(exc, SfconnectError):
                reason = str(exc)
            else:
                logger.debug("Unexpected error while completing the handshake", exc_info=True)
                reason = "Unexpected error while saving the connection"
            return self._fail(exc, HTTPStatus.INTERNAL_SERVER_ERROR, reason)

        self._outcome = CallbackOutcome(record=record)
        self._transition(ListenerState.DONE)
        return HTTPStatus.OK, render_success_page(record.alias, record.instance_url)

    def _make_handler(self) -> type[BaseHTTPRequestHandler]:
        listener = self

        class CallbackHandler(BaseHTTPRequestHandler):
            timeout = REQUEST_READ_TIMEOUT

            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                if parsed.path != listener._callback_path or not listener._claim():
                    self._respond(HTTPStatus.NOT_FOUND, render_not_found_page())
                    return
                try:
                    status, page = listener._handle_callback(parse_qs(parsed.query))
                    self._respond(status, page)
                finally:
                    listener._done.set()

            def _respond(self, status: HTTPStatus, page: str) -> None:
                body = page.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.send_header("Connection", "close")
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("%s - " + format, self.address_string(), *args)

        return CallbackHandler
