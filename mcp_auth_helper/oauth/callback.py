"""Single-use localhost listener for the OAuth redirect.

The listener binds a fixed loopback port and waits for the browser to be
redirected to /callback. It is a small state machine:

    LISTENING --(code + state)--> SUCCEEDED
    LISTENING --(error=...)-----> FAILED
    LISTENING --(timer fires)---> FAILED

Requests to other paths, non-GET requests and callbacks missing code or
state are answered but leave the listener LISTENING. The first terminal
event settles a single future; anything after that is ignored. The
listening socket is closed as soon as the future is settled.
"""

import asyncio
import errno
import html
import logging
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs, urlparse

from .errors import (
    CallbackError,
    CallbackServerError,
    CallbackTimeoutError,
    PortInUseError,
)

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_PORT = 19876
DEFAULT_CALLBACK_PATH = "/callback"
DEFAULT_TIMEOUT = 120  # seconds

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}


class ListenerState(Enum):
    """Lifecycle state of a CallbackListener."""

    IDLE = "idle"
    LISTENING = "listening"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CallbackResult:
    """Query parameters from an OAuth callback.

    Attributes:
        code: The authorization code from the callback
        state: The state parameter from the callback
        error: Error code if authorization failed
        error_description: Human-readable error description
    """

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        """Check if callback carries both a code and a state and no error."""
        return bool(self.code) and bool(self.state) and not self.error


# HTML templates for callback responses
_PAGE_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #f0f0f0;
        }
        .card {
            background: white;
            padding: 32px 48px;
            border-radius: 8px;
            text-align: center;
            box-shadow: 0 2px 8px rgba(0,0,0,0.1);
            max-width: 480px;
        }
        h1 { margin: 0 0 8px 0; font-size: 24px; }
        .ok { color: #22c55e; }
        .fail { color: #ef4444; }
        p { color: #444; margin: 0 0 12px 0; }
        .error { font-family: monospace; color: #b91c1c; }
"""

SUCCESS_HTML = f"""<!DOCTYPE html>
<html>
<head>
    <title>Authorization Successful</title>
    <style>{_PAGE_STYLE}</style>
</head>
<body>
    <div class="card">
        <h1 class="ok">Authorization Successful</h1>
        <p>You can close this window and return to your terminal.</p>
    </div>
</body>
</html>"""

ERROR_HTML = f"""<!DOCTYPE html>
<html>
<head>
    <title>Authorization Failed</title>
    <style>{_PAGE_STYLE}</style>
</head>
<body>
    <div class="card">
        <h1 class="fail">Authorization Failed</h1>
        <p>An error occurred during authorization. Check the terminal for details.</p>
        <p class="error">{{message}}</p>
    </div>
</body>
</html>"""


def render_error_page(message: str) -> str:
    """Render the error page with an HTML-escaped message."""
    return ERROR_HTML.replace("{message}", html.escape(message))


def parse_callback_url(url: str) -> CallbackResult:
    """Parse OAuth callback URL parameters.

    Only the first value of a repeated parameter is used. Empty values
    count as absent.
    """
    params = parse_qs(urlparse(url).query)

    def get_param(name: str) -> str | None:
        values = params.get(name, [])
        return values[0] if values else None

    return CallbackResult(
        code=get_param("code"),
        state=get_param("state"),
        error=get_param("error"),
        error_description=get_param("error_description"),
    )


Timer = Callable[[float], Awaitable[Any]]


class CallbackListener:
    """Single-use HTTP listener for the OAuth redirect.

    Usage:
        async with CallbackListener(port=19876) as listener:
            # Send the user to the authorization URL with listener.redirect_uri
            result = await listener.wait_for_callback()

    The timeout starts when the port is bound. ``timer`` is awaited with
    the timeout in seconds; when it returns the listener fails with
    CallbackTimeoutError unless a callback already settled it. Tests
    replace it to fire the timeout on demand.
    """

    def __init__(
        self,
        port: int = DEFAULT_CALLBACK_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        path: str = DEFAULT_CALLBACK_PATH,
        host: str = "127.0.0.1",
        timer: Timer = asyncio.sleep,
    ):
        self.port = port
        self.timeout = timeout
        self.path = path
        self.host = host
        self.redirect_uri = f"http://localhost:{port}{path}"

        self._timer = timer
        self._state = ListenerState.IDLE
        self._server: asyncio.Server | None = None
        self._outcome: asyncio.Future[CallbackResult] | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._connections: set[asyncio.StreamWriter] = set()

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_serving(self) -> bool:
        """Check if the listening socket is still open."""
        return self._server is not None and self._server.is_serving()

    async def start(self) -> str:
        """Bind the callback port and start the timeout clock.

        Returns:
            The redirect URI to use in the authorization request

        Raises:
            PortInUseError: If the port is already bound
            CallbackServerError: If binding fails for any other reason
        """
        if self._state is not ListenerState.IDLE:
            raise CallbackServerError("Callback listener can only be started once")

        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()

        try:
            self._server = await asyncio.start_server(
                self._handle_connection, self.host, self.port
            )
        except OSError as e:
            self._state = ListenerState.FAILED
            error: CallbackServerError
            if e.errno in _ADDR_IN_USE:
                error = PortInUseError(self.port)
            else:
                error = CallbackServerError(f"Failed to start callback server: {e}")
            self._outcome.set_exception(error)
            # Retrieved here so the loop does not warn about it
            self._outcome.exception()
            raise error from e

        self._state = ListenerState.LISTENING
        self._timer_task = asyncio.ensure_future(self._run_timer())

        logger.debug(f"Callback listener started on {self.host}:{self.port}")
        return self.redirect_uri

    async def stop(self) -> None:
        """Close the listener and any open connections. Safe to call twice."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

        for writer in list(self._connections):
            writer.close()
        self._connections.clear()

        if self._server is not None:
            server = self._server
            self._server = None
            server.close()
            await server.wait_closed()
            logger.debug("Callback listener stopped")

    async def wait_for_callback(self) -> CallbackResult:
        """Wait for the first terminal outcome, then stop the listener.

        Returns:
            CallbackResult with code and state

        Raises:
            CallbackError: If the authorization server reported an error
            CallbackTimeoutError: If no callback arrived before the timeout
            CallbackServerError: If the listener was never started
        """
        if self._outcome is None:
            raise CallbackServerError("Callback listener not started")

        try:
            return await self._outcome
        finally:
            await self.stop()

    def _settle(
        self,
        result: CallbackResult | None = None,
        error: Exception | None = None,
    ) -> bool:
        """Deliver the outcome if none has been delivered yet.

        Returns:
            True if this call settled the listener, False if it was too late
        """
        if self._outcome is None or self._outcome.done():
            return False

        if error is not None:
            self._state = ListenerState.FAILED
            self._outcome.set_exception(error)
        else:
            self._state = ListenerState.SUCCEEDED
            self._outcome.set_result(result)  # type: ignore[arg-type]

        # Release the port right away; open connections are closed by stop()
        if self._server is not None:
            self._server.close()

        return True

    async def _run_timer(self) -> None:
        await self._timer(self.timeout)
        if self._settle(
            error=CallbackTimeoutError(
                f"Timed out waiting for authorization callback ({self.timeout:g}s)"
            )
        ):
            logger.debug("Callback listener timed out")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle incoming HTTP connection."""
        if self._server is None:
            # Accepted just before stop() ran
            writer.close()
            return

        self._connections.add(writer)
        try:
            # Read HTTP request line (e.g., "GET /callback?code=xxx HTTP/1.1")
            request_line = await reader.readline()
            parts = request_line.decode("utf-8", errors="replace").strip().split(" ")
            if len(parts) < 2:
                await self._send_response(writer, HTTPStatus.BAD_REQUEST, "Invalid request")
                return

            method, target = parts[0], parts[1]

            # Consume headers, we don't need them
            while True:
                header_line = await reader.readline()
                if header_line in (b"\r\n", b"\n", b""):
                    break

            if urlparse(target).path != self.path:
                await self._send_response(writer, HTTPStatus.NOT_FOUND, "Not found")
                return

            if method != "GET":
                await self._send_response(
                    writer, HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed"
                )
                return

            await self._handle_callback(writer, parse_callback_url(target))

        except ValueError as e:
            # Line over the StreamReader limit, or an unparseable target
            logger.debug(f"Rejected malformed callback request: {e}")
            try:
                await self._send_response(writer, HTTPStatus.BAD_REQUEST, "Invalid request")
            except ConnectionError:
                pass
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Callback connection dropped: {e}")
        finally:
            self._connections.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _handle_callback(
        self,
        writer: asyncio.StreamWriter,
        result: CallbackResult,
    ) -> None:
        if self._state is not ListenerState.LISTENING:
            await self._send_html_response(
                writer,
                HTTPStatus.CONFLICT,
                render_error_page("This authorization attempt has already completed."),
            )
            return

        if result.error:
            error = CallbackError(result.error, result.error_description)
            self._settle(error=error)
            logger.debug(f"Callback reported error: {result.error}")
            await self._send_html_response(
                writer, HTTPStatus.OK, render_error_page(str(error))
            )
            return

        if result.is_success():
            self._settle(result=result)
            logger.debug("Received authorization code")
            await self._send_html_response(writer, HTTPStatus.OK, SUCCESS_HTML)
            return

        # Missing code or state: stay LISTENING, the timer still bounds the wait
        logger.debug("Callback missing code or state, still listening")
        await self._send_html_response(
            writer,
            HTTPStatus.BAD_REQUEST,
            render_error_page("Missing code or state parameter."),
        )

    async def _send_response(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        body: str,
    ) -> None:
        """Send a plain text HTTP response."""
        payload = body.encode("utf-8")
        headers = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: text/plain; charset=utf-8\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(headers.encode("utf-8") + payload)
        await writer.drain()

    async def _send_html_response(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        html_content: str,
    ) -> None:
        """Send an HTML HTTP response with security headers."""
        body = html_content.encode("utf-8")
        headers = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"X-Content-Type-Options: nosniff\r\n"
            f"X-Frame-Options: DENY\r\n"
            f"Content-Security-Policy: default-src 'none'; style-src 'unsafe-inline'\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(headers.encode("utf-8") + body)
        await writer.drain()

    async def __aenter__(self) -> "CallbackListener":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.stop()
