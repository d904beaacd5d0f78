"""Shared fixtures and utilities for MCP Auth Helper tests."""

import asyncio
import socket
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from mcp_auth_helper.config import AuthSettings


# ============================================================================
# Sample Data Fixtures
# ============================================================================


METADATA = {
    "issuer": "https://ex.com",
    "authorization_endpoint": "https://ex.com/auth",
    "token_endpoint": "https://ex.com/token",
    "registration_endpoint": "https://ex.com/register",
}


@pytest.fixture
def metadata() -> dict[str, Any]:
    """Authorization server metadata advertising all three endpoints."""
    return dict(METADATA)


@pytest.fixture
def free_port() -> int:
    """A loopback port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def auth_file(tmp_path: Path) -> Path:
    """Path of an auth file inside a not-yet-existing directory."""
    return tmp_path / "opencode" / "mcp-auth.json"


@pytest.fixture
def settings(auth_file: Path, free_port: int) -> AuthSettings:
    """Settings for authenticating the "figma" server."""
    return AuthSettings(
        server_name="figma",
        server_url="https://ex.com/mcp",
        output_path=auth_file,
        callback_port=free_port,
        callback_timeout=5,
    )


# ============================================================================
# HTTP helpers
# ============================================================================


def json_response(status_code: int, data: Any) -> httpx.Response:
    """Build a real httpx response carrying a JSON body."""
    return httpx.Response(status_code, json=data)


def text_response(status_code: int, text: str) -> httpx.Response:
    """Build a real httpx response carrying a plain text body."""
    return httpx.Response(status_code, text=text)


def make_http_client(
    get: list[httpx.Response] | None = None,
    post: list[httpx.Response] | None = None,
) -> AsyncMock:
    """Create a mock AsyncClient whose get/post return the given responses in order."""
    mock_http = AsyncMock(spec=httpx.AsyncClient)
    mock_http.get = AsyncMock(side_effect=list(get or []))
    mock_http.post = AsyncMock(side_effect=list(post or []))
    mock_http.aclose = AsyncMock()
    return mock_http


class ManualTimer:
    """Timer for CallbackListener that only fires when told to."""

    def __init__(self) -> None:
        self.fired = asyncio.Event()
        self.started_with: float | None = None

    async def __call__(self, seconds: float) -> None:
        self.started_with = seconds
        await self.fired.wait()

    def fire(self) -> None:
        self.fired.set()


async def send_request(port: int, target: str, method: str = "GET") -> bytes:
    """Send one raw HTTP request to the local listener and return the response."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"{method} {target} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode())
    await writer.drain()
    response = await reader.read()
    writer.close()
    await writer.wait_closed()
    return response


def port_is_free(port: int) -> bool:
    """Check if a new listener could bind the port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        # Closed server-side connections may linger in TIME_WAIT
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True
