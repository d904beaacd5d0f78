"""Configuration for MCP Auth Helper.

Everything environment-derived is resolved here, once, when the CLI
starts. The OAuth flow only ever sees the resulting AuthSettings.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from .oauth.callback import DEFAULT_CALLBACK_PATH, DEFAULT_CALLBACK_PORT, DEFAULT_TIMEOUT
from .oauth.registration import DEFAULT_CLIENT_NAME

# Host application whose auth file we write
HOST_APP_DIR = "opencode"
AUTH_FILE_NAME = "mcp-auth.json"

# Environment variable overriding the output path
OUTPUT_ENV_VAR = "MCP_AUTH_HELPER_OUTPUT"

# Env file search paths in priority order
ENV_SEARCH_PATHS = [
    Path(".env"),
]

MIN_PORT = 1
MAX_PORT = 65535


def default_output_path(environ: Mapping[str, str] | None = None) -> Path:
    """Get the host application's auth file path.

    Uses $XDG_DATA_HOME/opencode/mcp-auth.json, falling back to
    ~/.local/share/opencode/mcp-auth.json.
    """
    env = os.environ if environ is None else environ

    data_home = env.get("XDG_DATA_HOME")
    if data_home:
        base = Path(data_home)
    else:
        home = env.get("HOME") or env.get("USERPROFILE") or "~"
        base = Path(home).expanduser() / ".local" / "share"

    return base / HOST_APP_DIR / AUTH_FILE_NAME


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file to load.

    If an explicit path is given it is used as-is. Otherwise the search
    paths are checked in order.
    """
    if explicit_path:
        return explicit_path if explicit_path.exists() else None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path

    return None


def load_env_file(explicit_path: Path | None = None) -> Path | None:
    """Load a .env file into the environment without overriding set variables.

    Returns:
        The path that was loaded, or None if no file was found
    """
    env_path = find_env_file(explicit_path)
    if env_path:
        load_dotenv(env_path, override=False)
    return env_path


@dataclass(frozen=True)
class AuthSettings:
    """Inputs for one authentication run."""

    server_name: str
    server_url: str
    output_path: Path
    client_name: str = DEFAULT_CLIENT_NAME
    callback_port: int = DEFAULT_CALLBACK_PORT
    callback_timeout: float = DEFAULT_TIMEOUT

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.callback_port}{DEFAULT_CALLBACK_PATH}"

    def validate(self) -> None:
        """Check settings before any network activity.

        Raises:
            ValueError: If a setting is empty or out of range
        """
        if not self.server_name:
            raise ValueError("Server name must not be empty")
        if not self.server_url:
            raise ValueError("--url is required")
        if not self.client_name:
            raise ValueError("Client name must not be empty")
        if not MIN_PORT <= self.callback_port <= MAX_PORT:
            raise ValueError(
                f"Callback port must be between {MIN_PORT} and {MAX_PORT}, "
                f"got {self.callback_port}"
            )
        if self.callback_timeout <= 0:
            raise ValueError("Callback timeout must be positive")
