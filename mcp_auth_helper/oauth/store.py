"""Auth file storage shared with the host application.

The auth file is a plain JSON object keyed by server name:

    {
      "figma": {
        "tokens": {"accessToken": "...", "expiresAt": 1700000000},
        "clientInfo": {"clientId": "..."},
        "serverUrl": "https://mcp.figma.com/mcp"
      }
    }

Its shape is read by another program, so keys are camelCase and absent
values are omitted rather than written as null. The file is written with
owner-only permissions because it holds tokens and, during a flow, the
PKCE verifier.
"""

import json
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import AuthStoreError
from .registration import RegisteredClient
from .tokens import TokenResponse

logger = logging.getLogger(__name__)

AuthFile = dict[str, dict[str, Any]]


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class Tokens:
    """Tokens as stored in the auth file."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None
    scope: str | None = None

    @classmethod
    def from_token_response(cls, response: TokenResponse) -> "Tokens":
        # token_type is not part of the stored shape
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_at=response.expires_at,
            scope=response.scope,
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "scope": self.scope,
        })


@dataclass
class ClientInfo:
    """Registered client identity as stored in the auth file."""

    client_id: str
    client_secret: str | None = None
    client_id_issued_at: int | None = None
    client_secret_expires_at: int | None = None

    @classmethod
    def from_registered_client(cls, client: RegisteredClient) -> "ClientInfo":
        return cls(
            client_id=client.client_id,
            client_secret=client.client_secret,
            client_id_issued_at=client.client_id_issued_at,
            client_secret_expires_at=client.client_secret_expires_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "clientIdIssuedAt": self.client_id_issued_at,
            "clientSecretExpiresAt": self.client_secret_expires_at,
        })


@dataclass
class AuthEntry:
    """Per-server authentication state.

    code_verifier and oauth_state are only set between the checkpoint
    written after registration and the final write after token exchange.
    """

    server_url: str | None = None
    tokens: Tokens | None = None
    client_info: ClientInfo | None = None
    code_verifier: str | None = None
    oauth_state: str | None = None

    def complete(self, tokens: Tokens) -> None:
        """Store final tokens and drop the transient PKCE state."""
        self.tokens = tokens
        self.code_verifier = None
        self.oauth_state = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "tokens": self.tokens.to_dict() if self.tokens else None,
            "clientInfo": self.client_info.to_dict() if self.client_info else None,
            "codeVerifier": self.code_verifier,
            "oauthState": self.oauth_state,
            "serverUrl": self.server_url,
        })


class AuthStore:
    """Reads and writes the auth file at a fixed path.

    The path is injected by the caller; nothing here consults the
    environment. There is no file locking: one invocation is assumed to
    own the file for the duration of a flow.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> AuthFile:
        """Read the whole auth file.

        A missing file is an empty mapping.

        Raises:
            AuthStoreError: If the file exists but is not a JSON object
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise AuthStoreError(f"Could not read auth file {self.path}: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise AuthStoreError(
                f"Auth file {self.path} is corrupted (invalid JSON at line {e.lineno}). "
                f"Fix or remove it and re-authenticate."
            ) from e

        if not isinstance(data, dict):
            raise AuthStoreError(f"Auth file {self.path} is not a JSON object")

        return data

    def write(self, data: AuthFile) -> None:
        """Write the whole auth file with owner-only permissions.

        Raises:
            AuthStoreError: If the file cannot be written
        """
        payload = json.dumps(data, indent=2) + "\n"

        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                try:
                    self.path.parent.chmod(stat.S_IRWXU)  # 0700
                except OSError as e:
                    logger.warning(f"Could not set directory permissions: {e}")

            fd = os.open(
                self.path,
                os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                stat.S_IRUSR | stat.S_IWUSR,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            raise AuthStoreError(f"Could not write auth file {self.path}: {e}") from e

        # O_CREAT's mode only applies to new files
        try:
            self.path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        except OSError as e:
            logger.warning(f"Could not set file permissions: {e}")

        logger.debug(f"Wrote auth file {self.path} ({len(data)} entries)")
