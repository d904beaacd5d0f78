"""Dynamic Client Registration (RFC 7591).

The client registers itself as a public client under a caller-chosen name.
Servers that gate registration on an allowlist of client names will accept
whichever name the user passes with --client-name.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import RegistrationError
from .responses import error_detail

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "Codex"


@dataclass(frozen=True)
class RegisteredClient:
    """Client identity returned by the registration endpoint.

    Optional fields are whatever the server returned, or None.
    """

    client_id: str
    client_secret: str | None = None
    client_id_issued_at: int | None = None
    client_secret_expires_at: int | None = None


def build_registration_request(redirect_uri: str, client_name: str) -> dict[str, Any]:
    """Build the client metadata document sent to the registration endpoint."""
    return {
        "redirect_uris": [redirect_uri],
        "client_name": client_name,
        "grant_types": ["authorization_code", "refresh_token"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "none",  # Public client
    }


async def register_client(
    registration_endpoint: str,
    redirect_uri: str,
    client_name: str = DEFAULT_CLIENT_NAME,
    http_client: httpx.AsyncClient | None = None,
) -> RegisteredClient:
    """Register a client using Dynamic Client Registration.

    Args:
        registration_endpoint: The server's registration endpoint
        redirect_uri: The single redirect URI to register
        client_name: Name to register the client under
        http_client: Optional HTTP client

    Returns:
        RegisteredClient with client_id and any optional fields the server sent

    Raises:
        RegistrationError: If the request fails or the response has no client_id
    """
    client = http_client or httpx.AsyncClient(timeout=30.0)
    should_close = http_client is None

    try:
        response = await client.post(
            registration_endpoint,
            json=build_registration_request(redirect_uri, client_name),
            headers={"Content-Type": "application/json"},
        )

        if not response.is_success:
            raise RegistrationError(
                f"Dynamic Client Registration failed (HTTP {response.status_code})"
                f"{error_detail(response)}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RegistrationError(
                "Dynamic Client Registration returned a response that is not valid JSON"
            ) from e

        if not isinstance(data, dict):
            raise RegistrationError(
                "Dynamic Client Registration returned a response that is not a JSON object"
            )

        client_id = data.get("client_id")
        if not isinstance(client_id, str) or not client_id:
            raise RegistrationError("Client registration did not return a client_id")

    except httpx.InvalidURL as e:
        raise RegistrationError(
            f"Invalid registration endpoint {registration_endpoint!r}: {e}"
        ) from e
    except httpx.RequestError as e:
        raise RegistrationError(f"Network error during client registration: {e}") from e
    finally:
        if should_close:
            await client.aclose()

    logger.debug(f"Registered client {client_id} as {client_name!r}")

    return RegisteredClient(
        client_id=client_id,
        client_secret=data.get("client_secret"),
        client_id_issued_at=data.get("client_id_issued_at"),
        client_secret_expires_at=data.get("client_secret_expires_at"),
    )
