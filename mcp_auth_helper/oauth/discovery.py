"""OAuth endpoint discovery per RFC 8414.

Only the fixed well-known path on the server's origin is consulted:

    GET <origin>/.well-known/oauth-authorization-server

There is no fallback to OpenID Connect discovery or to Protected Resource
Metadata. Any failure surfaces as a single DiscoveryError naming the URL
that was tried.
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from .errors import DiscoveryError

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/oauth-authorization-server"

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def _http_status_hint(status_code: int) -> str:
    """Get a user-friendly hint for common HTTP status codes."""
    hints = {
        401: "Server requires authentication before serving its metadata",
        403: "Access forbidden - check if you have permission to access this resource",
        404: "Endpoint not found - the server may not support OAuth discovery at this URL",
        500: "Server error - the authorization server may be experiencing issues",
        502: "Bad gateway - there may be a proxy or network issue",
        503: "Service unavailable - the server may be temporarily down",
    }
    return hints.get(status_code, "")


def _warn_if_insecure(url: str, context: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme != "https" and parsed.hostname not in _LOOPBACK_HOSTS:
        logger.warning(f"{context} does not use HTTPS: {url}")


@dataclass(frozen=True)
class OAuthEndpoints:
    """Endpoints advertised by an authorization server.

    registration_endpoint is None when the server does not support
    Dynamic Client Registration.
    """

    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None

    def supports_registration(self) -> bool:
        """Check if the server supports Dynamic Client Registration."""
        return self.registration_endpoint is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OAuthEndpoints":
        """Create from a metadata document.

        Raises:
            KeyError: If a required endpoint is missing or empty
        """
        endpoints: dict[str, str] = {}
        for name in ("authorization_endpoint", "token_endpoint"):
            value = data.get(name)
            if not isinstance(value, str) or not value:
                raise KeyError(name)
            endpoints[name] = value

        registration_endpoint = data.get("registration_endpoint")
        if not isinstance(registration_endpoint, str) or not registration_endpoint:
            registration_endpoint = None

        return cls(
            authorization_endpoint=endpoints["authorization_endpoint"],
            token_endpoint=endpoints["token_endpoint"],
            registration_endpoint=registration_endpoint,
        )


def well_known_url(server_url: str) -> str:
    """Build the RFC 8414 metadata URL for a server.

    Path, query and fragment of server_url are dropped; only the origin
    is kept.

    Raises:
        DiscoveryError: If server_url is malformed or has no scheme or host
    """
    try:
        parsed = urlparse(server_url)
        parsed.port  # raises ValueError for a non-numeric or out-of-range port
    except ValueError as e:
        raise DiscoveryError(f"Invalid server URL: {server_url!r}: {e}") from e

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise DiscoveryError(f"Invalid server URL: {server_url!r}")

    origin = f"{parsed.scheme}://{parsed.netloc}"
    return urljoin(origin, WELL_KNOWN_PATH)


async def discover_oauth_endpoints(
    server_url: str,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> OAuthEndpoints:
    """Discover the OAuth endpoints for a server.

    Args:
        server_url: The MCP server URL (any path is ignored)
        http_client: Optional HTTP client to use
        timeout: Request timeout in seconds

    Returns:
        OAuthEndpoints parsed from the metadata document

    Raises:
        DiscoveryError: On any network, HTTP or metadata problem
    """
    url = well_known_url(server_url)

    client = http_client or httpx.AsyncClient(timeout=timeout)
    should_close = http_client is None

    logger.debug(f"Fetching authorization server metadata from {url}")

    try:
        response = await client.get(url)

        if not response.is_success:
            hint = _http_status_hint(response.status_code)
            error_msg = f"Failed to discover OAuth endpoints from {url}: HTTP {response.status_code}"
            if hint:
                error_msg += f". {hint}"
            raise DiscoveryError(error_msg)

        try:
            data = response.json()
        except ValueError as e:
            raise DiscoveryError(
                f"Failed to discover OAuth endpoints from {url}: response was not valid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise DiscoveryError(
                f"Failed to discover OAuth endpoints from {url}: metadata is not a JSON object"
            )

        endpoints = OAuthEndpoints.from_dict(data)

    except httpx.InvalidURL as e:
        raise DiscoveryError(
            f"Failed to discover OAuth endpoints from {url}: invalid URL: {e}"
        ) from e
    except httpx.ConnectError as e:
        raise DiscoveryError(
            f"Failed to discover OAuth endpoints from {url}: could not connect: {e}. "
            f"Check that the URL is correct and the server is reachable."
        ) from e
    except httpx.TimeoutException as e:
        raise DiscoveryError(
            f"Failed to discover OAuth endpoints from {url}: timed out: {e}"
        ) from e
    except httpx.RequestError as e:
        raise DiscoveryError(
            f"Failed to discover OAuth endpoints from {url}: network error: {e}"
        ) from e
    except KeyError as e:
        raise DiscoveryError(
            f"Failed to discover OAuth endpoints from {url}: "
            f"metadata missing required field {e}"
        ) from e
    finally:
        if should_close:
            await client.aclose()

    _warn_if_insecure(endpoints.authorization_endpoint, "Authorization endpoint")
    _warn_if_insecure(endpoints.token_endpoint, "Token endpoint")

    logger.debug(f"Discovered OAuth endpoints from {url}: {endpoints}")
    return endpoints
