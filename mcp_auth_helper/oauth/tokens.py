"""Token exchange for the authorization code grant (RFC 6749 + RFC 7636).

The token endpoint's relative expires_in is turned into an absolute
expiry (epoch seconds) exactly once, when the response is received.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from .errors import TokenExchangeError
from .responses import error_detail

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenResponse:
    """Parsed token endpoint response.

    Attributes:
        access_token: The access token string
        token_type: Token type ("Bearer" if the server omitted it)
        refresh_token: Optional refresh token
        expires_at: Absolute expiry in epoch seconds, if the server sent expires_in
        scope: Space-separated list of granted scopes
    """

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expires_at: int | None = None
    scope: str | None = None

    @classmethod
    def from_token_response(
        cls,
        response: dict[str, Any],
        now: float,
    ) -> "TokenResponse":
        """Create from a token endpoint JSON body.

        Args:
            response: JSON response from token endpoint
            now: Receipt time in epoch seconds

        Raises:
            TokenExchangeError: If access_token is missing or expires_in is malformed
        """
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenExchangeError("Token response missing access_token")

        expires_at = None
        if response.get("expires_in") is not None:
            try:
                expires_at = int(now) + int(response["expires_in"])
            except (TypeError, ValueError) as e:
                raise TokenExchangeError(
                    f"Token response has invalid expires_in: {response['expires_in']!r}"
                ) from e

        return cls(
            access_token=access_token,
            token_type=response.get("token_type") or "Bearer",
            refresh_token=response.get("refresh_token"),
            expires_at=expires_at,
            scope=response.get("scope"),
        )


async def exchange_code_for_tokens(
    token_endpoint: str,
    code: str,
    code_verifier: str,
    client_id: str,
    redirect_uri: str,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] = time.time,
) -> TokenResponse:
    """Exchange authorization code for tokens.

    Args:
        token_endpoint: The server's token endpoint
        code: Authorization code from callback
        code_verifier: PKCE code verifier
        client_id: The registered client ID
        redirect_uri: The redirect URI used in authorization
        http_client: Optional HTTP client
        clock: Source of the current epoch time

    Returns:
        TokenResponse with absolute expiry

    Raises:
        TokenExchangeError: If token exchange fails
    """
    http = http_client or httpx.AsyncClient(timeout=30.0)
    should_close = http_client is None

    token_request: dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
        "code_verifier": code_verifier,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
    }

    try:
        response = await http.post(
            token_endpoint,
            data=token_request,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        received_at = clock()

        if not response.is_success:
            raise TokenExchangeError(
                f"Token exchange failed (HTTP {response.status_code}){error_detail(response)}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise TokenExchangeError("Token response was not valid JSON") from e

        if not isinstance(result, dict):
            raise TokenExchangeError("Token response was not a JSON object")

    except httpx.InvalidURL as e:
        raise TokenExchangeError(f"Invalid token endpoint {token_endpoint!r}: {e}") from e
    except httpx.RequestError as e:
        raise TokenExchangeError(f"Network error during token exchange: {e}") from e
    finally:
        if should_close:
            await http.aclose()

    return TokenResponse.from_token_response(result, received_at)
