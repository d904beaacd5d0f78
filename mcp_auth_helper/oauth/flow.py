"""OAuth authorization code flow with PKCE.

This module orchestrates one authentication run:
1. Read the existing auth file
2. Discover OAuth endpoints
3. Register a client under the requested name
4. Generate PKCE pair and state, checkpoint them to the auth file
5. Bind the callback listener, build the authorization URL and open the browser
6. Wait for the callback and verify its state
7. Exchange the code for tokens
8. Write the tokens and drop the transient PKCE state

Every step is fail-fast; nothing is retried.
"""

import hmac
import logging
import webbrowser
from typing import TYPE_CHECKING, Callable
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from .callback import CallbackListener, CallbackResult
from .discovery import OAuthEndpoints, discover_oauth_endpoints
from .errors import StateMismatchError, UnsupportedServerError
from .pkce import generate_pkce_pair, generate_state
from .registration import RegisteredClient, register_client
from .store import AuthEntry, AuthStore, ClientInfo, Tokens
from .tokens import exchange_code_for_tokens

if TYPE_CHECKING:
    from ..config import AuthSettings

logger = logging.getLogger(__name__)


def build_authorization_url(
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
) -> str:
    """Build the authorization URL for browser redirect.

    Query parameters already present on the endpoint are kept; ours
    replace any with the same name.
    """
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    }

    parsed = urlparse(authorization_endpoint)
    existing = [(k, v) for k, v in parse_qsl(parsed.query) if k not in params]
    query = urlencode(existing + list(params.items()))
    return urlunparse(parsed._replace(query=query))


class OAuthFlow:
    """Runs one authorization code flow and persists the result.

    Usage:
        flow = OAuthFlow(settings, AuthStore(settings.output_path))
        entry = await flow.run()
    """

    def __init__(
        self,
        settings: "AuthSettings",
        store: AuthStore,
        http_client: httpx.AsyncClient | None = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        on_status: Callable[[str], None] | None = None,
        listener_factory: Callable[..., CallbackListener] = CallbackListener,
    ):
        """Initialize OAuth flow.

        Args:
            settings: Resolved settings for this run
            store: Auth file the tokens are written to
            http_client: Optional HTTP client shared by all requests
            open_browser: Opens the authorization URL; failures are ignored
            on_status: Optional callback for progress messages
            listener_factory: Builds the callback listener (port, timeout)
        """
        self.settings = settings
        self.store = store
        self.http_client = http_client
        self.open_browser = open_browser
        self.on_status = on_status or (lambda msg: None)
        self.listener_factory = listener_factory

        self.replaced_existing = False

    def _emit_status(self, message: str) -> None:
        """Emit a status message."""
        logger.info(message)
        self.on_status(message)

    def _launch_browser(self, url: str) -> None:
        try:
            opened = self.open_browser(url)
        except webbrowser.Error as e:
            logger.debug(f"Could not open browser: {e}")
            return
        if not opened:
            logger.debug("No browser available to open the authorization URL")

    async def discover(self, http: httpx.AsyncClient) -> OAuthEndpoints:
        """Discover endpoints and require Dynamic Client Registration support."""
        self._emit_status("Discovering OAuth endpoints...")
        endpoints = await discover_oauth_endpoints(self.settings.server_url, http)

        self._emit_status(f"  Authorization: {endpoints.authorization_endpoint}")
        self._emit_status(f"  Token:         {endpoints.token_endpoint}")

        if not endpoints.supports_registration():
            raise UnsupportedServerError(
                "Server does not support dynamic client registration "
                "(no registration_endpoint in metadata)"
            )

        self._emit_status(f"  Registration:  {endpoints.registration_endpoint}")
        return endpoints

    async def register(
        self, endpoints: OAuthEndpoints, http: httpx.AsyncClient
    ) -> RegisteredClient:
        self._emit_status(f"Registering as \"{self.settings.client_name}\"...")
        client = await register_client(
            endpoints.registration_endpoint,  # type: ignore[arg-type]
            self.settings.redirect_uri,
            self.settings.client_name,
            http,
        )
        self._emit_status(f"  Client ID: {client.client_id}")
        return client

    async def run(self) -> AuthEntry:
        """Execute the complete OAuth flow.

        Returns:
            The AuthEntry written to the auth file

        Raises:
            OAuthError: If the flow fails at any step
        """
        http = self.http_client or httpx.AsyncClient(timeout=30.0)
        should_close = self.http_client is None

        try:
            return await self._run(http)
        finally:
            if should_close:
                await http.aclose()

    async def _run(self, http: httpx.AsyncClient) -> AuthEntry:
        settings = self.settings

        # Step 1: Read existing auth file; other entries are written back untouched
        auth_data = self.store.read()
        self.replaced_existing = settings.server_name in auth_data

        # Step 2-3: Discover endpoints and register
        endpoints = await self.discover(http)
        client = await self.register(endpoints, http)

        # Step 4: Generate PKCE and state, checkpoint before leaving the terminal
        pkce = generate_pkce_pair()
        state = generate_state()

        entry = AuthEntry(
            server_url=settings.server_url,
            client_info=ClientInfo.from_registered_client(client),
            code_verifier=pkce.code_verifier,
            oauth_state=state,
        )
        auth_data[settings.server_name] = entry.to_dict()
        self.store.write(auth_data)

        # Step 5: Bind the listener before sending the user anywhere
        auth_url = build_authorization_url(
            endpoints.authorization_endpoint,
            client.client_id,
            settings.redirect_uri,
            pkce.code_challenge,
            state,
        )

        listener = self.listener_factory(
            port=settings.callback_port, timeout=settings.callback_timeout
        )
        async with listener:
            self._emit_status("Opening browser for authorization...")
            self._emit_status(f"  {auth_url}")
            self._emit_status(
                "If the browser doesn't open, copy the URL above and open it manually."
            )
            self._emit_status(
                f"Waiting for authorization callback (timeout: {settings.callback_timeout:g}s)..."
            )
            self._launch_browser(auth_url)

            # Step 6: Wait for callback
            result: CallbackResult = await listener.wait_for_callback()

        # Use constant-time comparison to prevent timing attacks
        if not hmac.compare_digest((result.state or "").encode("utf-8"), state.encode("utf-8")):
            raise StateMismatchError("OAuth state mismatch - possible CSRF attack")

        # Step 7: Exchange code for tokens
        self._emit_status("Exchanging authorization code for tokens...")
        token_response = await exchange_code_for_tokens(
            endpoints.token_endpoint,
            result.code or "",
            pkce.code_verifier,
            client.client_id,
            settings.redirect_uri,
            http,
        )

        # Step 8: Save tokens, clearing transient PKCE state
        entry.complete(Tokens.from_token_response(token_response))
        auth_data[settings.server_name] = entry.to_dict()
        self.store.write(auth_data)

        self._emit_status("Authentication successful!")
        return entry
