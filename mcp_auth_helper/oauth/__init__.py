"""OAuth 2.0 authorization code + PKCE support for MCP Auth Helper.

This package performs one interactive authorization against a remote MCP
server and stores the resulting tokens in the host application's auth file.

Main Components:
    OAuthFlow: Orchestrates discovery, registration, callback and exchange
    CallbackListener: Single-use localhost redirect listener
    AuthStore: JSON auth file shared with the host application

Quick Start:
    from mcp_auth_helper.oauth import AuthStore, OAuthFlow

    flow = OAuthFlow(settings, AuthStore(settings.output_path), on_status=print)
    entry = await flow.run()
"""

from .callback import CallbackListener, CallbackResult, ListenerState
from .discovery import OAuthEndpoints, discover_oauth_endpoints
from .errors import (
    AuthStoreError,
    CallbackError,
    CallbackServerError,
    CallbackTimeoutError,
    DiscoveryError,
    OAuthError,
    PortInUseError,
    RegistrationError,
    StateMismatchError,
    TokenExchangeError,
    UnsupportedServerError,
)
from .flow import OAuthFlow, build_authorization_url
from .pkce import PKCEPair, generate_code_challenge, generate_code_verifier, generate_pkce_pair
from .registration import RegisteredClient, register_client
from .store import AuthEntry, AuthStore, ClientInfo, Tokens
from .tokens import TokenResponse, exchange_code_for_tokens

__all__ = [
    # Flow (main entry point)
    "OAuthFlow",
    "build_authorization_url",
    # Discovery
    "discover_oauth_endpoints",
    "OAuthEndpoints",
    # Registration
    "register_client",
    "RegisteredClient",
    # PKCE
    "generate_pkce_pair",
    "generate_code_verifier",
    "generate_code_challenge",
    "PKCEPair",
    # Callback
    "CallbackListener",
    "CallbackResult",
    "ListenerState",
    # Tokens
    "exchange_code_for_tokens",
    "TokenResponse",
    # Storage
    "AuthStore",
    "AuthEntry",
    "ClientInfo",
    "Tokens",
    # Errors
    "OAuthError",
    "DiscoveryError",
    "UnsupportedServerError",
    "RegistrationError",
    "CallbackServerError",
    "PortInUseError",
    "CallbackError",
    "CallbackTimeoutError",
    "StateMismatchError",
    "TokenExchangeError",
    "AuthStoreError",
]
