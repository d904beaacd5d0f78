"""Exception hierarchy for the OAuth flow.

Every step of the flow is fail-fast, so each failure mode has its own
exception type. All of them inherit from :class:`OAuthError`, which the CLI
catches to print a message and exit non-zero::

    OAuthError
    +-- DiscoveryError
    +-- UnsupportedServerError
    +-- RegistrationError
    +-- CallbackServerError
    |   +-- PortInUseError
    +-- CallbackError
    +-- CallbackTimeoutError
    +-- StateMismatchError
    +-- TokenExchangeError
    +-- AuthStoreError
"""


class OAuthError(Exception):
    """Base class for all errors raised while authenticating."""

    pass


class DiscoveryError(OAuthError):
    """Error fetching or parsing authorization server metadata."""

    pass


class UnsupportedServerError(OAuthError):
    """Authorization server does not advertise a registration endpoint."""

    pass


class RegistrationError(OAuthError):
    """Error during Dynamic Client Registration."""

    pass


class CallbackServerError(OAuthError):
    """The local callback listener could not be started."""

    pass


class PortInUseError(CallbackServerError):
    """The callback port is already bound by another process."""

    def __init__(self, port: int):
        super().__init__(
            f"Port {port} is already in use. "
            f"Try a different port with --callback-port"
        )
        self.port = port


class CallbackError(OAuthError):
    """The authorization server redirected back with an error."""

    def __init__(self, error: str, error_description: str | None = None):
        message = f"Authorization error: {error}"
        if error_description:
            message += f" - {error_description}"
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class CallbackTimeoutError(OAuthError):
    """No authorization callback arrived in time."""

    pass


class StateMismatchError(OAuthError):
    """Callback state does not match the state we generated."""

    pass


class TokenExchangeError(OAuthError):
    """Error exchanging the authorization code for tokens."""

    pass


class AuthStoreError(OAuthError):
    """Error reading or writing the auth file."""

    pass
