"""MCP Auth Helper - authenticate MCP servers under a chosen OAuth client name."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("mcp-auth-helper")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    "AuthSettings",
    "default_output_path",
    "OAuthFlow",
    "AuthStore",
]


# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("AuthSettings", "default_output_path"):
        from .config import AuthSettings, default_output_path
        return {"AuthSettings": AuthSettings, "default_output_path": default_output_path}[name]
    elif name in ("OAuthFlow", "AuthStore"):
        from .oauth import AuthStore, OAuthFlow
        return {"OAuthFlow": OAuthFlow, "AuthStore": AuthStore}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
