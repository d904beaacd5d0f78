"""CLI entry point for MCP Auth Helper."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from . import __version__
from .config import OUTPUT_ENV_VAR, AuthSettings, default_output_path, load_env_file
from .oauth import (
    AuthStore,
    CallbackTimeoutError,
    DiscoveryError,
    OAuthError,
    OAuthFlow,
    RegistrationError,
    StateMismatchError,
    UnsupportedServerError,
)
from .oauth.callback import DEFAULT_CALLBACK_PORT
from .oauth.registration import DEFAULT_CLIENT_NAME
from .output import OutputHandler

# Logger for CLI
logger = logging.getLogger("mcp-auth-helper")

_ERROR_HINTS: dict[type[OAuthError], str] = {
    DiscoveryError: "Check that --url points at the MCP server and that it supports OAuth.",
    UnsupportedServerError: (
        "This server needs a pre-registered OAuth client; only servers with "
        "dynamic client registration are supported."
    ),
    RegistrationError: "The server may not accept this client name. Try a different --client-name.",
    CallbackTimeoutError: "Complete the authorization in the browser before the timeout, then run the command again.",
    StateMismatchError: "The callback did not match this authorization request. Run the command again.",
}


def _hint_for(error: OAuthError) -> str | None:
    for error_type in type(error).__mro__:
        if error_type in _ERROR_HINTS:
            return _ERROR_HINTS[error_type]
    return None


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, verbose: bool) -> None:
    """MCP Auth Helper - Authenticate MCP servers for OpenCode under a chosen client name."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["output"] = OutputHandler(json_mode)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    # Loaded before subcommand options are parsed so their envvars see it
    loaded = load_env_file(Path(env_path) if env_path else None)
    if loaded:
        logger.debug(f"Loaded environment from {loaded}")


@main.command()
@click.argument("server_name")
@click.option("--url", "server_url", required=True, help="MCP server URL")
@click.option(
    "--client-name",
    default=DEFAULT_CLIENT_NAME,
    show_default=True,
    help="OAuth client name to register as",
)
@click.option(
    "--callback-port",
    type=click.IntRange(1, 65535),
    default=DEFAULT_CALLBACK_PORT,
    show_default=True,
    help="Local callback port",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar=OUTPUT_ENV_VAR,
    help="Token output path (default: $XDG_DATA_HOME/opencode/mcp-auth.json)",
)
@click.pass_context
def auth(
    ctx: click.Context,
    server_name: str,
    server_url: str,
    client_name: str,
    callback_port: int,
    output_path: Path | None,
) -> None:
    """Authenticate SERVER_NAME and save its tokens.

    SERVER_NAME is the key the tokens are stored under in the auth file,
    e.g. the name the server has in your OpenCode configuration.
    """
    output: OutputHandler = ctx.obj["output"]

    settings = AuthSettings(
        server_name=server_name,
        server_url=server_url,
        output_path=output_path or default_output_path(),
        client_name=client_name,
        callback_port=callback_port,
    )
    try:
        settings.validate()
    except ValueError as e:
        output.error(e, error_type="InvalidSettings")
        return

    output.status(f"Authenticating \"{server_name}\" with {server_url}")
    output.status("")

    flow = OAuthFlow(settings, AuthStore(settings.output_path), on_status=output.status)
    try:
        entry = asyncio.run(flow.run())
    except OAuthError as e:
        logger.debug(f"Authentication failed: {e!r}")
        output.error(e, help_text=_hint_for(e))
        return

    summary = {
        "server": server_name,
        "serverUrl": server_url,
        "clientId": entry.client_info.client_id if entry.client_info else None,
        "expiresAt": entry.tokens.expires_at if entry.tokens else None,
        "output": str(settings.output_path),
        "replacedExisting": flow.replaced_existing,
    }

    lines = [
        "",
        f"  Server:  {server_name}",
        f"  Tokens saved to: {settings.output_path}",
    ]
    if flow.replaced_existing:
        lines.append("  (replaced the previous entry for this server)")
    lines += [
        "",
        "You can now use this MCP server with OpenCode - no additional configuration needed.",
    ]
    output.success(summary, human_message="\n".join(lines))


def run() -> None:
    """Console script entry point.

    Usage errors exit with status 1 like every other failure.
    """
    try:
        exit_code = main.main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    sys.exit(exit_code if isinstance(exit_code, int) else 0)


if __name__ == "__main__":
    run()
