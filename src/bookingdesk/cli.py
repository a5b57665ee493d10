# src/bookingdesk/cli.py
"""bookingdesk Command Line Interface.

Entry point for the bookingdesk CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
import yaml
from pydantic import ValidationError

from bookingdesk import __version__
from bookingdesk.core.config import BookingDeskSettings, load_settings, resolve_config

__all__ = ["app"]

app = typer.Typer(
    name="bookingdesk",
    help="bookingdesk: Signed booking webhooks with owner accept/deny links.",
    no_args_is_help=True,
)

SettingsOption = Annotated[
    Path,
    typer.Option("--settings", "-s", help="Path to settings YAML file."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"bookingdesk version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


def _error(title: str, message: str, details: list[str] | None = None) -> None:
    typer.secho(f"{title}: {message}", fg=typer.colors.RED, err=True)
    for detail in details or []:
        typer.secho(f"  - {detail}", fg=typer.colors.RED, err=True)


def _load_or_exit(settings_path: Path) -> BookingDeskSettings:
    """Load settings, printing a readable error and exiting 1 on failure."""
    path = settings_path.expanduser()
    try:
        return load_settings(path)
    except FileNotFoundError:
        _error("File Not Found", f"Settings file does not exist: {path}")
        raise typer.Exit(1) from None
    except ValidationError as e:
        # Must precede ValueError: ValidationError inherits from it
        details = [f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()]
        _error("Configuration Validation Failed", f"Invalid settings in {path.name}", details)
        raise typer.Exit(1) from None
    except ValueError as e:
        _error("Configuration Error", str(e))
        raise typer.Exit(1) from None


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose/debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs."),
) -> None:
    """bookingdesk: Signed booking webhooks with owner accept/deny links."""
    from bookingdesk.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


@app.command()
def serve(
    settings: SettingsOption,
    host: Annotated[str | None, typer.Option("--host", help="Override server.host.")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Override server.port.", min=1, max=65535)] = None,
) -> None:
    """Run the webhook and decision-link server."""
    import uvicorn

    from bookingdesk.bootstrap import build_services
    from bookingdesk.contracts import ConfigurationError
    from bookingdesk.core.logging import configure_logging
    from bookingdesk.web.server import create_app

    config = _load_or_exit(settings)
    configure_logging(json_output=config.logging.json_output, level=config.logging.level)

    try:
        services = build_services(config)
    except ConfigurationError as e:
        _error("Configuration Error", e.message)
        raise typer.Exit(1) from None

    uvicorn.run(
        create_app(services),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,  # keep the structlog handler installed above
    )


@app.command()
def validate(settings: SettingsOption) -> None:
    """Validate configuration without starting the server."""
    config = _load_or_exit(settings)

    problems = []
    if not config.security.webhook_secret:
        problems.append("security.webhook_secret is empty")
    if not config.ledger.primary_sheet_id:
        problems.append("ledger.primary_sheet_id is empty")
    if not config.ledger.service_account_json:
        problems.append("ledger.service_account_json is empty")
    if not config.notifications.owner_email:
        problems.append("notifications.owner_email is empty")
    if problems:
        _error("Configuration Incomplete", settings.name, problems)
        raise typer.Exit(1)

    typer.secho("Configuration valid", fg=typer.colors.GREEN)
    typer.echo(f"  State backend: {config.state.backend}")
    typer.echo(f"  Notifications: {config.notifications.provider}")
    typer.echo(f"  Rate limit: {config.rate_limit.max_requests} per {config.rate_limit.window_seconds}s")
    typer.echo(f"  Backup sheet: {'yes' if config.ledger.backup_sheet_id else 'no'}")


@app.command("show-config")
def show_config(
    settings: SettingsOption,
    output_format: Annotated[str, typer.Option("--format", "-f", help="Output format: yaml or json.")] = "yaml",
) -> None:
    """Print the resolved configuration with secrets fingerprinted."""
    config = _load_or_exit(settings)
    resolved = resolve_config(config)
    if output_format == "json":
        typer.echo(json.dumps(resolved, indent=2))
    elif output_format == "yaml":
        typer.echo(yaml.safe_dump(resolved, sort_keys=False))
    else:
        _error("Invalid Option", f"Unknown format '{output_format}' (expected yaml or json)")
        raise typer.Exit(1)


@app.command()
def sign(
    body_file: Annotated[Path, typer.Option("--body-file", "-b", help="File holding the exact request body.")],
    submission_id: Annotated[str, typer.Option("--submission-id", "-i", help="Submission id header value.")],
    secret: Annotated[
        str,
        typer.Option("--secret", envvar="BOOKINGDESK_SECURITY__WEBHOOK_SECRET", help="Webhook secret."),
    ],
) -> None:
    """Print the signature header value for a payload (manual test deliveries)."""
    from bookingdesk.core.security.signature import sign_payload

    if not body_file.exists():
        _error("File Not Found", str(body_file))
        raise typer.Exit(1)
    typer.echo(sign_payload(secret, submission_id, body_file.read_bytes()))


@app.command("purge-state")
def purge_state(settings: SettingsOption) -> None:
    """Delete expired entries from the SQL state store."""
    from bookingdesk.core.state.sql_store import SQLStateStore

    config = _load_or_exit(settings)
    if config.state.backend != "sql":
        typer.secho("State backend is in-memory; nothing to purge.", fg=typer.colors.YELLOW)
        return

    with SQLStateStore.from_url(config.state.url) as store:
        removed = store.purge_expired()
    typer.echo(f"Purged {removed} expired entries")
