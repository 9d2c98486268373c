"""Typer application factory and CLI entry point for oidcflow.

This module wires together the top-level Typer application and registers
the built-in commands (``login``, ``status``, ``token``, ``refresh``,
``logout``, and the ``config`` group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the data directory.

See Also:
    :mod:`oidcflow.config`: Configuration resolution.
    :mod:`oidcflow.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from oidcflow import __version__
from oidcflow.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="oidcflow",
    help="Sign in to an OpenID Connect provider with Authorization Code + PKCE.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from oidcflow.commands.config import config_app  # noqa: E402
from oidcflow.commands.session import (  # noqa: E402
    login_command,
    logout_command,
    refresh_command,
    status_command,
    token_command,
)

app.command("login")(login_command)
app.command("status")(status_command)
app.command("token")(token_command)
app.command("refresh")(refresh_command)
app.command("logout")(logout_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"oidcflow {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    issuer: Optional[str] = typer.Option(
        None, "--issuer", help="Issuer base URL (overrides config and environment)."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="Client identifier (overrides config and environment)."
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
    session_file: Optional[Path] = typer.Option(
        None, "--session-file", help="Where the session snapshot is stored."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~oidcflow.output.OutputManager` and
    logging from CLI flags, and stores the configuration overrides in
    ``ctx.obj`` for the sub-commands.
    """
    from oidcflow.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    ctx.ensure_object(dict)
    ctx.obj["issuer"] = issuer
    ctx.obj["client_id"] = client_id
    ctx.obj["config_file"] = config_file
    ctx.obj["session_file"] = session_file
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from oidcflow.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``oidcflow`` console script.

    Unhandled :class:`~oidcflow.exceptions.OidcflowError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from oidcflow.exceptions import OidcflowError
        from oidcflow.output import error

        if isinstance(exc, OidcflowError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
