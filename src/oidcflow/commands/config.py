"""Config commands -- view, modify, and check the provider configuration.

Provides the ``oidcflow config`` sub-command group. Settings are persisted
in ``config.json`` in the oidcflow config directory (or the file given with
``--config``) and can be overridden per invocation with ``OIDCFLOW_*``
environment variables or the root ``--issuer``/``--client-id`` options.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer

from oidcflow.exceptions import ConfigError, OidcflowError
from oidcflow.exit_codes import EXIT_INVALID_USAGE
from oidcflow.output import error, format_data, info, success, suggest


config_app = typer.Typer(no_args_is_help=True)


def _config_file(ctx: typer.Context) -> Optional[Path]:
    obj: dict[str, Any] = ctx.obj or {}
    return obj.get("config_file")


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration and the derived endpoints.

    Example::

        oidcflow config show
        oidcflow --json config show
    """
    from oidcflow.config import default_config_path, resolve_config

    obj: dict[str, Any] = ctx.obj or {}
    try:
        config = resolve_config(
            _config_file(ctx),
            issuer=obj.get("issuer"),
            client_id=obj.get("client_id"),
        )
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config file: {_config_file(ctx) or default_config_path()}")
    data = config.model_dump(mode="json")
    data["endpoints"] = {
        "authorization": config.authorization_endpoint,
        "token": config.token_endpoint,
        "userinfo": config.userinfo_endpoint,
        "logout": config.logout_endpoint,
    }
    format_data(data)


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(help="Config key, e.g. 'issuer' or 'scopes'."),
    value: str = typer.Argument(help="Value to set. Scopes are space or comma separated."),
) -> None:
    """Set a configuration value.

    Example::

        oidcflow config set issuer https://auth.pingone.com/ENV_ID/as
        oidcflow config set scopes "openid profile email offline_access"
    """
    from oidcflow.config import update_config_value

    try:
        path = update_config_value(key, value, _config_file(ctx))
    except OidcflowError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    success(f"Set {key} in {path}")


@config_app.command("check")
def config_check(ctx: typer.Context) -> None:
    """Validate the effective configuration.

    Exits non-zero and lists every problem found (missing values,
    placeholders, non-http URLs, missing ``openid`` scope).
    """
    from oidcflow.config import resolve_config

    obj: dict[str, Any] = ctx.obj or {}
    try:
        config = resolve_config(
            _config_file(ctx),
            issuer=obj.get("issuer"),
            client_id=obj.get("client_id"),
        )
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    problems = config.validate_config()
    if problems:
        for problem in problems:
            error(problem)
        raise typer.Exit(code=ConfigError.exit_code)
    success("Configuration is valid.")
    suggest("Sign in: oidcflow login")
