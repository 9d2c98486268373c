"""Session commands -- sign in, inspect, refresh, and sign out.

These commands are the surrounding application around
:class:`~oidcflow.engine.AuthEngine`: they resolve configuration, send the
browser to the provider, feed the redirect back into the engine, and turn
:class:`~oidcflow.exceptions.AuthError` failures into a short, non-sensitive
message plus an exit code.

Typical workflow::

    oidcflow config set issuer https://auth.example.com/as
    oidcflow config set client_id my-client
    oidcflow login        # opens the browser, waits on the redirect URI
    oidcflow token        # prints a valid access token (refreshing if needed)
    oidcflow logout
"""

from __future__ import annotations

import asyncio
import webbrowser
from typing import Any, NoReturn

import typer

from oidcflow.callback import wait_for_callback
from oidcflow.config import resolve_config
from oidcflow.credential_store import FileCredentialStore
from oidcflow.engine import AuthEngine
from oidcflow.exceptions import AuthError, OidcflowError
from oidcflow.exit_codes import EXIT_AUTH_FAILURE
from oidcflow.output import debug, error, format_data, info, print_data, success, suggest


def build_engine(ctx: typer.Context) -> AuthEngine:
    """Construct an engine from the root callback's options."""
    obj: dict[str, Any] = ctx.obj or {}
    config = resolve_config(
        obj.get("config_file"),
        issuer=obj.get("issuer"),
        client_id=obj.get("client_id"),
    )
    return AuthEngine(config, FileCredentialStore(obj.get("session_file")))


def _fail(exc: OidcflowError) -> NoReturn:
    """Report *exc* to the user and exit with its code."""
    if isinstance(exc, AuthError):
        error(exc.user_message)
        debug(f"{exc.kind.value}: {exc}")
        suggest(exc.recovery)
    else:
        error(str(exc))
    raise typer.Exit(code=exc.exit_code)


def login_command(
    ctx: typer.Context,
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening it."
    ),
    paste: bool = typer.Option(
        False,
        "--paste",
        help="Paste the redirect URL instead of listening on the redirect URI.",
    ),
    timeout: float = typer.Option(
        120.0, "--timeout", help="Seconds to wait for the provider redirect."
    ),
) -> None:
    """Sign in with the Authorization Code flow and PKCE.

    Example::

        oidcflow login
        oidcflow login --paste --no-browser
    """
    try:
        engine = build_engine(ctx)
        request = engine.begin_login()

        if no_browser or paste:
            info("Open this URL in a browser to sign in:")
            print_data(request.url)
        if paste:
            if not no_browser:
                webbrowser.open(request.url)
            callback_url = typer.prompt("Paste the full redirect URL")
        else:
            callback_url = wait_for_callback(
                engine.config.redirect_uri,
                auth_url=None if no_browser else request.url,
                timeout=timeout,
            )

        session = asyncio.run(engine.handle_callback_url(callback_url))
    except OidcflowError as exc:
        _fail(exc)

    user = session.user
    display = (user.name or user.email or user.sub) if user else "unknown user"
    success(f"Signed in as {display}.")


def status_command(ctx: typer.Context) -> None:
    """Show whether a session is held and when it expires."""
    try:
        engine = build_engine(ctx)
    except OidcflowError as exc:
        _fail(exc)

    session = engine.session
    user = session.user if session else None
    format_data(
        {
            "state": engine.state.value,
            "authenticated": engine.is_authenticated(),
            "subject": user.sub if user else None,
            "name": user.name if user else None,
            "email": user.email if user else None,
            "expires_at": (
                session.expires_at.isoformat() if session and session.expires_at else None
            ),
            "refreshable": bool(session and session.refresh_token),
        }
    )


def token_command(
    ctx: typer.Context,
    leeway: float = typer.Option(
        30.0, "--leeway", help="Refresh if the token expires within this many seconds."
    ),
) -> None:
    """Print a valid access token, refreshing it first if needed."""
    try:
        engine = build_engine(ctx)
        token = asyncio.run(engine.get_access_token(leeway=leeway))
    except OidcflowError as exc:
        _fail(exc)

    if token is None:
        error("Not signed in.")
        suggest("Sign in: oidcflow login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    print_data(token)


def refresh_command(ctx: typer.Context) -> None:
    """Exchange the refresh token for a new access token."""
    try:
        engine = build_engine(ctx)
        refreshed = asyncio.run(engine.refresh_access_token())
    except OidcflowError as exc:
        _fail(exc)

    if refreshed:
        success("Access token refreshed.")
        return
    if engine.last_error is not None:
        _fail(engine.last_error)
    error("No refresh token is held.")
    suggest("Sign in: oidcflow login")
    raise typer.Exit(code=EXIT_AUTH_FAILURE)


def logout_command(
    ctx: typer.Context,
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the provider signoff URL instead of opening it."
    ),
) -> None:
    """Sign out locally, then at the provider if an ID token was held."""
    try:
        engine = build_engine(ctx)
    except OidcflowError as exc:
        _fail(exc)

    redirect = engine.logout()
    success("Signed out.")
    if redirect is None:
        return
    if no_browser:
        info("Open this URL to end the provider session:")
        print_data(redirect.url)
    else:
        webbrowser.open(redirect.url)
