"""oidcflow -- OpenID Connect Authorization Code + PKCE session engine.

This package authenticates an end user against a remote OpenID Connect
provider using the Authorization Code flow with PKCE (:rfc:`7636`) and then
manages the resulting token set for the lifetime of a session: persistence,
lazy expiry, refresh, and logout.

Typical usage::

    from oidcflow import AuthEngine, FileCredentialStore, OidcConfig

    engine = AuthEngine(OidcConfig(issuer=..., client_id=...), FileCredentialStore())
    request = engine.begin_login()           # send the browser to request.url
    session = await engine.handle_callback(state, code)
    assert engine.is_authenticated()

Modules:
    engine: The :class:`AuthEngine` state machine.
    pkce: State, verifier, and challenge generation.
    credential_store: Session snapshot persistence.
    client: Token and userinfo endpoint calls.
    callback: Redirect parsing and the loopback callback server.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"

from oidcflow.credential_store import (
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)
from oidcflow.engine import AuthEngine
from oidcflow.models import AuthState, OidcConfig, Session, UserProfile

__all__ = [
    "AuthEngine",
    "AuthState",
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "OidcConfig",
    "Session",
    "UserProfile",
    "__version__",
]
