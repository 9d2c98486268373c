"""Canonical Pydantic models shared across all oidcflow modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration** -- :class:`OidcConfig`, serialised as JSON in the user's
config directory by :mod:`oidcflow.config`.

**Session state** -- :class:`Session`, :class:`UserProfile`, and
:class:`PendingLogin`, owned by :class:`~oidcflow.engine.AuthEngine`.
``Session`` is also the record persisted by
:mod:`oidcflow.credential_store`.

**Protocol messages** -- :class:`TokenResponse`, :class:`CallbackParams`,
:class:`AuthorizationRequest`, and :class:`LogoutRedirect`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


Clock = Callable[[], datetime]
"""A zero-argument callable returning the current timezone-aware instant."""

MAX_EXPIRES_IN = 10 * 365 * 24 * 3600
"""Longest token lifetime accepted from a provider, in seconds (ten years)."""


def utc_now() -> datetime:
    """Default :data:`Clock`."""
    return datetime.now(timezone.utc)


# --- Configuration ---


class OidcConfig(BaseModel):
    """Identity provider and client registration settings.

    The four provider endpoints are derived from :attr:`issuer`.

    Example::

        OidcConfig(
            issuer="https://auth.pingone.com/ENV_ID/as",
            client_id="my-client",
        )
    """

    issuer: str = Field(description="Issuer base URL, e.g. https://auth.example.com/as")
    client_id: str = Field(description="Client identifier registered with the provider")
    redirect_uri: str = Field(
        default="http://127.0.0.1:8765/callback",
        description="Where the provider sends the authorization response",
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "profile", "email"],
        description="Requested scopes, joined with spaces on the wire",
    )
    logout_redirect_uri: str = Field(
        default="http://127.0.0.1:8765/",
        description="Where the provider sends the browser after signoff",
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for every provider call"
    )

    @property
    def base_url(self) -> str:
        return self.issuer.rstrip("/")

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.base_url}/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.base_url}/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.base_url}/userinfo"

    @property
    def logout_endpoint(self) -> str:
        return f"{self.base_url}/signoff"

    def validate_config(self) -> list[str]:
        """Check the configuration before use.

        Returns:
            A list of human-readable error messages. An empty list means the
            configuration is usable.
        """
        errors: list[str] = []
        required = {
            "issuer": self.issuer,
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        }
        for name, value in required.items():
            if not value:
                errors.append(f"'{name}' is required")
            elif "your-" in value:
                errors.append(f"'{name}' still holds a placeholder value")

        urls = {
            "issuer": self.issuer,
            "redirect_uri": self.redirect_uri,
            "logout_redirect_uri": self.logout_redirect_uri,
        }
        for name, value in urls.items():
            if value and not value.startswith(("http://", "https://")):
                errors.append(f"'{name}' must be an http(s) URL")

        if "openid" not in self.scopes:
            errors.append("'scopes' must include 'openid'")
        return errors


# --- Session state ---


class UserProfile(BaseModel):
    """Claims returned by the userinfo endpoint.

    Only ``sub`` is required. Every other claim the provider returns is kept
    as an extra field and survives serialisation.
    """

    model_config = ConfigDict(extra="allow")

    sub: str
    name: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
    email_verified: Optional[bool] = None

    def claims(self) -> dict[str, object]:
        """Return all claims that were set, including provider extras."""
        return self.model_dump(exclude_none=True)


class Session(BaseModel):
    """The authenticated state of one user.

    ``authenticated`` is only meaningful together with :attr:`expires_at`:
    readers must go through :meth:`is_active`, which treats an elapsed
    expiry as unauthenticated regardless of the stored flag.
    """

    authenticated: bool = False
    user: Optional[UserProfile] = None
    access_token: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # A naive datetime is treated as UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return True
        return now >= self.expires_at

    def is_active(self, now: datetime) -> bool:
        """Return ``True`` if the session may be used at instant *now*."""
        return (
            self.authenticated
            and self.access_token is not None
            and not self.is_expired(now)
        )


class PendingLogin(BaseModel):
    """Transient state held between ``begin_login`` and the callback."""

    state: str
    code_verifier: str = Field(repr=False)
    created_at: datetime


class AuthState(str, enum.Enum):
    """States of the :class:`~oidcflow.engine.AuthEngine` state machine."""

    UNAUTHENTICATED = "unauthenticated"
    LOGIN_PENDING = "login_pending"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


# --- Protocol messages ---


class TokenResponse(BaseModel):
    """JSON body returned by the token endpoint for both grants we use."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1, repr=False)
    token_type: str = "Bearer"
    expires_in: int = Field(ge=0, le=MAX_EXPIRES_IN)
    id_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    scope: Optional[str] = None


class CallbackParams(BaseModel):
    """The ``code`` and ``state`` delivered by the provider redirect."""

    code: str = Field(repr=False)
    state: str


class AuthorizationRequest(BaseModel):
    """Everything the navigation layer needs to send the browser to the provider."""

    url: str
    state: str
    code_challenge: str
    code_challenge_method: str = "S256"


class LogoutRedirect(BaseModel):
    """Provider signoff URL returned by ``logout`` when an ID token was held."""

    url: str
    id_token_hint: str = Field(repr=False)
    post_logout_redirect_uri: str
