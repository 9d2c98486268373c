"""The authentication engine: login, callback, refresh, and logout.

:class:`AuthEngine` owns the in-memory :class:`~oidcflow.models.Session` and
the single in-flight :class:`~oidcflow.models.PendingLogin`. It delegates
randomness to :mod:`oidcflow.pkce`, back-channel HTTP to
:class:`~oidcflow.client.ProviderClient`, and persistence to a
:class:`~oidcflow.credential_store.CredentialStore`.

State machine::

    unauthenticated --begin_login--> login_pending --handle_callback--> authenticated
                                          |                                |
                                          +--------- failure ----> error   |
    (any state) --logout--> unauthenticated  <-----------------------------+

Expiry is evaluated lazily: :meth:`AuthEngine.is_authenticated` compares the
stored ``expires_at`` with the clock on every call. No timers or background
tasks run.

Only one login can be in flight. A second :meth:`AuthEngine.begin_login`
replaces the first attempt's state and verifier, so a callback for the first
attempt fails with a state mismatch.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

from oidcflow import pkce
from oidcflow.callback import parse_callback
from oidcflow.client import ProviderClient
from oidcflow.credential_store import CredentialStore
from oidcflow.exceptions import (
    AuthError,
    CsrfMismatchError,
    MissingVerifierError,
    TokenExchangeError,
)
from oidcflow.models import (
    AuthorizationRequest,
    AuthState,
    Clock,
    LogoutRedirect,
    OidcConfig,
    PendingLogin,
    Session,
    TokenResponse,
    UserProfile,
    utc_now,
)

logger = logging.getLogger(__name__)


class AuthEngine:
    """Authorization Code + PKCE flow and session lifecycle for one user.

    Instances are independent; construct one per session with its own
    configuration and store.

    Args:
        config: Provider and client settings.
        store: Persistence for the session snapshot.
        client: Back-channel client. Defaults to a :class:`ProviderClient`
            built from *config*.
        clock: Returns the current timezone-aware instant.

    Example::

        engine = AuthEngine(config, FileCredentialStore())
        request = engine.begin_login()
        # ... browser visits request.url and comes back with state and code ...
        await engine.handle_callback(state, code)
        token = await engine.get_access_token()
    """

    def __init__(
        self,
        config: OidcConfig,
        store: CredentialStore,
        *,
        client: Optional[ProviderClient] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._client = client or ProviderClient(config)
        self._clock = clock or utc_now
        self._pending: Optional[PendingLogin] = None
        self._last_error: Optional[AuthError] = None

        restored = store.load()
        if restored is not None and restored.is_active(self._clock()):
            self._session: Optional[Session] = restored
            self._state = AuthState.AUTHENTICATED
            logger.debug("Restored session from store")
        else:
            self._session = None
            self._state = AuthState.UNAUTHENTICATED

    # ------------------------------------------------------------------ #
    # Read accessors
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> OidcConfig:
        return self._config

    @property
    def state(self) -> AuthState:
        """Current state; an expired ``authenticated`` session reads as ``unauthenticated``."""
        if self._state == AuthState.AUTHENTICATED and not self.is_authenticated():
            return AuthState.UNAUTHENTICATED
        return self._state

    @property
    def session(self) -> Optional[Session]:
        """A copy of the current session, or ``None``."""
        return self._session.model_copy(deep=True) if self._session else None

    @property
    def user(self) -> Optional[UserProfile]:
        return self._session.user if self._session else None

    @property
    def access_token(self) -> Optional[str]:
        """The access token while authenticated, else ``None``."""
        if not self.is_authenticated():
            return None
        assert self._session is not None
        return self._session.access_token

    @property
    def last_error(self) -> Optional[AuthError]:
        """The most recent failure from a callback or refresh."""
        return self._last_error

    def is_authenticated(self) -> bool:
        """Return ``True`` if a session is held and its expiry is in the future.

        Re-derived from ``expires_at`` on every call.
        """
        return (
            self._state == AuthState.AUTHENTICATED
            and self._session is not None
            and self._session.is_active(self._clock())
        )

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def begin_login(self) -> AuthorizationRequest:
        """Start a login and return the authorization URL to navigate to.

        Any previous pending login is discarded.

        Raises:
            RandomnessUnavailableError: If no secure random source exists.
        """
        state = pkce.generate_state()
        verifier = pkce.generate_code_verifier()
        challenge = pkce.derive_code_challenge(verifier)

        if self._pending is not None:
            logger.debug("Discarding previous pending login")
        self._pending = PendingLogin(
            state=state, code_verifier=verifier, created_at=self._clock()
        )
        self._state = AuthState.LOGIN_PENDING

        params = {
            "response_type": "code",
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "scope": " ".join(self._config.scopes),
            "state": state,
            "code_challenge": challenge,
            "code_challenge_method": pkce.CODE_CHALLENGE_METHOD,
        }
        url = f"{self._config.authorization_endpoint}?{urlencode(params)}"
        logger.info("Login started for client %s", self._config.client_id)
        return AuthorizationRequest(
            url=url,
            state=state,
            code_challenge=challenge,
            code_challenge_method=pkce.CODE_CHALLENGE_METHOD,
        )

    async def handle_callback(self, received_state: str, code: str) -> Session:
        """Validate the provider callback and exchange the code for a session.

        The pending login is consumed whatever the outcome, so a replayed
        callback or a retry with the same code always fails.

        Args:
            received_state: The ``state`` query parameter of the redirect.
            code: The ``code`` query parameter of the redirect.

        Returns:
            A copy of the new session.

        Raises:
            MissingVerifierError: If no login is pending.
            CsrfMismatchError: If *received_state* differs from the issued state.
            TokenExchangeError: If the token or userinfo request fails.
        """
        pending, self._pending = self._pending, None
        try:
            if pending is None:
                raise MissingVerifierError("No login is pending; start a new login")
            if not secrets.compare_digest(
                received_state.encode("utf-8"), pending.state.encode("utf-8")
            ):
                raise CsrfMismatchError("Callback state does not match the pending login")

            tokens = await self._client.exchange_code(code, pending.code_verifier)
            try:
                user = await self._client.fetch_userinfo(tokens.access_token)
                session = Session(
                    authenticated=True,
                    user=user,
                    access_token=tokens.access_token,
                    id_token=tokens.id_token,
                    refresh_token=tokens.refresh_token,
                    expires_at=self._expiry(tokens),
                )
            except (AttributeError, TypeError, ValueError, OverflowError) as exc:
                raise TokenExchangeError(
                    "Token response could not be turned into a session"
                ) from exc
        except AuthError as exc:
            self._fail(exc)
            raise

        self._commit(session)
        logger.info("Login completed for subject %s", user.sub)
        return session.model_copy(deep=True)

    async def handle_callback_url(self, url_or_query: str) -> Session:
        """Parse a provider redirect and run :meth:`handle_callback`.

        A redirect without ``code``/``state`` (or carrying a provider
        ``error``) also ends the pending login.

        Raises:
            MissingCallbackParamsError: If ``code`` or ``state`` is absent.
            AuthorizationDeniedError: If the provider returned an error.
        """
        try:
            params = parse_callback(url_or_query)
        except AuthError as exc:
            self._pending = None
            self._fail(exc)
            raise
        return await self.handle_callback(params.state, params.code)

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    async def refresh_access_token(self) -> bool:
        """Replace the access token using the refresh token.

        Returns:
            ``False`` without any request if no refresh token is held, or if
            the refresh failed (see :attr:`last_error`); the existing session
            is left untouched in both cases. ``True`` on success.
        """
        if self._session is None or not self._session.refresh_token:
            return False

        try:
            tokens = await self._client.refresh(self._session.refresh_token)
            try:
                update = {
                    "authenticated": True,
                    "access_token": tokens.access_token,
                    "expires_at": self._expiry(tokens),
                }
            except (AttributeError, TypeError, ValueError, OverflowError) as exc:
                raise TokenExchangeError(
                    "Token refresh returned an unusable response"
                ) from exc
        except TokenExchangeError as exc:
            self._last_error = exc
            logger.warning("Token refresh failed: %s", exc)
            return False

        # Providers may omit rotation; keep the tokens we have.
        if tokens.refresh_token:
            update["refresh_token"] = tokens.refresh_token
        if tokens.id_token:
            update["id_token"] = tokens.id_token
        self._commit(self._session.model_copy(update=update))
        logger.info("Access token refreshed")
        return True

    async def get_access_token(self, leeway: float = 30.0) -> Optional[str]:
        """Return an access token valid for at least *leeway* seconds.

        Refreshes once if the current token is missing, expired, or about to
        expire and a refresh token is held.

        Returns:
            The access token, or ``None`` if none can be provided.
        """
        if self._session is not None and self._state == AuthState.AUTHENTICATED:
            margin = self._clock() + timedelta(seconds=leeway)
            if self._session.is_active(margin):
                return self._session.access_token

        await self.refresh_access_token()
        return self.access_token

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def logout(self) -> Optional[LogoutRedirect]:
        """End the session locally, then build the provider signoff URL.

        Local state and the stored snapshot are cleared before anything else,
        so the session is gone even if the returned redirect is never
        followed.

        Returns:
            The signoff redirect if an ID token was held, else ``None``
            (local-only logout).
        """
        id_token = self._session.id_token if self._session else None

        self._session = None
        self._pending = None
        self._state = AuthState.UNAUTHENTICATED
        self._store.clear()
        logger.info("Logged out")

        if not id_token:
            return None
        params = {
            "id_token_hint": id_token,
            "post_logout_redirect_uri": self._config.logout_redirect_uri,
        }
        return LogoutRedirect(
            url=f"{self._config.logout_endpoint}?{urlencode(params)}",
            id_token_hint=id_token,
            post_logout_redirect_uri=self._config.logout_redirect_uri,
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _expiry(self, tokens: TokenResponse) -> datetime:
        return self._clock() + timedelta(seconds=tokens.expires_in)

    def _commit(self, session: Session) -> None:
        self._session = session
        self._state = AuthState.AUTHENTICATED
        self._last_error = None
        if not self._store.save(session):
            logger.warning("Session is active but could not be persisted")

    def _fail(self, exc: AuthError) -> None:
        self._state = AuthState.ERROR
        self._last_error = exc
        logger.warning("Login failed (%s): %s", exc.kind.value, exc)
