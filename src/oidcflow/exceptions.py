"""Exception hierarchy for oidcflow.

All exceptions inherit from :class:`OidcflowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`oidcflow.exit_codes`.
The top-level error handler in :func:`oidcflow.app.main` catches
``OidcflowError`` and exits with the appropriate code.

Authentication failures share the :class:`AuthError` base. Each subclass
names its :class:`AuthErrorKind`, the recovery action the surrounding
application is expected to take, and a cautious ``user_message`` that is
safe to show to an end user (it never contains tokens, codes, or the PKCE
verifier).

Subclass hierarchy::

    OidcflowError (exit 1)
    +-- InvalidUsageError              (exit 2)
    +-- ConfigError                    (exit 1)
    +-- AuthError                      (exit 3)
        +-- CsrfMismatchError
        +-- MissingVerifierError
        +-- MissingCallbackParamsError
        +-- AuthorizationDeniedError
        +-- TokenExchangeError         (exit 5, or 6 for network failures)
        +-- RandomnessUnavailableError (exit 1)
"""

from __future__ import annotations

import enum

from oidcflow.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PROVIDER_ERROR,
)


class OidcflowError(Exception):
    """Base exception for all oidcflow errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OidcflowError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(OidcflowError):
    """Raised for configuration problems (missing issuer, invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthErrorKind(str, enum.Enum):
    """Classification of authentication failures."""

    CSRF_MISMATCH = "csrf_mismatch"
    MISSING_VERIFIER = "missing_verifier"
    MISSING_CALLBACK_PARAMS = "missing_callback_params"
    AUTHORIZATION_DENIED = "authorization_denied"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    RANDOMNESS_UNAVAILABLE = "randomness_unavailable"


class AuthError(OidcflowError):
    """Raised when an authentication step fails.

    Attributes:
        kind: The :class:`AuthErrorKind` of this failure.
        recovery: What the caller should do next.
        user_message: Text that is safe to display to the end user.
    """

    exit_code = EXIT_AUTH_FAILURE
    kind: AuthErrorKind
    recovery = "Start a new login."
    user_message = "Authentication failed. Please try again."


class CsrfMismatchError(AuthError):
    """The callback ``state`` does not match the one issued by ``begin_login``.

    Always fatal to the current attempt; the callback may be attacker-supplied.
    """

    kind = AuthErrorKind.CSRF_MISMATCH
    user_message = "The sign-in response could not be verified. Please sign in again."


class MissingVerifierError(AuthError):
    """No pending login (and therefore no PKCE verifier) is held.

    Happens when the engine restarted mid-flow, when a second login replaced
    the first, or when a callback is replayed.
    """

    kind = AuthErrorKind.MISSING_VERIFIER
    user_message = "No sign-in is in progress. Please sign in again."


class MissingCallbackParamsError(AuthError):
    """The provider redirect did not carry both ``code`` and ``state``."""

    kind = AuthErrorKind.MISSING_CALLBACK_PARAMS
    recovery = "Show the error and return the user to the login entry point."
    user_message = "The sign-in response was incomplete. Please sign in again."


class AuthorizationDeniedError(AuthError):
    """The provider redirected back with an ``error`` parameter.

    Attributes:
        error: The RFC 6749 error code (e.g. ``access_denied``).
    """

    kind = AuthErrorKind.AUTHORIZATION_DENIED
    user_message = "Sign-in was cancelled or denied."

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.error = error


class TokenExchangeError(AuthError):
    """The token or userinfo endpoint failed or returned an unusable body.

    Authorization codes are single-use, so a failed code exchange is never
    retried; recover with a fresh login. For a failed refresh the existing
    session is left in place.

    Attributes:
        status_code: HTTP status of the failing response, if any.
        network: ``True`` for timeouts and transport failures.
    """

    exit_code = EXIT_PROVIDER_ERROR
    kind = AuthErrorKind.TOKEN_EXCHANGE_FAILED
    user_message = "Could not complete sign-in with the identity provider."

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        network: bool = False,
    ):
        super().__init__(
            message, exit_code=EXIT_CONNECTION_ERROR if network else None
        )
        self.status_code = status_code
        self.network = network


class RandomnessUnavailableError(AuthError):
    """The operating system CSPRNG could not be used. Fatal, never retried."""

    exit_code = EXIT_GENERIC_FAILURE
    kind = AuthErrorKind.RANDOMNESS_UNAVAILABLE
    recovery = "Fix the host configuration; no secure random source is available."
    user_message = "Sign-in is unavailable on this system."
