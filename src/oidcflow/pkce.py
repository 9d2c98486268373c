"""PKCE (Proof Key for Code Exchange) and CSRF state generation.

Implements the client side of :rfc:`7636` with the ``S256`` challenge
method:

- ``code_verifier``: high-entropy random bytes, base64url encoded without
  padding (43-128 characters from the unreserved URI alphabet).
- ``code_challenge``: ``BASE64URL(SHA256(ASCII(code_verifier)))`` without
  padding.

All randomness comes from :mod:`secrets` (the OS CSPRNG). If the OS cannot
provide one, :class:`~oidcflow.exceptions.RandomnessUnavailableError` is
raised; there is no weaker fallback.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from oidcflow.exceptions import RandomnessUnavailableError

CODE_CHALLENGE_METHOD = "S256"
"""The only challenge method this client sends."""

STATE_BYTES = 32
VERIFIER_MIN_BYTES = 32
VERIFIER_MAX_BYTES = 96


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _random_bytes(num_bytes: int) -> bytes:
    try:
        return secrets.token_bytes(num_bytes)
    except (NotImplementedError, OSError) as exc:
        raise RandomnessUnavailableError(
            "No cryptographically secure random source is available"
        ) from exc


def generate_state() -> str:
    """Return an opaque CSRF token for the OAuth ``state`` parameter.

    256 bits of randomness, 43 URL-safe characters.
    """
    return _b64url(_random_bytes(STATE_BYTES))


def generate_code_verifier(num_bytes: int = VERIFIER_MIN_BYTES) -> str:
    """Return a new PKCE ``code_verifier``.

    Args:
        num_bytes: Random bytes to encode. 32 bytes give the minimum
            43-character verifier; 96 bytes give the maximum of 128.

    Raises:
        ValueError: If *num_bytes* falls outside ``[32, 96]``.
        RandomnessUnavailableError: If the OS CSPRNG is unavailable.
    """
    if not VERIFIER_MIN_BYTES <= num_bytes <= VERIFIER_MAX_BYTES:
        raise ValueError(
            f"num_bytes must be between {VERIFIER_MIN_BYTES} and "
            f"{VERIFIER_MAX_BYTES}, got {num_bytes}"
        )
    return _b64url(_random_bytes(num_bytes))


def derive_code_challenge(verifier: str) -> str:
    """Compute the ``S256`` code challenge for *verifier*.

    Args:
        verifier: The code verifier string.

    Returns:
        ``BASE64URL(SHA256(verifier))`` without padding (43 characters).
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    verifier = generate_code_verifier()
    return verifier, derive_code_challenge(verifier)
