"""Token and userinfo endpoint calls.

:class:`ProviderClient` performs the three back-channel requests the engine
needs: the authorization code grant, the refresh token grant, and the
userinfo lookup. All use :class:`httpx.AsyncClient` with the configured
timeout.

Every failure -- timeout, transport error, non-2xx status, non-JSON body, or
a body that does not have the expected shape -- is raised as
:class:`~oidcflow.exceptions.TokenExchangeError`. Error messages carry the
HTTP status and the provider's :rfc:`6749` ``error`` code at most; the
authorization code, the PKCE verifier, tokens, and raw response bodies never
appear in them. Nothing here retries: authorization codes are single-use.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from oidcflow.exceptions import TokenExchangeError
from oidcflow.models import OidcConfig, TokenResponse, UserProfile

logger = logging.getLogger(__name__)

_FORM_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/x-www-form-urlencoded",
}


class ProviderClient:
    """Back-channel client for one OpenID Connect provider.

    Args:
        config: Provider configuration (endpoints, client id, timeout).
        http_client: Optional shared :class:`httpx.AsyncClient`. When
            omitted, a short-lived client is opened for each request.
    """

    def __init__(
        self,
        config: OidcConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._http_client = http_client

    async def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            code: The authorization code from the callback.
            code_verifier: The PKCE verifier matching the challenge that was
                sent in the authorization request.

        Raises:
            TokenExchangeError: On any failure.
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": self._config.client_id,
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "code_verifier": code_verifier,
        }
        return await self._token_request(data, "Token exchange")

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Obtain a new access token with a refresh token.

        Raises:
            TokenExchangeError: On any failure.
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": self._config.client_id,
            "refresh_token": refresh_token,
        }
        return await self._token_request(data, "Token refresh")

    async def fetch_userinfo(self, access_token: str) -> UserProfile:
        """Fetch the user's claims from the userinfo endpoint.

        Raises:
            TokenExchangeError: On any failure or if ``sub`` is missing.
        """
        body = await self._send(
            "GET",
            self._config.userinfo_endpoint,
            "Userinfo request",
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {access_token}",
            },
        )
        try:
            return UserProfile.model_validate(body)
        except ValidationError as exc:
            raise TokenExchangeError(
                "Userinfo response is missing required claims"
            ) from exc

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _token_request(self, data: dict[str, str], what: str) -> TokenResponse:
        body = await self._send(
            "POST",
            self._config.token_endpoint,
            what,
            headers=_FORM_HEADERS,
            data=data,
        )
        try:
            return TokenResponse.model_validate(body)
        except ValidationError as exc:
            raise TokenExchangeError(f"{what} returned an invalid token response") from exc

    async def _send(
        self,
        method: str,
        url: str,
        what: str,
        headers: dict[str, str],
        data: Optional[dict[str, str]] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body."""
        logger.debug("%s: %s %s", what, method, url)
        try:
            if self._http_client is not None:
                response = await self._http_client.request(
                    method, url, headers=headers, data=data, timeout=self._config.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                    response = await client.request(method, url, headers=headers, data=data)
        except httpx.TimeoutException as exc:
            raise TokenExchangeError(f"{what} timed out", network=True) from exc
        except httpx.HTTPError as exc:
            raise TokenExchangeError(
                f"{what} failed: {type(exc).__name__}", network=True
            ) from exc

        if not response.is_success:
            message = f"{what} failed with status {response.status_code}"
            oauth_error = _oauth_error_code(response)
            if oauth_error:
                message += f" ({oauth_error})"
            raise TokenExchangeError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise TokenExchangeError(f"{what} returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise TokenExchangeError(f"{what} returned an unexpected JSON body")
        return body


def _oauth_error_code(response: httpx.Response) -> Optional[str]:
    """Return the :rfc:`6749` ``error`` code from an error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None
