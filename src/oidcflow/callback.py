"""The callback boundary between the provider redirect and the engine.

:func:`parse_callback` turns the redirect the provider sends back (a full URL
or just its query string) into :class:`~oidcflow.models.CallbackParams`,
classifying provider errors and missing parameters.

:func:`wait_for_callback` is the loopback receiver used by the CLI: it
opens the authorization URL in the browser and serves exactly one request on
the host, port, and path of the configured ``redirect_uri``.
"""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from oidcflow.exceptions import (
    AuthorizationDeniedError,
    InvalidUsageError,
    MissingCallbackParamsError,
)
from oidcflow.models import CallbackParams

logger = logging.getLogger(__name__)

_LOOPBACK_HOSTS = ("127.0.0.1", "localhost")


def parse_callback(url_or_query: str) -> CallbackParams:
    """Extract ``code`` and ``state`` from a provider redirect.

    Args:
        url_or_query: The full redirect URL, or only its query string (with
            or without the leading ``?``).

    Returns:
        The callback parameters.

    Raises:
        AuthorizationDeniedError: If the provider returned an ``error``.
        MissingCallbackParamsError: If ``code`` or ``state`` is absent.
    """
    text = url_or_query.strip()
    # Anything up to the first "?" is the URL, with or without a scheme.
    query = text.partition("?")[2] if "?" in text else text
    query = query.partition("#")[0]
    params = parse_qs(query)

    if "error" in params:
        error = params["error"][0]
        description = params.get("error_description", [""])[0]
        message = f"Authorization failed: {error}"
        if description:
            message += f" - {description}"
        raise AuthorizationDeniedError(message, error=error)

    code = params.get("code", [""])[0]
    state = params.get("state", [""])[0]
    if not code or not state:
        missing = [name for name, value in (("code", code), ("state", state)) if not value]
        raise MissingCallbackParamsError(
            f"Callback is missing required parameters: {', '.join(missing)}"
        )
    return CallbackParams(code=code, state=state)


def wait_for_callback(
    redirect_uri: str,
    auth_url: Optional[str] = None,
    timeout: float = 120.0,
) -> str:
    """Serve one request on the loopback ``redirect_uri`` and return its URL.

    The browser is opened in a daemon thread to avoid blocking. The server
    waits up to *timeout* seconds for the provider to redirect back.

    Args:
        redirect_uri: Must be an ``http`` URL on a loopback host with an
            explicit port.
        auth_url: If given, opened in the user's browser.
        timeout: Seconds to wait for the redirect.

    Returns:
        The full callback URL, suitable for :func:`parse_callback`.

    Raises:
        InvalidUsageError: If *redirect_uri* is not a loopback http URL.
        MissingCallbackParamsError: If no redirect arrived in time.
    """
    parsed = urlparse(redirect_uri)
    if parsed.scheme != "http" or parsed.hostname not in _LOOPBACK_HOSTS or not parsed.port:
        raise InvalidUsageError(
            f"Cannot listen on redirect URI {redirect_uri}; "
            "use a loopback http URL with a port, or paste the redirect URL instead"
        )
    expected_path = parsed.path or "/"
    result: dict[str, Optional[str]] = {"path": None}

    class CallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            if urlparse(self.path).path != expected_path:
                self.send_response(404)
                self.end_headers()
                return

            result["path"] = self.path
            body = (
                "Sign-in response received. You can close this window "
                "and return to the terminal."
            )
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.end_headers()
            self.wfile.write(f"<html><body><h2>{body}</h2></body></html>".encode("utf-8"))

        def log_message(self, format: str, *args: Any) -> None:
            # The query string carries the authorization code.
            pass

    server = HTTPServer((parsed.hostname, parsed.port), CallbackHandler)
    server.timeout = timeout

    if auth_url:
        threading.Thread(target=webbrowser.open, args=(auth_url,), daemon=True).start()

    logger.debug("Waiting for callback on %s", redirect_uri)
    deadline = time.monotonic() + timeout
    try:
        server.handle_request()
        # A stray request (favicon etc.) may arrive first; allow one more
        # within what is left of the timeout.
        remaining = deadline - time.monotonic()
        if result["path"] is None and remaining > 0:
            server.timeout = remaining
            server.handle_request()
    finally:
        server.server_close()

    if result["path"] is None:
        raise MissingCallbackParamsError("No callback received before the timeout")
    return f"{parsed.scheme}://{parsed.netloc}{result['path']}"
