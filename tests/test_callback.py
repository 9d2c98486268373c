"""Tests for parsing the provider redirect and the loopback listener."""

from __future__ import annotations

import socket
import time
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from oidcflow.callback import parse_callback, wait_for_callback
from oidcflow.exceptions import (
    AuthErrorKind,
    AuthorizationDeniedError,
    InvalidUsageError,
    MissingCallbackParamsError,
)


class TestParseCallback:
    def test_full_url(self) -> None:
        params = parse_callback("http://127.0.0.1:8765/callback?code=abc123&state=s1")
        assert params.code == "abc123"
        assert params.state == "s1"

    @pytest.mark.parametrize("query", ["code=abc123&state=s1", "?code=abc123&state=s1"])
    def test_query_string(self, query: str) -> None:
        params = parse_callback(query)
        assert (params.code, params.state) == ("abc123", "s1")

    def test_url_without_scheme(self) -> None:
        params = parse_callback("127.0.0.1:8765/callback?code=abc123&state=s1")
        assert (params.code, params.state) == ("abc123", "s1")

    def test_fragment_is_ignored(self) -> None:
        params = parse_callback("http://127.0.0.1:8765/callback?code=abc123&state=s1#done")
        assert params.state == "s1"

    def test_surrounding_whitespace(self) -> None:
        params = parse_callback("  https://app.example.com/cb?state=s1&code=abc123\n")
        assert params.code == "abc123"

    def test_url_encoded_values(self) -> None:
        params = parse_callback("code=a%2Fb&state=s%3D1")
        assert params.code == "a/b"
        assert params.state == "s=1"

    def test_missing_code(self) -> None:
        with pytest.raises(MissingCallbackParamsError, match="code") as exc_info:
            parse_callback("state=s1")
        assert exc_info.value.kind is AuthErrorKind.MISSING_CALLBACK_PARAMS

    def test_missing_both(self) -> None:
        with pytest.raises(MissingCallbackParamsError, match="code, state"):
            parse_callback("http://127.0.0.1:8765/callback")

    def test_empty_values(self) -> None:
        with pytest.raises(MissingCallbackParamsError):
            parse_callback("code=&state=")

    def test_provider_error(self) -> None:
        with pytest.raises(AuthorizationDeniedError) as exc_info:
            parse_callback(
                "error=access_denied&error_description=User+cancelled&state=s1"
            )
        exc = exc_info.value
        assert exc.error == "access_denied"
        assert exc.kind is AuthErrorKind.AUTHORIZATION_DENIED
        assert str(exc) == "Authorization failed: access_denied - User cancelled"

    def test_error_takes_precedence_over_code(self) -> None:
        with pytest.raises(AuthorizationDeniedError):
            parse_callback("error=server_error&code=abc123&state=s1")


class TestWaitForCallbackValidation:
    @pytest.mark.parametrize(
        "redirect_uri",
        [
            "https://127.0.0.1:8765/callback",
            "http://app.example.com:8765/callback",
            "http://127.0.0.1/callback",
            "myapp://callback",
        ],
    )
    def test_rejects_non_loopback(self, redirect_uri: str) -> None:
        with pytest.raises(InvalidUsageError):
            wait_for_callback(redirect_uri, timeout=0.1)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _get_when_listening(url: str) -> httpx.Response:
    for _ in range(100):
        try:
            return httpx.get(url, timeout=2.0, trust_env=False)
        except httpx.ConnectError:
            time.sleep(0.02)
    raise AssertionError(f"nothing listening on {url}")


class TestWaitForCallback:
    def test_returns_callback_after_stray_request(self) -> None:
        base = f"http://127.0.0.1:{_free_port()}"
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(wait_for_callback, f"{base}/callback", None, 5.0)
            assert _get_when_listening(f"{base}/favicon.ico").status_code == 404
            response = httpx.get(
                f"{base}/callback?code=abc123&state=s1", timeout=2.0, trust_env=False
            )
            url = future.result(timeout=5.0)

        assert response.status_code == 200
        params = parse_callback(url)
        assert (params.code, params.state) == ("abc123", "s1")

    def test_stray_request_does_not_extend_timeout(self) -> None:
        base = f"http://127.0.0.1:{_free_port()}"
        started = time.monotonic()
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(wait_for_callback, f"{base}/callback", None, 1.0)
            _get_when_listening(f"{base}/favicon.ico")
            with pytest.raises(MissingCallbackParamsError):
                future.result(timeout=5.0)
        assert time.monotonic() - started < 1.7
