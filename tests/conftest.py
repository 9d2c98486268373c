"""Shared test fixtures for oidcflow.

Provides a controllable clock, a provider configuration, an in-memory
credential store, an isolated XDG environment, and a scripted identity
provider built on :class:`httpx.MockTransport`.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterator, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from oidcflow.client import ProviderClient
from oidcflow.credential_store import MemoryCredentialStore
from oidcflow.engine import AuthEngine
from oidcflow.models import OidcConfig
from oidcflow.output import reset_output


ISSUER = "https://auth.example.com/as"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> Iterator[None]:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr; CliRunner
    swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config and store
# ---------------------------------------------------------------------------


@pytest.fixture
def oidc_config() -> OidcConfig:
    return OidcConfig(
        issuer=ISSUER,
        client_id="test-client",
        redirect_uri="http://127.0.0.1:8765/callback",
        scopes=["openid", "profile", "email"],
        logout_redirect_uri="http://127.0.0.1:8765/",
        timeout=5.0,
    )


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryCredentialStore:
    return MemoryCredentialStore(clock=clock)


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data directories to *tmp_path*.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path and
    clears all OIDCFLOW_* environment variables.
    """
    monkeypatch.setattr("oidcflow.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in (
        "OIDCFLOW_ISSUER",
        "OIDCFLOW_CLIENT_ID",
        "OIDCFLOW_REDIRECT_URI",
        "OIDCFLOW_SCOPES",
        "OIDCFLOW_LOGOUT_REDIRECT_URI",
        "OIDCFLOW_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Scripted identity provider
# ---------------------------------------------------------------------------


def token_body(
    access_token: str = "T",
    expires_in: int = 3600,
    refresh_token: Optional[str] = "R",
    id_token: Optional[str] = "ID",
) -> dict[str, Any]:
    """Build a token endpoint JSON body."""
    body: dict[str, Any] = {
        "access_token": access_token,
        "token_type": "Bearer",
        "expires_in": expires_in,
        "scope": "openid profile email",
    }
    if refresh_token is not None:
        body["refresh_token"] = refresh_token
    if id_token is not None:
        body["id_token"] = id_token
    return body


class FakeProvider:
    """Records requests and answers token/userinfo calls from queued responses.

    Each queue entry is either a JSON-able dict (200 response), an
    :class:`httpx.Response`, or an exception instance to raise.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_responses: list[Any] = []
        self.userinfo_responses: list[Any] = []

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/token")]

    def form(self, request: httpx.Request) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/token"):
            queue = self.token_responses
        elif request.url.path.endswith("/userinfo"):
            queue = self.userinfo_responses
        else:
            return httpx.Response(404)
        item = queue.pop(0) if queue else httpx.Response(500)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, content=json.dumps(item).encode(),
                              headers={"content-type": "application/json"})


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def provider_client(
    oidc_config: OidcConfig, provider: FakeProvider
) -> AsyncIterator[ProviderClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    yield ProviderClient(oidc_config, http_client=http_client)
    await http_client.aclose()


@pytest.fixture
def make_engine(
    oidc_config: OidcConfig,
    memory_store: MemoryCredentialStore,
    provider_client: ProviderClient,
    clock: FakeClock,
) -> Callable[..., AuthEngine]:
    """Factory for engines sharing the store, provider, and clock."""

    def _make(**kwargs: Any) -> AuthEngine:
        kwargs.setdefault("client", provider_client)
        kwargs.setdefault("clock", clock)
        store = kwargs.pop("store", memory_store)
        return AuthEngine(oidc_config, store, **kwargs)

    return _make
