"""Shared test fixtures for agencyauth.

Provides an isolated config environment, output state management, a JWT
minting helper, and :class:`FakeAuthServer` -- an in-process stand-in for
the agency-management API served through :class:`httpx.MockTransport`.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
from jose import jwt

from agencyauth.auth.credential_store import MemoryCredentialStore
from agencyauth.auth.tokens import TokenManager
from agencyauth.client.auth_api import AuthAPI
from agencyauth.client.pipeline import AuthPipeline
from agencyauth.models import SessionSettings
from agencyauth.output import OutputFormat, OutputManager, reset_output, set_output


BASE_URL = "http://api.test/api/v1/"
NOW = 1_700_000_000.0
ACCESS_LIFETIME = 15 * 60


def make_token(exp: Optional[float], user_id: int = 1, **claims: Any) -> str:
    """Mint an HS256 JWT. ``exp=None`` leaves the claim out."""
    payload: dict[str, Any] = {"user_id": user_id, "token_type": "access", **claims}
    if exp is not None:
        payload["exp"] = int(exp)
    return jwt.encode(payload, "test-secret", algorithm="HS256")


class FakeClock:
    """Settable replacement for :func:`time.time`."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def redirect_loop(request: httpx.Request) -> httpx.Response:
    """Redirect back to the same URL forever."""
    return httpx.Response(302, headers={"Location": str(request.url)})


def corrupt_gzip(request: httpx.Request) -> httpx.Response:
    """Claim a gzip body but send bytes that do not decompress."""
    return httpx.Response(
        200,
        headers={"Content-Encoding": "gzip", "Content-Type": "application/json"},
        stream=httpx.ByteStream(b"notgzip"),
    )


class FakeAuthServer:
    """Minimal agency-management API behind an :class:`httpx.MockTransport`.

    Auth endpoints behave like the Django backend (SimpleJWT bodies). Any
    other path is a protected resource that accepts exactly the bearer
    tokens this server has issued and not revoked, unless ``resource`` is
    set to a custom handler.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.users = {"admin@agency.com": ("demo123", "OPERATION_ADMIN", "admin.user")}
        self.valid_access: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.login_calls = 0
        self.refresh_calls = 0
        self.logout_calls = 0
        self.refresh_status = 200
        self.refresh_delay = 0.0
        self.refresh_error: Optional[Exception] = None
        self.refresh_response: Optional[Callable[[httpx.Request], httpx.Response]] = None
        self.rotate_refresh = False
        self.logout_status = 205
        self.resource: Optional[Callable[[httpx.Request], httpx.Response]] = None
        self._serial = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def issue_access(self, lifetime: float = ACCESS_LIFETIME) -> str:
        self._serial += 1
        token = make_token(self.clock() + lifetime, jti=f"a{self._serial}")
        self.valid_access.add(token)
        return token

    def issue_refresh(self) -> str:
        self._serial += 1
        return make_token(self.clock() + 7 * 86400, jti=f"r{self._serial}", token_type="refresh")

    def resource_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if "/accounts/" not in r.url.path]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        # The pipeline re-sends the same request object, so record a copy.
        self.requests.append(
            httpx.Request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.content,
                extensions=dict(request.extensions),
            )
        )
        path = request.url.path.removeprefix("/api/v1/")
        if path == "accounts/login/":
            return self._login(request)
        if path == "accounts/refresh/":
            return await self._refresh(request)
        if path == "accounts/logout/":
            self.logout_calls += 1
            return httpx.Response(self.logout_status)
        if path == "accounts/roles/":
            return self._protected(
                request,
                lambda: httpx.Response(
                    200, json={"data": [{"id": 1, "name": "admin"}, {"id": 2, "name": "hr"}]}
                ),
            )
        if self.resource is not None:
            return self.resource(request)
        return self._protected(request, lambda: httpx.Response(200, json={"path": path}))

    def _login(self, request: httpx.Request) -> httpx.Response:
        self.login_calls += 1
        body = json.loads(request.content)
        entry = self.users.get(body.get("email"))
        if entry is None or entry[0] != body.get("password"):
            return httpx.Response(401, json={"detail": "No active account found"})
        _, role, username = entry
        return httpx.Response(
            200,
            json={
                "access": self.issue_access(),
                "refresh": self.issue_refresh(),
                "user": {
                    "id": 7,
                    "email": body["email"],
                    "username": username,
                    "role": role,
                    "is_active": True,
                },
                "profile": {"avatar": "https://cdn.test/a.png"},
            },
        )

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls += 1
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        if self.refresh_response is not None:
            return self.refresh_response(request)
        if self.refresh_status != 200:
            return httpx.Response(self.refresh_status, json={"detail": "Token is invalid"})
        body: dict[str, Any] = {"access": self.issue_access()}
        if self.rotate_refresh:
            body["refresh"] = self.issue_refresh()
        return httpx.Response(200, json=body)

    def _protected(
        self, request: httpx.Request, ok: Callable[[], httpx.Response]
    ) -> httpx.Response:
        auth = request.headers.get("Authorization", "")
        token = auth.removeprefix("Bearer ")
        if not auth.startswith("Bearer ") or token not in self.valid_access:
            return httpx.Response(401, json={"detail": "Given token not valid"})
        return ok()


class Stack:
    """The object graph :func:`~agencyauth.auth.session.open_session` builds,
    assembled by hand so tests can reach every piece."""

    def __init__(
        self,
        server: FakeAuthServer,
        store: MemoryCredentialStore,
        settings: SessionSettings,
    ) -> None:
        self.server = server
        self.store = store
        self.client = httpx.AsyncClient(
            base_url=settings.base_url, transport=server.transport, follow_redirects=True
        )
        self.auth_api = AuthAPI(self.client, settings.endpoints)
        self.tokens = TokenManager(store, self.auth_api, settings, clock=server.clock)
        self.pipeline = AuthPipeline(self.tokens, self.client)
        self.expired: list[str] = []
        self.tokens.add_expiry_listener(self.expired.append)

    def sign_in(self, access: Optional[str] = None, refresh: Optional[str] = None) -> None:
        """Store a session as if a login had just succeeded."""
        self.store.update(
            {
                "access_token": access or self.server.issue_access(),
                "refresh_token": refresh or self.server.issue_refresh(),
                "current_user": json.dumps(
                    {"id": "7", "email": "admin@agency.com", "role": "admin"}
                ),
            }
        )

    async def aclose(self) -> None:
        await self.client.aclose()


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and credentials to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, and clears all
    AGENCYAUTH_* environment variables.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("agencyauth.config._is_xdg_platform", lambda: True)

    for var in ["AGENCYAUTH_PROFILE", "AGENCYAUTH_BASE_URL", "AGENCYAUTH_TIMEOUT_MS"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def server(clock: FakeClock) -> FakeAuthServer:
    return FakeAuthServer(clock)


@pytest.fixture
def settings() -> SessionSettings:
    return SessionSettings(base_url=BASE_URL)


@pytest.fixture
def stack(
    server: FakeAuthServer, settings: SessionSettings, quiet_output: OutputManager
) -> Stack:
    """A token manager and pipeline wired to :class:`FakeAuthServer`."""
    return Stack(server, MemoryCredentialStore(), settings)


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
