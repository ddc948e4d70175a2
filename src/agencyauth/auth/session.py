"""Session facade -- the one entry point other code talks to.

:class:`SessionManager` exposes login/logout, the authentication and role
guards, the account endpoints, and generic request delegation to the
:class:`~agencyauth.client.pipeline.AuthPipeline`.

The object graph is built explicitly by :func:`open_session` at start-up and
torn down when the context exits, which also stops the background
:class:`~agencyauth.auth.refresher.RefreshLoop`::

    async with open_session(settings, on_session_expired=go_to_login) as session:
        await session.login("admin@agency.com", "demo123")
        projects = (await session.request("GET", "projects/")).json()
"""

from __future__ import annotations

import contextlib
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Union

import httpx

from agencyauth.auth.credential_store import CredentialStore, FileCredentialStore
from agencyauth.auth.refresher import RefreshLoop
from agencyauth.auth.tokens import TokenManager
from agencyauth.client.auth_api import AuthAPI
from agencyauth.client.pipeline import AuthPipeline
from agencyauth.exceptions import AgencyAuthError
from agencyauth.models import EndpointsConfig, Role, SessionSettings, UserRecord
from agencyauth.output import debug, warning


class SessionManager:
    """Login state, role checks and authenticated requests.

    Args:
        token_manager: Owner of the stored tokens.
        auth_api: Client for the login and logout endpoints.
        pipeline: Pipeline used for every other request.
        endpoints: Paths of the account endpoints.
        refresh_loop: Started on login, stopped on logout.
        on_session_expired: Called with a reason, once per session death.
            This is where a UI redirects to its login screen.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        auth_api: AuthAPI,
        pipeline: AuthPipeline,
        endpoints: Optional[EndpointsConfig] = None,
        refresh_loop: Optional[RefreshLoop] = None,
        on_session_expired: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._tokens = token_manager
        self._auth_api = auth_api
        self._pipeline = pipeline
        self._endpoints = endpoints or EndpointsConfig()
        self._refresh_loop = refresh_loop
        if on_session_expired is not None:
            token_manager.add_expiry_listener(on_session_expired)

    @property
    def tokens(self) -> TokenManager:
        return self._tokens

    @property
    def refresh_loop(self) -> Optional[RefreshLoop]:
        return self._refresh_loop

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    async def login(self, identifier: str, secret: str) -> UserRecord:
        """Sign in and persist the new session.

        Raises:
            InvalidCredentials: The server rejected the pair. Nothing stored
                locally is changed.
            NetworkFailure: The server could not be reached.
            ServerError: The server failed or answered with a malformed body.
        """
        result = await self._auth_api.login(identifier, secret)
        user = UserRecord.from_backend(result.user, result.profile)
        self._tokens.set_tokens(result.tokens, user)
        debug(f"Logged in as {user.email} ({user.role.value})")
        if self._refresh_loop is not None:
            self._refresh_loop.start()
        return user

    async def logout(self) -> None:
        """Sign out locally, telling the server when possible.

        The server call is best effort: its failure is reported as a warning
        and local state is cleared regardless. Calling this while logged out
        does nothing.
        """
        if self._refresh_loop is not None:
            await self._refresh_loop.stop()

        refresh_token = self._tokens.get_refresh_token()
        if refresh_token is not None:
            try:
                await self._auth_api.logout(self._tokens.get_access_token(), refresh_token)
            except AgencyAuthError as exc:
                warning(f"Server-side logout failed: {exc}")
        self._tokens.clear_tokens()

    # ------------------------------------------------------------------ #
    # Guards
    # ------------------------------------------------------------------ #

    def current_user(self) -> Optional[UserRecord]:
        return self._tokens.get_user()

    def is_authenticated(self) -> bool:
        """True when a cached user and an access token are both stored.

        This checks presence only; freshness is handled by the pipeline.
        """
        return self.current_user() is not None and self._tokens.get_access_token() is not None

    def has_role(self, allowed: Iterable[Union[Role, str]]) -> bool:
        """Whether the cached user's role is one of *allowed*."""
        user = self.current_user()
        if user is None:
            return False
        allowed_values = {r.value if isinstance(r, Role) else str(r) for r in allowed}
        return user.role.value in allowed_values

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request. See :meth:`AuthPipeline.request`."""
        return await self._pipeline.request(method, path, **kwargs)

    async def get_roles(self) -> list[Any]:
        response = await self._pipeline.get(self._endpoints.roles)
        response.raise_for_status()
        body = response.json()
        if isinstance(body, dict):
            return body.get("data") or []
        return body

    async def forgot_password(self, email: str) -> dict[str, Any]:
        return await self._post_json(self._endpoints.forgot_password, {"email": email})

    async def reset_password(self, token: str, new_password: str) -> dict[str, Any]:
        return await self._post_json(
            self._endpoints.reset_password,
            {"token": token, "new_password": new_password},
        )

    async def verify_reset_token(self, token: str) -> dict[str, Any]:
        return await self._post_json(self._endpoints.verify_reset_token, {"token": token})

    async def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._pipeline.post(path, json_body=body)
        response.raise_for_status()
        return response.json()


@contextlib.asynccontextmanager
async def open_session(
    settings: SessionSettings,
    store: Optional[CredentialStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    on_session_expired: Optional[Callable[[str], None]] = None,
) -> AsyncIterator[SessionManager]:
    """Build a :class:`SessionManager` and everything it depends on.

    Args:
        settings: Effective settings (base URL, timeouts, thresholds).
        store: Credential store; defaults to the profile's
            :class:`FileCredentialStore`.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.
        on_session_expired: Redirect hook, see :class:`SessionManager`.

    If a session is already stored, the refresh loop starts immediately.
    On exit the loop is stopped and the HTTP client closed.
    """
    if store is None:
        store = FileCredentialStore(settings.profile)

    client = httpx.AsyncClient(
        base_url=settings.base_url,
        timeout=settings.request_timeout_seconds,
        verify=settings.verify_ssl,
        follow_redirects=True,
        transport=transport,
    )
    auth_api = AuthAPI(client, settings.endpoints)
    token_manager = TokenManager(store, auth_api, settings)
    refresh_loop = RefreshLoop(token_manager, settings.refresh_interval_seconds)
    session = SessionManager(
        token_manager,
        auth_api,
        AuthPipeline(token_manager, client),
        endpoints=settings.endpoints,
        refresh_loop=refresh_loop,
        on_session_expired=on_session_expired,
    )
    try:
        if token_manager.get_refresh_token() is not None:
            refresh_loop.start()
        yield session
    finally:
        await refresh_loop.stop()
        await client.aclose()
