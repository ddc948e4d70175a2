"""Authenticating request pipeline around :class:`httpx.AsyncClient`.

Every resource request goes through :meth:`AuthPipeline.send`, which runs
three steps in a fixed order:

1. **Pre-send** -- read the stored access token. If it is due for refresh,
   refresh it first; if that fails the request is never sent. A fresh token
   is attached as ``Authorization: Bearer <token>``. With no token the
   request goes out with only the headers the caller supplied (public
   endpoints).
2. **Send** -- transport failures, timeouts, redirect loops and undecodable
   bodies become :class:`~agencyauth.exceptions.NetworkFailure`.
3. **Post-response** -- a ``401`` on a request that has not been retried
   marks it retried, refreshes, re-attaches the new token and sends it once
   more. A second failure ends the session. Any other status is returned to
   the caller untouched.

The retry marker lives in ``request.extensions`` so it travels with the
request object itself.

See Also:
    :class:`~agencyauth.auth.tokens.TokenManager` -- the refresh state machine
    both the pre-send and post-response steps funnel through.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import httpx

from agencyauth.exceptions import AuthenticationExpired, NetworkFailure
from agencyauth.output import debug

if TYPE_CHECKING:
    from agencyauth.auth.tokens import TokenManager

RETRIED_EXTENSION = "agencyauth.retried"


class AuthPipeline:
    """Sends requests with proactive and reactive token refresh.

    Args:
        token_manager: Source of access tokens and of refreshes.
        client: The underlying :class:`httpx.AsyncClient`. Its ``base_url``
            and timeout apply to every request.

    Example::

        pipeline = AuthPipeline(token_manager, httpx.AsyncClient(base_url=url))
        response = await pipeline.get("projects/")
    """

    def __init__(self, token_manager: TokenManager, client: httpx.AsyncClient) -> None:
        self._tokens = token_manager
        self._client = client

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Build a request against the API base URL and send it through the pipeline.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: URL path relative to the API base URL.
            params: Query parameters.
            headers: Extra request headers.
            json_body: JSON-serialisable body.
            data: Form-encoded body.

        Returns:
            The server's response. Error statuses other than ``401`` are
            returned as-is.

        Raises:
            AuthenticationExpired: The session could not be kept alive.
            NetworkFailure: Transport error or timeout.
        """
        kwargs: dict[str, Any] = {"params": params, "headers": headers}
        if data is not None:
            kwargs["data"] = data
        elif json_body is not None:
            kwargs["json"] = json_body
        request = self._client.build_request(method.upper(), path, **kwargs)
        return await self.send(request)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Run *request* through pre-send, send and post-response steps."""
        await self._prepare(request)
        response = await self._dispatch(request)
        if response.status_code != 401:
            return response
        return await self._recover(request, response)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _prepare(self, request: httpx.Request) -> None:
        """Attach a valid bearer token, refreshing first when it is due."""
        token = self._tokens.get_access_token()
        if token is not None and self._tokens.is_expired(token):
            debug(f"Access token due for refresh before {request.method} {request.url}")
            token = await self._tokens.refresh_access_token()
        if token is not None:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _dispatch(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"{request.method} {request.url} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"{request.method} {request.url} failed: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkFailure(
                f"Invalid response to {request.method} {request.url}: {exc}"
            ) from exc

    async def _recover(self, request: httpx.Request, response: httpx.Response) -> httpx.Response:
        """Handle a ``401``: refresh and re-send once, or end the session."""
        if request.extensions.get(RETRIED_EXTENSION):
            self._tokens.expire_session(f"{request.method} {request.url} rejected after refresh")
            raise AuthenticationExpired(
                f"HTTP 401 after token refresh: {request.method} {request.url}"
            )

        request.extensions[RETRIED_EXTENSION] = True
        debug(f"HTTP 401 from {request.method} {request.url}, refreshing and retrying once")
        token = await self._tokens.refresh_access_token()
        request.headers["Authorization"] = f"Bearer {token}"

        try:
            retried = await self._dispatch(request)
        except NetworkFailure:
            self._tokens.expire_session(f"retry of {request.method} {request.url} failed")
            raise
        if retried.status_code == 401:
            return await self._recover(request, retried)
        return retried
