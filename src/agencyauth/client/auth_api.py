"""Raw calls to the auth endpoints of the agency-management API.

:class:`AuthAPI` sends the login, refresh and logout requests over a plain
:class:`httpx.AsyncClient`. These calls deliberately bypass
:class:`~agencyauth.client.pipeline.AuthPipeline`: a ``401`` from the login
endpoint means "wrong password", not "refresh and retry", and the refresh
call must never recurse into another refresh.

Every transport failure (including a timeout) becomes
:class:`~agencyauth.exceptions.NetworkFailure`; HTTP errors are mapped per
endpoint as documented on each method.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from agencyauth.exceptions import (
    AuthenticationExpired,
    InvalidCredentials,
    NetworkFailure,
    ServerError,
)
from agencyauth.models import EndpointsConfig, LoginResponse, RefreshResponse


def _error_detail(response: httpx.Response) -> str:
    """Pull a short human-readable message out of an error response."""
    try:
        detail = response.json()
    except ValueError:
        return response.text[:200] if response.text else ""
    if isinstance(detail, dict):
        return str(
            detail.get("detail") or detail.get("message") or detail.get("error") or ""
        )
    return str(detail)


class AuthAPI:
    """Client for the login, refresh and logout endpoints.

    Args:
        client: A configured :class:`httpx.AsyncClient` whose ``base_url``
            points at the API root. Its timeout bounds every call.
        endpoints: Endpoint paths relative to the base URL.
    """

    def __init__(self, client: httpx.AsyncClient, endpoints: EndpointsConfig) -> None:
        self._client = client
        self._endpoints = endpoints

    async def login(self, identifier: str, secret: str) -> LoginResponse:
        """Exchange an email/password pair for tokens and the user record.

        Raises:
            InvalidCredentials: On any 4xx response.
            ServerError: On 5xx, or when the body is not a valid login response.
            NetworkFailure: On transport errors and timeouts.
        """
        response = await self._post(
            self._endpoints.login, {"email": identifier, "password": secret}
        )
        if 400 <= response.status_code < 500:
            detail = _error_detail(response)
            raise InvalidCredentials(
                "Invalid credentials. Please check your email and password."
                + (f" ({detail})" if detail else "")
            )
        self._raise_for_server_error(response, "Login")
        return self._parse(response, LoginResponse, "login")

    async def refresh(self, refresh_token: str) -> RefreshResponse:
        """Exchange a refresh token for a new access token.

        Raises:
            AuthenticationExpired: On any 4xx (invalid or expired refresh token).
            ServerError: On 5xx or an unreadable body.
            NetworkFailure: On transport errors and timeouts.
        """
        response = await self._post(self._endpoints.refresh, {"refresh": refresh_token})
        if 400 <= response.status_code < 500:
            raise AuthenticationExpired(
                f"Refresh token rejected (HTTP {response.status_code})"
            )
        self._raise_for_server_error(response, "Token refresh")
        return self._parse(response, RefreshResponse, "refresh")

    async def logout(self, access_token: Optional[str], refresh_token: str) -> None:
        """Ask the server to invalidate *refresh_token*.

        Raises:
            ServerError: On any non-2xx response.
            NetworkFailure: On transport errors and timeouts.
        """
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        response = await self._post(
            self._endpoints.logout, {"refresh": refresh_token}, headers=headers
        )
        if not response.is_success:
            raise ServerError(f"Logout failed with HTTP {response.status_code}")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _post(
        self,
        path: str,
        body: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            return await self._client.post(path, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"Request to {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"Request to {path} failed: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkFailure(f"Invalid response from {path}: {exc}") from exc

    @staticmethod
    def _raise_for_server_error(response: httpx.Response, what: str) -> None:
        if response.status_code >= 500:
            detail = _error_detail(response)
            msg = f"{what} failed with HTTP {response.status_code}"
            raise ServerError(f"{msg}: {detail}" if detail else msg)

    @staticmethod
    def _parse(response: httpx.Response, model: Any, what: str) -> Any:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ServerError(f"Invalid {what} response from server") from exc
