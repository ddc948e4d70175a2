"""Tests for the raw auth endpoint client."""

from __future__ import annotations

import asyncio
import json
from typing import Callable

import httpx
import pytest

from agencyauth.client.auth_api import AuthAPI
from agencyauth.exceptions import (
    AuthenticationExpired,
    InvalidCredentials,
    NetworkFailure,
    ServerError,
)
from agencyauth.models import EndpointsConfig

from tests.conftest import BASE_URL


def _api(handler: Callable[[httpx.Request], httpx.Response]) -> AuthAPI:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return AuthAPI(client, EndpointsConfig())


LOGIN_BODY = {
    "access": "acc",
    "refresh": "ref",
    "user": {"id": 1, "email": "hr@agency.com", "username": "hr.person", "role": "hr"},
}


class TestLogin:
    def test_posts_credentials(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=LOGIN_BODY)

        result = asyncio.run(_api(handler).login("hr@agency.com", "pw"))

        (request,) = seen
        assert request.method == "POST"
        assert request.url.path == "/api/v1/accounts/login/"
        assert json.loads(request.content) == {"email": "hr@agency.com", "password": "pw"}
        assert "Authorization" not in request.headers
        assert result.tokens.access_token == "acc"
        assert result.tokens.refresh_token == "ref"
        assert result.user.role == "hr"

    def test_accepts_camel_case_tokens(self) -> None:
        body = {"accessToken": "a", "refreshToken": "r", "user": {"id": "u1", "email": "x@y.z"}}
        result = asyncio.run(_api(lambda r: httpx.Response(200, json=body)).login("x@y.z", "pw"))
        assert result.access == "a"
        assert result.refresh == "r"

    @pytest.mark.parametrize("status", [400, 401, 403])
    def test_client_error_is_invalid_credentials(self, status: int) -> None:
        api = _api(lambda r: httpx.Response(status, json={"detail": "No active account"}))
        with pytest.raises(InvalidCredentials, match="No active account"):
            asyncio.run(api.login("a@b.c", "wrong"))

    def test_server_error(self) -> None:
        api = _api(lambda r: httpx.Response(502, text="Bad gateway"))
        with pytest.raises(ServerError, match="502"):
            asyncio.run(api.login("a@b.c", "pw"))

    def test_malformed_body_is_server_error(self) -> None:
        api = _api(lambda r: httpx.Response(200, json={"access": "only"}))
        with pytest.raises(ServerError):
            asyncio.run(api.login("a@b.c", "pw"))

    def test_non_json_body_is_server_error(self) -> None:
        api = _api(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(ServerError):
            asyncio.run(api.login("a@b.c", "pw"))

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkFailure):
            asyncio.run(_api(handler).login("a@b.c", "pw"))

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        with pytest.raises(NetworkFailure, match="timed out"):
            asyncio.run(_api(handler).login("a@b.c", "pw"))


class TestRefresh:
    def test_returns_access_only(self) -> None:
        result = asyncio.run(
            _api(lambda r: httpx.Response(200, json={"access": "new"})).refresh("ref")
        )
        assert result.access == "new"
        assert result.refresh is None

    def test_returns_rotated_refresh(self) -> None:
        body = {"access": "new", "refresh": "rotated"}
        result = asyncio.run(_api(lambda r: httpx.Response(200, json=body)).refresh("ref"))
        assert result.refresh == "rotated"

    def test_rejected_refresh_token(self) -> None:
        api = _api(lambda r: httpx.Response(401, json={"detail": "Token is blacklisted"}))
        with pytest.raises(AuthenticationExpired):
            asyncio.run(api.refresh("ref"))

    def test_server_error(self) -> None:
        with pytest.raises(ServerError):
            asyncio.run(_api(lambda r: httpx.Response(500)).refresh("ref"))


class TestLogout:
    def test_sends_refresh_and_bearer(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(205)

        asyncio.run(_api(handler).logout("acc", "ref"))

        (request,) = seen
        assert request.url.path == "/api/v1/accounts/logout/"
        assert request.headers["Authorization"] == "Bearer acc"
        assert json.loads(request.content) == {"refresh": "ref"}

    def test_without_access_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        asyncio.run(_api(handler).logout(None, "ref"))
        assert "Authorization" not in seen[0].headers

    def test_failure_is_server_error(self) -> None:
        with pytest.raises(ServerError):
            asyncio.run(_api(lambda r: httpx.Response(400)).logout("acc", "ref"))
