"""Tests for the background refresh loop."""

from __future__ import annotations

import asyncio

import pytest

from agencyauth.auth.refresher import RefreshLoop

from tests.conftest import NOW, Stack, make_token


@pytest.fixture
def loop(stack: Stack) -> RefreshLoop:
    return RefreshLoop(stack.tokens, interval_seconds=0.01)


class TestTick:
    def test_fresh_token_is_left_alone(self, stack: Stack, loop: RefreshLoop) -> None:
        stack.sign_in()
        assert asyncio.run(loop.tick()) is False
        assert stack.server.refresh_calls == 0

    def test_due_token_is_refreshed(self, stack: Stack, loop: RefreshLoop) -> None:
        stack.sign_in(access=make_token(NOW + 60))
        assert asyncio.run(loop.tick()) is True
        assert stack.server.refresh_calls == 1
        assert stack.tokens.is_expired(stack.tokens.get_access_token()) is False

    def test_no_session(self, stack: Stack, loop: RefreshLoop) -> None:
        assert asyncio.run(loop.tick()) is False
        assert stack.server.refresh_calls == 0

    def test_failure_is_reported_not_raised(self, stack: Stack, loop: RefreshLoop) -> None:
        stack.sign_in(access=make_token(NOW - 60))
        stack.server.refresh_status = 401

        assert asyncio.run(loop.tick()) is False
        assert stack.tokens.has_session() is False
        assert len(stack.expired) == 1


class TestLifecycle:
    def test_start_and_stop(self, stack: Stack, loop: RefreshLoop) -> None:
        async def scenario() -> tuple[bool, bool]:
            loop.start()
            started = loop.running
            await loop.stop()
            return started, loop.running

        assert asyncio.run(scenario()) == (True, False)

    def test_start_twice_keeps_one_task(self, stack: Stack, loop: RefreshLoop) -> None:
        async def scenario() -> int:
            loop.start()
            first = loop._task
            loop.start()
            same = loop._task is first
            await loop.stop()
            return same

        assert asyncio.run(scenario()) is True

    def test_stop_when_not_running(self, loop: RefreshLoop) -> None:
        asyncio.run(loop.stop())
        assert loop.running is False

    def test_start_requires_running_loop(self, loop: RefreshLoop) -> None:
        with pytest.raises(RuntimeError):
            loop.start()


class TestProactiveRefresh:
    def test_refreshes_before_user_request(self, stack: Stack, loop: RefreshLoop) -> None:
        old = make_token(NOW + 2 * 60)
        stack.server.valid_access.add(old)
        stack.sign_in(access=old)

        async def scenario() -> int:
            loop.start()
            await asyncio.sleep(0.05)
            response = await stack.pipeline.get("projects/")
            await loop.stop()
            return response.status_code

        assert asyncio.run(scenario()) == 200
        assert stack.server.refresh_calls == 1
        (sent,) = stack.server.resource_requests()
        assert sent.headers["Authorization"] != f"Bearer {old}"

    def test_loop_survives_unexpected_errors(
        self, stack: Stack, loop: RefreshLoop, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[int] = []

        async def flaky_tick() -> bool:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return False

        monkeypatch.setattr(loop, "tick", flaky_tick)

        async def scenario() -> bool:
            loop.start()
            await asyncio.sleep(0.05)
            alive = loop.running
            await loop.stop()
            return alive

        assert asyncio.run(scenario()) is True
        assert len(calls) >= 2
