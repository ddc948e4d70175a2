"""Background proactive refresh.

:class:`RefreshLoop` runs one asyncio task that wakes every
``refresh_interval`` seconds and refreshes the access token when it is due,
so that in normal operation no user-facing request sees an expired token.
It goes through the same de-duplicated
:meth:`~agencyauth.auth.tokens.TokenManager.refresh_access_token` as the
request pipeline, so a proactive and a reactive refresh racing each other
still cost one network call.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Optional

from agencyauth.auth.tokens import TokenManager
from agencyauth.exceptions import AgencyAuthError
from agencyauth.output import debug, error, warning


class RefreshLoop:
    """Periodic refresh task. At most one runs per instance.

    Args:
        token_manager: The manager whose token is kept fresh.
        interval_seconds: Tick period. Should be shorter than the access
            token lifetime minus the refresh threshold.
    """

    def __init__(self, token_manager: TokenManager, interval_seconds: float) -> None:
        self._tokens = token_manager
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop on the running event loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="agencyauth-refresh-loop"
        )
        debug(f"Refresh loop started (every {self._interval:g}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish. No-op if not running."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        debug("Refresh loop stopped")

    async def tick(self) -> bool:
        """Refresh the stored access token if it is due.

        Returns:
            ``True`` if a refresh happened and succeeded.
        """
        token = self._tokens.get_access_token()
        if token is None or not self._tokens.is_expired(token):
            return False
        try:
            await self._tokens.refresh_access_token()
        except AgencyAuthError as exc:
            warning(f"Proactive token refresh failed: {exc}")
            return False
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception as exc:  # noqa: BLE001
                error(f"Unexpected error in refresh loop: {exc}")
