"""Token lifecycle: expiry inspection, de-duplicated refresh, session teardown.

:class:`TokenManager` is the only component that mutates the
:class:`~agencyauth.auth.credential_store.CredentialStore`. Its refresh
state machine has exactly three observable states::

    Idle --refresh_access_token()--> Refreshing --+--> Idle (new access token stored)
                                                  +--> Idle (session cleared)

While a refresh is in flight every caller of :meth:`TokenManager.refresh_access_token`
awaits the same task, so N concurrent callers cost one network call and all
observe the same token or the same :class:`~agencyauth.exceptions.AuthenticationExpired`.
No lock is needed: the runtime is a single asyncio event loop and the
pending task is created and published without an intervening ``await``.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable, Optional

from jose import JWTError, jwt
from pydantic import ValidationError

from agencyauth.auth.credential_store import (
    ACCESS_TOKEN_KEY,
    CURRENT_USER_KEY,
    REFRESH_TOKEN_KEY,
    SESSION_KEYS,
    CredentialStore,
)
from agencyauth.exceptions import AgencyAuthError, AuthenticationExpired, MalformedToken
from agencyauth.models import SessionSettings, TokenPair, UserRecord
from agencyauth.output import debug, warning

if TYPE_CHECKING:
    from agencyauth.client.auth_api import AuthAPI

ExpiryListener = Callable[[str], None]


def _retrieve_outcome(task: asyncio.Task[str]) -> None:
    # Waiters may all have been cancelled; mark the outcome as observed.
    if not task.cancelled():
        task.exception()


def token_claims(token: str) -> dict[str, Any]:
    """Decode a JWT payload without verifying its signature.

    Signature trust is the server's job; the client only reads the claims
    it needs for scheduling.

    Raises:
        MalformedToken: If *token* is not a decodable JWT.
    """
    try:
        return jwt.get_unverified_claims(token)
    except (JWTError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedToken(f"Cannot decode token: {exc}") from exc


def token_expiry(token: str) -> Optional[float]:
    """Return the ``exp`` claim of *token*, or ``None`` if absent or unreadable."""
    try:
        exp = token_claims(token).get("exp")
    except MalformedToken:
        return None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


class TokenManager:
    """Owns the stored tokens and the refresh state machine.

    Args:
        store: Where the tokens and cached user live.
        auth_api: Client for the refresh endpoint.
        settings: Supplies ``refresh_threshold_seconds``.
        clock: Returns the current time in seconds since the epoch.
    """

    def __init__(
        self,
        store: CredentialStore,
        auth_api: AuthAPI,
        settings: SessionSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._auth_api = auth_api
        self._threshold = settings.refresh_threshold_seconds
        self._clock = clock
        self._pending: Optional[asyncio.Task[str]] = None
        self._listeners: list[ExpiryListener] = []

    # ------------------------------------------------------------------ #
    # Store access
    # ------------------------------------------------------------------ #

    def get_access_token(self) -> Optional[str]:
        return self._store.get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._store.get(REFRESH_TOKEN_KEY)

    def get_user(self) -> Optional[UserRecord]:
        """Return the cached user, or ``None`` when absent or unreadable."""
        raw = self._store.get(CURRENT_USER_KEY)
        if raw is None:
            return None
        try:
            return UserRecord.model_validate_json(raw)
        except ValidationError:
            debug("Ignoring unreadable cached user record")
            return None

    def set_tokens(self, pair: TokenPair, user: Optional[UserRecord] = None) -> None:
        """Persist both tokens, and the user when given, in one store write."""
        values = {
            ACCESS_TOKEN_KEY: pair.access_token,
            REFRESH_TOKEN_KEY: pair.refresh_token,
        }
        if user is not None:
            values[CURRENT_USER_KEY] = user.model_dump_json()
        self._store.update(values)

    def clear_tokens(self) -> None:
        """Remove the access token, the refresh token and the cached user."""
        self._store.discard(SESSION_KEYS)

    def has_session(self) -> bool:
        return any(self._store.get(key) is not None for key in SESSION_KEYS)

    # ------------------------------------------------------------------ #
    # Session death
    # ------------------------------------------------------------------ #

    def add_expiry_listener(self, listener: ExpiryListener) -> None:
        """Register *listener* to be called with a reason when a session dies."""
        self._listeners.append(listener)

    def expire_session(self, reason: str) -> None:
        """Clear the session and notify listeners.

        Listeners fire only when there was something to clear, so concurrent
        failures that all reach this point produce a single notification.
        """
        if not self.has_session():
            self.clear_tokens()
            return
        self.clear_tokens()
        warning(f"Session expired: {reason}")
        for listener in list(self._listeners):
            listener(reason)

    # ------------------------------------------------------------------ #
    # Expiry
    # ------------------------------------------------------------------ #

    def is_expired(self, access_token: str) -> bool:
        """Whether *access_token* is due for refresh.

        True when the token cannot be decoded, has no numeric ``exp``, or
        expires in less than the refresh threshold. Never raises.
        """
        exp = token_expiry(access_token)
        if exp is None:
            return True
        return exp - self._clock() < self._threshold

    def seconds_until_expiry(self, access_token: str) -> Optional[float]:
        exp = token_expiry(access_token)
        if exp is None:
            return None
        return exp - self._clock()

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    @property
    def refreshing(self) -> bool:
        return self._pending is not None

    async def refresh_access_token(self) -> str:
        """Return a freshly refreshed access token.

        Joins the in-flight refresh if there is one, otherwise starts it.
        Cancelling one waiter does not cancel the shared refresh.

        Raises:
            AuthenticationExpired: If the refresh failed for any reason. The
                session has been cleared by the time this is raised.
        """
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._run_refresh())
            self._pending.add_done_callback(_retrieve_outcome)
        return await asyncio.shield(self._pending)

    async def _run_refresh(self) -> str:
        try:
            return await self._perform_refresh()
        finally:
            self._pending = None

    async def _perform_refresh(self) -> str:
        refresh_token = self.get_refresh_token()
        if refresh_token is None:
            self.expire_session("no refresh token available")
            raise AuthenticationExpired("No refresh token available")

        debug("Refreshing access token")
        try:
            result = await self._auth_api.refresh(refresh_token)
        except AgencyAuthError as exc:
            self.expire_session(str(exc))
            raise AuthenticationExpired(f"Token refresh failed: {exc}") from exc

        if self.get_refresh_token() != refresh_token:
            # Logged out, or logged in again, while the refresh was in flight.
            raise AuthenticationExpired("Session changed during token refresh")

        values = {ACCESS_TOKEN_KEY: result.access}
        if result.refresh:
            values[REFRESH_TOKEN_KEY] = result.refresh
        self._store.update(values)
        debug("Access token refreshed")
        return result.access
