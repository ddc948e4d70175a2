"""Session and token-lifecycle subsystem.

- :class:`CredentialStore` -- durable storage for the tokens and cached user
  (:class:`FileCredentialStore`, :class:`MemoryCredentialStore`).
- :class:`TokenManager` -- expiry checks and the de-duplicated refresh.
- :class:`RefreshLoop` -- background proactive refresh.
- :class:`SessionManager` -- the facade: login, logout, guards, requests.
- :func:`open_session` -- builds and tears down the whole graph.

Typical usage::

    from agencyauth.auth import open_session

    async with open_session(settings) as session:
        await session.login(email, password)
        assert session.has_role({"admin"})
"""

from agencyauth.auth.credential_store import (
    ACCESS_TOKEN_KEY,
    CURRENT_USER_KEY,
    REFRESH_TOKEN_KEY,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)
from agencyauth.auth.refresher import RefreshLoop
from agencyauth.auth.session import SessionManager, open_session
from agencyauth.auth.tokens import TokenManager, token_claims

__all__ = [
    "ACCESS_TOKEN_KEY",
    "CURRENT_USER_KEY",
    "REFRESH_TOKEN_KEY",
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "RefreshLoop",
    "SessionManager",
    "TokenManager",
    "open_session",
    "token_claims",
]
