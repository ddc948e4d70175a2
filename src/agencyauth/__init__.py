"""agencyauth -- session and token-lifecycle client for the agency-management API.

This package keeps a user signed in against the agency-management REST API.
It stores the JWT access/refresh pair, refreshes the access token before it
expires, retries a request once after a ``401``, and tells the caller when a
session is over so the user can be sent back to the login screen.

Typical usage::

    from agencyauth import open_session, resolve_settings

    settings = resolve_settings()
    async with open_session(settings) as session:
        user = await session.login("admin@agency.com", "demo123")
        response = await session.request("GET", "projects/")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models (tokens, users, settings).
    config: XDG-aware settings storage and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr diagnostics with Rich support.
"""

__version__ = "0.3.0"

from agencyauth.auth.session import SessionManager, open_session  # noqa: E402
from agencyauth.config import resolve_settings  # noqa: E402

__all__ = ["SessionManager", "open_session", "resolve_settings", "__version__"]
