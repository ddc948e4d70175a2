"""Session commands -- sign in, sign out and make authenticated requests.

These are registered directly on the root app rather than under a
sub-group, since they are the whole point of the tool::

    agencyauth login --email admin@agency.com
    agencyauth status
    agencyauth request GET projects/ --param page=2
    agencyauth logout

Every command resolves settings with
:func:`~agencyauth.config.resolve_settings`, opens a session with
:func:`~agencyauth.auth.session.open_session`, and runs its coroutine with
:func:`asyncio.run`. Errors from the library are printed through the output
layer and turned into the matching exit code.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from agencyauth.auth.session import SessionManager, open_session
from agencyauth.config import resolve_settings
from agencyauth.exceptions import AgencyAuthError, InvalidUsageError
from agencyauth.exit_codes import EXIT_INVALID_USAGE, EXIT_SESSION_EXPIRED
from agencyauth.models import SessionSettings
from agencyauth.output import error, format_response, info, print_table, success, suggest

T = TypeVar("T")


def _settings(ctx: typer.Context) -> SessionSettings:
    obj = ctx.obj or {}
    return resolve_settings(cli_profile=obj.get("profile"), cli_base_url=obj.get("base_url"))


def _on_session_expired(reason: str) -> None:
    suggest("Sign in again: agencyauth login")


def _run(ctx: typer.Context, action: Callable[[SessionManager], Awaitable[T]]) -> T:
    """Run *action* against a freshly opened session on a new event loop.

    Raises:
        typer.Exit: With the error's exit code when the library raises.
    """

    async def _main() -> T:
        async with open_session(
            _settings(ctx), on_session_expired=_on_session_expired
        ) as session:
            return await action(session)

    try:
        return asyncio.run(_main())
    except AgencyAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Expected key=value, got: {pair}")
        params[key] = value
    return params


def _parse_body(body: Optional[str]) -> Any:  # noqa: ANN401
    """Parse *body* as JSON if possible, returning the raw string on failure."""
    if body is None:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body


def login_command(
    ctx: typer.Context,
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Account email."),
    password: Optional[str] = typer.Option(
        None, "--password", help="Account password (prompted when omitted)."
    ),
) -> None:
    """Sign in and store the session for the active profile.

    Example::

        agencyauth login --email admin@agency.com
        agencyauth --profile staging login
    """
    if email is None:
        email = typer.prompt("Email")
    if password is None:
        password = typer.prompt("Password", hide_input=True)

    user = _run(ctx, lambda session: session.login(email, password))
    success(f"Signed in as {user.email} ({user.role.value}).")


def logout_command(ctx: typer.Context) -> None:
    """Sign out, telling the server when possible.

    Safe to run when already signed out.
    """

    async def _logout(session: SessionManager) -> bool:
        was_signed_in = session.tokens.has_session()
        await session.logout()
        return was_signed_in

    if _run(ctx, _logout):
        success("Signed out.")
    else:
        info("Not signed in.")


def status_command(ctx: typer.Context) -> None:
    """Show the stored session for the active profile.

    Exits with code 4 when nobody is signed in, so scripts can test it.
    """
    settings = _settings(ctx)

    async def _status(session: SessionManager) -> dict[str, Any]:
        user = session.current_user()
        token = session.tokens.get_access_token()
        remaining = session.tokens.seconds_until_expiry(token) if token else None
        return {
            "profile": settings.profile,
            "authenticated": session.is_authenticated(),
            "email": user.email if user else None,
            "name": f"{user.first_name} {user.last_name}".strip() if user else None,
            "role": user.role.value if user else None,
            "access_expires_in": int(remaining) if remaining is not None else None,
            "refresh_due": session.tokens.is_expired(token) if token else None,
        }

    data = _run(ctx, _status)
    format_response(data)
    if not data["authenticated"]:
        suggest("Sign in: agencyauth login")
        raise typer.Exit(code=EXIT_SESSION_EXPIRED)


def refresh_command(ctx: typer.Context) -> None:
    """Refresh the access token now, whether or not it is due."""

    async def _refresh(session: SessionManager) -> Optional[float]:
        token = await session.tokens.refresh_access_token()
        return session.tokens.seconds_until_expiry(token)

    remaining = _run(ctx, _refresh)
    if remaining is None:
        success("Access token refreshed.")
    else:
        success(f"Access token refreshed, valid for {int(remaining)}s.")


def roles_command(ctx: typer.Context) -> None:
    """List the roles defined on the server."""
    roles = _run(ctx, lambda session: session.get_roles())
    if roles and all(isinstance(r, dict) for r in roles):
        headers = list(roles[0].keys())
        rows = [[str(r.get(h, "")) for h in headers] for r in roles]
        print_table(headers, rows, title="Roles")
    else:
        format_response(roles)


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE)."),
    path: str = typer.Argument(help="Path relative to the API base URL."),
    param: list[str] = typer.Option(
        [], "--param", "-P", help="Query parameter as key=value. Repeatable."
    ),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="JSON request body."),
) -> None:
    """Send an authenticated request and print the response.

    The access token is refreshed before sending when it is due, and the
    request is retried once if the server answers 401.

    Example::

        agencyauth request GET projects/ --param status=active
        agencyauth request POST clients/ --body '{"name": "Acme"}'
    """
    from agencyauth.client.response import format_api_response

    method = method.upper()
    if method not in {"GET", "POST", "PUT", "PATCH", "DELETE"}:
        error(f"Unsupported method: {method}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    try:
        params = _parse_params(param)
    except InvalidUsageError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    response = _run(
        ctx,
        lambda session: session.request(
            method,
            path,
            params=params or None,
            json_body=_parse_body(body),
        ),
    )
    format_api_response(response)
    if not response.is_success:
        raise typer.Exit(code=1)
