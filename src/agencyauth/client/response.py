"""Response formatting bridge -- maps :class:`httpx.Response` to the output system.

After an authenticated request completes, :func:`format_api_response` writes
the status line to stderr and routes the body through
:meth:`~agencyauth.output.OutputManager.format_response`, so ``--json`` and
``--plain`` apply to API payloads the same way they apply to session status.

See Also:
    :mod:`agencyauth.output` -- the output manager that renders data.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from agencyauth.output import get_output


def format_api_response(response: httpx.Response) -> None:
    """Format and print an API response using the global output system.

    Args:
        response: The :class:`httpx.Response` to format and display.
    """
    output = get_output()

    status = f"HTTP {response.status_code} {response.reason_phrase or ''}".rstrip()
    if response.is_success:
        output.info(status)
    else:
        output.warning(status)

    data = extract_response_data(response)
    if data is not None:
        output.format_response(data)


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Attempts to parse the body as JSON first. If that fails (e.g. the
    response is HTML or plain text), returns the raw text.

    Returns:
        A JSON-decoded object, a ``str`` of raw text, or ``None`` if the
        body is empty.
    """
    if not response.content:
        return None

    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text
