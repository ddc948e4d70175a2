"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~agencyauth.exceptions.AgencyAuthError` subclass.
Shell scripts can tell a rejected login apart from an expired session
without parsing stderr.

Example::

    $ agencyauth request GET projects/
    $ echo $?
    4   # EXIT_SESSION_EXPIRED -- log in again
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_INVALID_CREDENTIALS = 3
"""The server rejected the login identifier/secret pair."""

EXIT_SESSION_EXPIRED = 4
"""The session ended because the access token could not be refreshed."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx error or an unreadable body."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_MALFORMED_TOKEN = 7
"""A stored token could not be decoded."""
