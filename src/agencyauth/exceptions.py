"""Exception hierarchy for agencyauth.

All exceptions inherit from :class:`AgencyAuthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`agencyauth.exit_codes`.
The CLI entry point in :func:`agencyauth.app.main` catches
``AgencyAuthError`` and exits with the matching code.

Subclass hierarchy::

    AgencyAuthError            (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- InvalidCredentials     (exit 3)
    +-- AuthenticationExpired  (exit 4)
    +-- ServerError            (exit 5)
    +-- NetworkFailure         (exit 6)
    +-- MalformedToken         (exit 7)
    +-- ConfigError            (exit 1)

``InvalidCredentials`` and ``AuthenticationExpired`` are deliberately separate
types: the first is a login-form error, the second means an established
session is gone and the user has to sign in again.
"""

from agencyauth.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_CREDENTIALS,
    EXIT_INVALID_USAGE,
    EXIT_MALFORMED_TOKEN,
    EXIT_SERVER_ERROR,
    EXIT_SESSION_EXPIRED,
)


class AgencyAuthError(Exception):
    """Base exception for all agencyauth errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(AgencyAuthError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class InvalidCredentials(AgencyAuthError):
    """Raised when the login endpoint rejects the identifier/secret pair."""

    exit_code = EXIT_INVALID_CREDENTIALS


class AuthenticationExpired(AgencyAuthError):
    """Raised when the session is over: the access token could not be refreshed.

    Callers must not retry; the stored session has already been cleared.
    """

    exit_code = EXIT_SESSION_EXPIRED


class ServerError(AgencyAuthError):
    """Raised on HTTP 5xx responses or response bodies that cannot be read."""

    exit_code = EXIT_SERVER_ERROR


class NetworkFailure(AgencyAuthError):
    """Raised on transport-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class MalformedToken(AgencyAuthError):
    """Raised when a JWT cannot be decoded. Expiry checks treat it as expired."""

    exit_code = EXIT_MALFORMED_TOKEN


class ConfigError(AgencyAuthError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE
