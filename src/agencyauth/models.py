"""Canonical Pydantic models shared across agencyauth modules.

The models fall into three groups:

**Settings** -- serialised as JSON in the user's config directory:
    :class:`EndpointsConfig` and :class:`SessionSettings`.

**Session data** -- what the credential store holds:
    :class:`TokenPair`, :class:`Role` and :class:`UserRecord`.

**Wire models** -- bodies returned by the auth endpoints:
    :class:`BackendUser`, :class:`LoginResponse` and :class:`RefreshResponse`.

Settings models accept both ``snake_case`` and ``camelCase`` keys so that a
config file written for the web front end (``refreshThresholdMinutes``) loads
unchanged.
"""

from __future__ import annotations

import enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# --- Settings ---


class EndpointsConfig(BaseModel):
    """Paths of the auth and account endpoints, relative to ``base_url``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    login: str = "accounts/login/"
    refresh: str = "accounts/refresh/"
    logout: str = "accounts/logout/"
    roles: str = "accounts/roles/"
    forgot_password: str = "accounts/auth/forgot-password/"
    reset_password: str = "accounts/auth/reset-password/"
    verify_reset_token: str = "accounts/auth/verify-reset-token/"


class SessionSettings(BaseModel):
    """Recognised session options, persisted at ``<config_dir>/config.json``.

    Loaded and saved by :func:`~agencyauth.config.load_settings` and
    :func:`~agencyauth.config.save_settings`. See
    :func:`~agencyauth.config.resolve_settings` for the precedence chain.

    Example::

        SessionSettings(refreshThresholdMinutes=5, requestTimeoutMs=10_000)
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    profile: str = Field(
        default="default", description="Name of the credential profile to use"
    )
    base_url: str = Field(
        default="http://localhost:8000/api/v1/",
        description="Base URL of the agency-management API",
    )
    refresh_threshold_minutes: float = Field(
        default=5,
        ge=0,
        description="Lead time before hard expiry at which a token is due for refresh",
    )
    refresh_interval_minutes: float = Field(
        default=4, gt=0, description="Background refresh loop tick period"
    )
    request_timeout_ms: int = Field(
        default=10_000, gt=0, description="Per-call timeout in milliseconds"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)

    @property
    def refresh_threshold_seconds(self) -> float:
        return self.refresh_threshold_minutes * 60

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_minutes * 60

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000


# --- Session data ---


class TokenPair(BaseModel):
    """An access/refresh token pair as handed out by the login endpoint."""

    access_token: str
    refresh_token: str


class Role(str, enum.Enum):
    """Roles recognised by the permission guards."""

    ADMIN = "admin"
    GENERAL_MANAGER = "general_manager"
    PROJECT_COORDINATOR = "project_coordinator"
    EMPLOYEE = "employee"
    HR = "hr"


_BACKEND_ROLES: dict[str, Role] = {
    "admin": Role.ADMIN,
    "general_manager": Role.GENERAL_MANAGER,
    "project_coordinator": Role.PROJECT_COORDINATOR,
    "employee": Role.EMPLOYEE,
    "hr": Role.HR,
    "OPERATION_ADMIN": Role.ADMIN,
}


def map_backend_role(value: Optional[str]) -> Role:
    """Translate a backend role string into a :class:`Role`.

    Unknown and missing roles fall back to :attr:`Role.EMPLOYEE`, the
    least-privileged role.
    """
    if not value:
        return Role.EMPLOYEE
    return _BACKEND_ROLES.get(value, Role.EMPLOYEE)


class UserRecord(BaseModel):
    """The signed-in user as cached in the credential store."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: Role = Role.EMPLOYEE
    is_active: bool = True
    avatar: Optional[str] = None

    @classmethod
    def from_backend(
        cls, user: BackendUser, profile: Optional[dict[str, Any]] = None
    ) -> UserRecord:
        """Build a record from the login response's ``user`` and ``profile`` objects.

        Names are derived from ``username`` (``jane.doe`` -> ``Jane``/``doe``
        as given), falling back to the local part of the email address.
        """
        username = user.username or user.email.split("@")[0]
        parts = username.split(".")
        avatar = profile.get("avatar") if profile else None
        return cls(
            id=str(user.id),
            email=user.email,
            first_name=parts[0] or username,
            last_name=parts[1] if len(parts) > 1 else "",
            role=map_backend_role(user.role),
            is_active=True if user.is_active is None else user.is_active,
            avatar=avatar or None,
        )


# --- Wire models ---


class BackendUser(BaseModel):
    """The ``user`` object embedded in the login response."""

    model_config = ConfigDict(extra="ignore")

    id: Union[int, str]
    email: str
    username: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class LoginResponse(BaseModel):
    """Body of a successful ``POST`` to the login endpoint."""

    model_config = ConfigDict(extra="ignore")

    access: str = Field(validation_alias=AliasChoices("access", "accessToken"))
    refresh: str = Field(validation_alias=AliasChoices("refresh", "refreshToken"))
    user: BackendUser
    profile: Optional[dict[str, Any]] = None

    @property
    def tokens(self) -> TokenPair:
        return TokenPair(access_token=self.access, refresh_token=self.refresh)


class RefreshResponse(BaseModel):
    """Body of a successful ``POST`` to the refresh endpoint.

    ``refresh`` is only present when the server rotates refresh tokens.
    """

    model_config = ConfigDict(extra="ignore")

    access: str = Field(validation_alias=AliasChoices("access", "accessToken"))
    refresh: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refresh", "refreshToken")
    )
