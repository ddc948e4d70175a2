"""Settings management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for agencyauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.agencyauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- A single :class:`~agencyauth.models.SessionSettings` JSON
  file. Managed via :func:`load_settings` and :func:`save_settings`.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables and the settings file into the effective settings.
* **Credential paths** -- :func:`get_credentials_dir` is where the
  :class:`~agencyauth.auth.credential_store.FileCredentialStore` keeps one
  JSON file per profile.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written file behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from agencyauth.exceptions import ConfigError
from agencyauth.models import SessionSettings

_APP_NAME = "agencyauth"
_CONFIG_FILENAME = "config.json"

ENV_PROFILE = "AGENCYAUTH_PROFILE"
ENV_BASE_URL = "AGENCYAUTH_BASE_URL"
ENV_TIMEOUT_MS = "AGENCYAUTH_TIMEOUT_MS"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/agencyauth/`` (default ``~/.config/agencyauth/``).
    On macOS/Windows: ``~/.agencyauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/agencyauth/`` (default ``~/.local/share/agencyauth/``).
    On macOS/Windows: ``~/.agencyauth/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_credentials_dir() -> Path:
    """Return ``<data_dir>/credentials/``, creating it if necessary."""
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file is created next to *path* so that ``os.replace`` is
    an atomic rename on POSIX. When *mode* is given the permissions are set
    on the temp file before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings file ---


def settings_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_settings() -> SessionSettings:
    """Load settings from the config directory.

    Returns:
        The deserialised :class:`~agencyauth.models.SessionSettings`, or a
        default instance when no file exists.

    Raises:
        ConfigError: If the file contains invalid JSON or invalid values.
    """
    path = settings_path()
    if not path.is_file():
        return SessionSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return SessionSettings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: SessionSettings) -> None:
    """Persist *settings* atomically, using camelCase keys."""
    data = settings.model_dump(mode="json", by_alias=True)
    atomic_write(settings_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_settings(
    cli_profile: Optional[str] = None,
    cli_base_url: Optional[str] = None,
) -> SessionSettings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_profile``, ``cli_base_url``)
        2. Environment variables (``AGENCYAUTH_PROFILE``,
           ``AGENCYAUTH_BASE_URL``, ``AGENCYAUTH_TIMEOUT_MS``)
        3. The settings file
        4. Defaults

    Raises:
        ConfigError: If the settings file or an environment override is invalid.
    """
    settings = load_settings()
    overrides: dict[str, object] = {}

    env_profile = os.environ.get(ENV_PROFILE)
    if env_profile:
        overrides["profile"] = env_profile
    env_base_url = os.environ.get(ENV_BASE_URL)
    if env_base_url:
        overrides["base_url"] = env_base_url
    env_timeout = os.environ.get(ENV_TIMEOUT_MS)
    if env_timeout:
        overrides["request_timeout_ms"] = env_timeout

    if cli_profile is not None:
        overrides["profile"] = cli_profile
    if cli_base_url is not None:
        overrides["base_url"] = cli_base_url

    if not overrides:
        return settings

    data = settings.model_dump()
    data.update(overrides)
    try:
        return SessionSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings override: {exc}") from exc
