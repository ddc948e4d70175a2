"""Durable key-value storage for the session credentials.

The store holds exactly three string values, under the keys
:data:`ACCESS_TOKEN_KEY`, :data:`REFRESH_TOKEN_KEY` and
:data:`CURRENT_USER_KEY`. Only :class:`~agencyauth.auth.tokens.TokenManager`
reads or writes them.

Two implementations are provided:

- :class:`FileCredentialStore` -- one JSON object per profile under
  ``<data_dir>/credentials/<profile>.json``, rewritten atomically with
  ``0o600`` permissions so secrets are never world-readable, even
  momentarily. Survives process restarts.
- :class:`MemoryCredentialStore` -- a plain dict, for tests and for
  embedding in a process that should not touch the disk.

A missing key is a normal state (logged out), never an error.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

from agencyauth.config import atomic_write, get_credentials_dir

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
CURRENT_USER_KEY = "current_user"

SESSION_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, CURRENT_USER_KEY)


class CredentialStore(ABC):
    """Synchronous, idempotent key-value storage for session credentials."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under *key*, or ``None`` when absent."""
        ...

    @abstractmethod
    def update(self, values: Mapping[str, str]) -> None:
        """Store every item of *values* in a single write."""
        ...

    @abstractmethod
    def discard(self, keys: tuple[str, ...]) -> None:
        """Remove *keys* in a single write. Absent keys are ignored."""
        ...

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def remove(self, key: str) -> None:
        self.discard((key,))


class MemoryCredentialStore(CredentialStore):
    """In-process store backed by a dict."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def update(self, values: Mapping[str, str]) -> None:
        self._values.update(values)

    def discard(self, keys: tuple[str, ...]) -> None:
        for key in keys:
            self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of everything stored."""
        return dict(self._values)


class FileCredentialStore(CredentialStore):
    """Per-profile credential file.

    Every write replaces the whole file atomically (temp file, fsync,
    rename). Removing the last key deletes the file.

    Args:
        profile_name: The profile identifier used to derive the file name.

    Example::

        store = FileCredentialStore("default")
        store.set(ACCESS_TOKEN_KEY, "eyJ...")
        assert store.get(ACCESS_TOKEN_KEY) == "eyJ..."
    """

    def __init__(self, profile_name: str) -> None:
        self._profile_name = profile_name
        self._path = get_credentials_dir() / f"{profile_name}.json"

    @property
    def path(self) -> Path:
        """The filesystem path to this profile's credential file."""
        return self._path

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def update(self, values: Mapping[str, str]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def discard(self, keys: tuple[str, ...]) -> None:
        data = self._read()
        if not any(key in data for key in keys):
            return
        for key in keys:
            data.pop(key, None)
        if data:
            self._write(data)
        else:
            self._path.unlink(missing_ok=True)

    def _read(self) -> dict[str, str]:
        """Load the file, treating a missing or corrupt file as empty."""
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)
