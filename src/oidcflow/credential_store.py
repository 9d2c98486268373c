"""Persistent storage for the single session snapshot.

A :class:`CredentialStore` keeps exactly one serialised
:class:`~oidcflow.models.Session` under a fixed key. It never changes a
session on its own: it saves and restores snapshots, and evicts any snapshot
that is malformed or whose ``expires_at`` is no longer strictly in the
future.

Storage failures never escape a store. ``save`` reports them as ``False``,
``load`` reports them as "no session", and ``clear`` always succeeds, so the
caller can always fall back to an unauthenticated state.

Two media are provided:

- :class:`FileCredentialStore` -- ``~/.local/share/oidcflow/session.json``
  (XDG) written atomically with ``0o600`` permissions.
- :class:`MemoryCredentialStore` -- process-local, for embedding and tests.

See Also:
    :class:`~oidcflow.engine.AuthEngine` -- the only writer of sessions.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from oidcflow.config import atomic_write, get_data_dir
from oidcflow.models import Clock, Session, utc_now

logger = logging.getLogger(__name__)

SESSION_KEY = "session.json"
"""The well-known key (file name) under which the snapshot is stored."""


class CredentialStore(ABC):
    """Expiry-aware persistence of one session snapshot.

    Subclasses provide the storage medium through :meth:`_read`,
    :meth:`_write`, and :meth:`_delete`; serialisation and eviction rules
    live here so every medium behaves the same.

    Args:
        clock: Returns the current instant; used to evict expired snapshots.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utc_now

    # ------------------------------------------------------------------ #
    # Medium
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _read(self) -> Optional[str]:
        """Return the stored text, or ``None`` if nothing is stored."""
        ...

    @abstractmethod
    def _write(self, text: str) -> None:
        """Replace the stored text atomically."""
        ...

    @abstractmethod
    def _delete(self) -> None:
        """Remove the stored text. Must not fail if nothing is stored."""
        ...

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def save(self, session: Session) -> bool:
        """Persist *session*, replacing any previous snapshot.

        Returns:
            ``True`` on success, ``False`` if serialisation or the medium
            failed (the failure is logged, never raised).
        """
        try:
            text = json.dumps(session.model_dump(mode="json"), indent=2) + "\n"
            self._write(text)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Could not save session snapshot: %s", exc)
            return False
        return True

    def load(self) -> Optional[Session]:
        """Restore the snapshot if it is well-formed and unexpired.

        A malformed or expired snapshot is cleared before returning ``None``.
        """
        try:
            text = self._read()
        except UnicodeDecodeError as exc:
            logger.warning("Discarding undecodable session snapshot: %s", exc)
            self.clear()
            return None
        except OSError as exc:
            logger.warning("Could not read session snapshot: %s", exc)
            return None
        if text is None:
            return None

        try:
            session = Session.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning("Discarding unreadable session snapshot: %s", exc)
            self.clear()
            return None

        if session.is_expired(self._clock()):
            logger.debug("Discarding expired session snapshot")
            self.clear()
            return None
        return session

    def clear(self) -> None:
        """Remove the snapshot. Idempotent."""
        try:
            self._delete()
        except OSError as exc:
            logger.warning("Could not remove session snapshot: %s", exc)


class FileCredentialStore(CredentialStore):
    """Store the snapshot in a JSON file readable only by the owner.

    Writes go to a temp file in the same directory that is fsynced and then
    renamed into place, so readers never observe a half-written snapshot.

    Args:
        path: Snapshot location. Defaults to ``<data_dir>/session.json``.
        clock: See :class:`CredentialStore`.

    Example::

        store = FileCredentialStore()
        store.save(session)
        assert store.load() == session
    """

    def __init__(self, path: Optional[Path] = None, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self._path = path or get_data_dir() / SESSION_KEY

    @property
    def path(self) -> Path:
        """The filesystem path of the snapshot."""
        return self._path

    def _read(self) -> Optional[str]:
        if not self._path.is_file():
            return None
        return self._path.read_text(encoding="utf-8")

    def _write(self, text: str) -> None:
        atomic_write(self._path, text, mode=0o600)

    def _delete(self) -> None:
        self._path.unlink(missing_ok=True)


class MemoryCredentialStore(CredentialStore):
    """Keep the serialised snapshot in memory.

    The snapshot is stored as text, so loads go through the same
    parse-and-evict path as :class:`FileCredentialStore`.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self._text: Optional[str] = None

    def _read(self) -> Optional[str]:
        return self._text

    def _write(self, text: str) -> None:
        self._text = text

    def _delete(self) -> None:
        self._text = None
