"""Persistence for the active session slot and the session history."""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import TypeAdapter

from eatlock_api.client.models import MealSession

logger = logging.getLogger(__name__)

_history_adapter = TypeAdapter(list[MealSession])


class SessionStore(ABC):
    """Holds at most one active session plus the list of finished sessions."""

    @abstractmethod
    def get_active(self) -> MealSession | None: ...

    @abstractmethod
    def set_active(self, session: MealSession | None) -> None: ...

    @abstractmethod
    def get_history(self) -> list[MealSession]:
        """Finished sessions, newest first."""
        ...

    @abstractmethod
    def append_history(self, session: MealSession) -> None: ...


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._active: MealSession | None = None
        self._history: list[MealSession] = []

    def get_active(self) -> MealSession | None:
        return self._active.model_copy(deep=True) if self._active else None

    def set_active(self, session: MealSession | None) -> None:
        self._active = session.model_copy(deep=True) if session else None

    def get_history(self) -> list[MealSession]:
        return [s.model_copy(deep=True) for s in self._history]

    def append_history(self, session: MealSession) -> None:
        self._history.insert(0, session.model_copy(deep=True))


class JsonFileSessionStore(SessionStore):
    """
    Stores sessions as JSON files in a directory.

    Each write replaces the whole file atomically (write to a temp file,
    then ``os.replace``), so a crash never leaves a half-written record.
    """

    ACTIVE_FILE = "active_session.json"
    HISTORY_FILE = "meal_sessions.json"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _write(self, name: str, payload: str) -> None:
        target = self.directory / name
        tmp = target.with_suffix(target.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, target)

    def _read(self, name: str) -> str | None:
        path = self.directory / name
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def get_active(self) -> MealSession | None:
        raw = self._read(self.ACTIVE_FILE)
        if not raw:
            return None
        return MealSession.model_validate_json(raw)

    def set_active(self, session: MealSession | None) -> None:
        if session is None:
            (self.directory / self.ACTIVE_FILE).unlink(missing_ok=True)
            return
        self._write(self.ACTIVE_FILE, session.model_dump_json())

    def get_history(self) -> list[MealSession]:
        raw = self._read(self.HISTORY_FILE)
        if not raw:
            return []
        return _history_adapter.validate_json(raw)

    def append_history(self, session: MealSession) -> None:
        history = [session, *self.get_history()]
        payload = json.dumps(
            [s.model_dump(mode="json") for s in history],
            indent=2,
        )
        self._write(self.HISTORY_FILE, payload)
        logger.debug(f"Saved session {session.id} ({len(history)} in history)")
