"""
Persisted conversation sessions.

A session is a named, bounded list of turns stored as one JSON file per name
under ``~/.tt``. Sessions without a name are ephemeral: they never touch
disk and hold no context between invocations.

Persistence is best-effort. Write failures are logged and ignored so the
in-memory session keeps working for the rest of the process.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from termtutor.errors import InvalidSessionNameError, PersistenceError, SessionNotFoundError

logger = logging.getLogger(__name__)

MAX_TURNS = 10
SESSION_DIR_ENV = "TERMTUTOR_SESSION_DIR"
SESSION_SUFFIX = ".json"

ROLE_USER = "user"
ROLE_MODEL = "model"
ROLES = (ROLE_USER, ROLE_MODEL)


def default_session_dir() -> Path:
    override = os.environ.get(SESSION_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".tt"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation"""

    role: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [{"text": self.text}]}

    @classmethod
    def from_dict(cls, data: Any) -> "Turn":
        """Build a Turn from a ``{role, parts:[{text}]}`` record.

        Raises:
            ValueError: if the record is not well-formed
        """
        if not isinstance(data, dict):
            raise ValueError("turn record is not an object")
        role = data.get("role")
        parts = data.get("parts")
        if role not in ROLES:
            raise ValueError(f"unknown role: {role!r}")
        if not isinstance(parts, list) or not parts:
            raise ValueError("turn record has no parts")
        texts = []
        for part in parts:
            if not isinstance(part, dict) or not isinstance(part.get("text"), str):
                raise ValueError("turn part has no text")
            texts.append(part["text"])
        return cls(role=role, text="".join(texts))


class Session:
    """An ordered, bounded turn history, optionally backed by a file."""

    def __init__(self, name: str = "", path: Path | None = None, turns: list[Turn] | None = None):
        self.name = name or ""
        self.path = path if self.name else None
        self._turns: list[Turn] = list(turns or [])

    @property
    def is_ephemeral(self) -> bool:
        return self.path is None

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def to_contents(self) -> list[dict[str, Any]]:
        """Turns in the wire shape used by the remote API."""
        return [turn.to_dict() for turn in self._turns]

    def append(self, turn: Turn) -> None:
        """Append one turn, trim, and persist. No-op for ephemeral sessions."""
        self.extend([turn])

    def clear(self) -> None:
        """Forget all turns. No-op for ephemeral sessions."""
        if self.is_ephemeral:
            return
        self._turns.clear()
        self._persist()

    def extend(self, turns: list[Turn]) -> None:
        """Append several turns with a single trim-and-persist."""
        if self.is_ephemeral:
            return
        self._turns.extend(turns)
        self._trim()
        self._persist()

    def _trim(self) -> None:
        # Drop whole user/model pairs, oldest first
        limit = MAX_TURNS * 2
        while len(self._turns) > limit:
            del self._turns[:2]
        logger.debug(f"Session '{self.name}' holds {len(self._turns)} turns")

    def _persist(self) -> None:
        try:
            self._write()
        except PersistenceError as e:
            logger.warning(f"Session '{self.name}' not saved: {e}")

    def _write(self) -> None:
        """Atomically write the session file with owner-only permissions."""
        assert self.path is not None
        temp_path = self.path.with_suffix(".tmp")
        try:
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_contents(), f, indent=2, ensure_ascii=False)
            os.chmod(temp_path, 0o600)
            temp_path.replace(self.path)
        except OSError as e:
            raise PersistenceError(str(e)) from e


class SessionStore:
    """
    Loads, lists and deletes persisted sessions.

    One file per session: ``<sessions_dir>/<name>.json``. The directory is
    created with mode 700, files with mode 600. Concurrent writers of the
    same session race; the last write wins.
    """

    def __init__(self, sessions_dir: Path | None = None):
        self.sessions_dir = Path(sessions_dir) if sessions_dir else default_session_dir()

    @staticmethod
    def validate_name(name: str) -> str:
        name = name.strip()
        if not name or name.startswith(".") or "/" in name or "\\" in name or "\0" in name:
            raise InvalidSessionNameError(f"Invalid session name: {name!r}")
        return name

    def _path_for(self, name: str) -> Path:
        return self.sessions_dir / f"{name}{SESSION_SUFFIX}"

    def _ensure_directory(self) -> None:
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            self.sessions_dir.chmod(0o700)
        except OSError as e:
            logger.warning(f"Could not prepare session directory {self.sessions_dir}: {e}")

    def load(self, name: str | None) -> Session:
        """Load a session by name; an empty name gives an ephemeral session.

        Missing, unreadable or malformed files yield an empty session.
        """
        if not name:
            return Session()
        name = self.validate_name(name)
        self._ensure_directory()
        path = self._path_for(name)
        return Session(name=name, path=path, turns=self._read_turns(path))

    def _read_turns(self, path: Path) -> list[Turn]:
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"Starting empty session, could not read {path}: {e}")
            return []
        if not isinstance(data, list):
            return []
        try:
            return [Turn.from_dict(record) for record in data]
        except ValueError as e:
            logger.debug(f"Starting empty session, malformed {path}: {e}")
            return []

    def delete(self, name: str) -> None:
        """Remove a persisted session.

        Raises:
            SessionNotFoundError: if no such session exists
        """
        path = self._path_for(self.validate_name(name))
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise SessionNotFoundError(f"Session '{name}' not found") from e

    def list(self) -> set[str]:
        """Names of all persisted sessions."""
        if not self.sessions_dir.is_dir():
            return set()
        return {
            entry.stem
            for entry in self.sessions_dir.iterdir()
            if entry.is_file() and entry.suffix == SESSION_SUFFIX
        }
