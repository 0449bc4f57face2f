"""Session store contract and a JSON-file implementation."""

from __future__ import annotations

import abc
import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path

from rescribe.output.json_output import atomic_write_text

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """No session with the requested id."""


class SessionStoreError(Exception):
    """The store could not be read or written."""


@dataclass
class Session:
    id: str
    language: str = ""
    audio_path: str = ""
    transcription_path: str = ""
    diarization_path: str = ""


class SessionStore(abc.ABC):
    """Where session records live. Owned by the surrounding application."""

    @abc.abstractmethod
    def session_get(self, session_id: str) -> Session:
        """Return the session, or raise SessionNotFoundError."""

    @abc.abstractmethod
    def session_update_transcription(
        self, session_id: str, transcription_path: Path, diarization_path: Path
    ) -> None:
        """Point the session at new artifacts. Raises SessionStoreError on failure."""


class JsonSessionStore(SessionStore):
    """Sessions kept in a single ``sessions.json`` mapping id -> record."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SessionStoreError(f"Could not read {self._path}: {e}") from e
        return data.get("sessions", {})

    def _save(self, sessions: dict[str, dict]) -> None:
        text = json.dumps({"sessions": sessions}, indent=2, ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self._path, text)
        except (OSError, UnicodeEncodeError) as e:
            raise SessionStoreError(f"Could not write {self._path}: {e}") from e

    def session_get(self, session_id: str) -> Session:
        with self._lock:
            record = self._load().get(session_id)
        if record is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return Session(
            id=session_id,
            language=record.get("language", ""),
            audio_path=record.get("audio_path", ""),
            transcription_path=record.get("transcription_path", ""),
            diarization_path=record.get("diarization_path", ""),
        )

    def session_update_transcription(
        self, session_id: str, transcription_path: Path, diarization_path: Path
    ) -> None:
        with self._lock:
            sessions = self._load()
            if session_id not in sessions:
                raise SessionStoreError(f"Unknown session: {session_id}")
            sessions[session_id]["transcription_path"] = str(transcription_path)
            sessions[session_id]["diarization_path"] = str(diarization_path)
            self._save(sessions)
        logger.info(f"Session {session_id} now points at {transcription_path.name}, {diarization_path.name}")

    def add(self, session: Session) -> None:
        """Insert or replace a session record."""
        with self._lock:
            sessions = self._load()
            record = asdict(session)
            del record["id"]
            sessions[session.id] = record
            self._save(sessions)
