"""Error classification for retranscription failures.

Every failure that escapes the retranscription state machine is one of the
classes below. ``stage`` names the state the run was in when it failed and is
filled in by the orchestrator.
"""

from __future__ import annotations


class RetranscribeError(Exception):
    """Base class for classified retranscription failures."""

    kind = "error"

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage


class ValidationError(RetranscribeError):
    """Audio artifact missing or session unknown. Nothing was touched."""

    kind = "validation"


class BackendInitError(RetranscribeError):
    """Model file missing/corrupt, or cloud client misconfigured."""

    kind = "backend_init"


class BackendTranscriptionError(RetranscribeError):
    """Inference or network failure. The whole operation may be retried."""

    kind = "backend_transcription"


class SerializationError(RetranscribeError):
    """Canonical result could not be encoded. No artifact was written."""

    kind = "serialization"


class PersistenceError(RetranscribeError):
    """An artifact write failed. Artifacts written before it stay written."""

    kind = "persistence"


class SessionUpdateError(RetranscribeError):
    """Artifacts are on disk but the session store was not updated.

    Retry with ``Retranscriber.commit_session`` instead of a full run.
    """

    kind = "session_update"
