"""Abstract base class for transcribers."""

from __future__ import annotations

import abc
from pathlib import Path

from rescribe.transcription.models import Segment


class Transcriber(abc.ABC):
    """Base class for transcription + diarization backends."""

    name: str = ""

    @abc.abstractmethod
    async def transcribe(self, audio_path: Path) -> list[Segment]:
        """Transcribe an audio file and return segments in ascending start order."""