"""JSON artifacts for the canonical transcription / diarization result."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path

from rescribe.errors import PersistenceError, SerializationError
from rescribe.transcription.models import DiarizationSegment, Word

logger = logging.getLogger(__name__)


def _encode(items: Sequence[Word] | Sequence[DiarizationSegment]) -> bytes:
    text = json.dumps([asdict(item) for item in items], indent=2, ensure_ascii=False, allow_nan=False)
    # Lone surrogates survive json.dumps but not UTF-8
    return (text + "\n").encode("utf-8")


def format_transcription_json(words: Sequence[Word]) -> bytes:
    """Format words as a UTF-8 JSON array."""
    try:
        return _encode(words)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Could not encode transcription: {e}") from e


def format_diarization_json(segments: Sequence[DiarizationSegment]) -> bytes:
    """Format speaker intervals as a UTF-8 JSON array."""
    try:
        return _encode(segments)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Could not encode diarization: {e}") from e


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` so readers see either the old or the new file.

    Content is staged in a sibling temp file, fsynced, then renamed over the
    target. The temp file is removed if anything fails.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, text: str) -> None:
    """UTF-8 text variant of ``atomic_write_bytes``."""
    atomic_write_bytes(path, text.encode("utf-8"))


def write_results(
    words: Sequence[Word],
    diarization: Sequence[DiarizationSegment],
    transcription_path: Path,
    diarization_path: Path,
) -> None:
    """Persist both artifacts, transcription first.

    Both payloads are encoded before anything is written. If the diarization
    write fails, the new transcription stays in place.
    """
    transcription_json = format_transcription_json(words)
    diarization_json = format_diarization_json(diarization)

    for path, data in ((transcription_path, transcription_json), (diarization_path, diarization_json)):
        try:
            atomic_write_bytes(path, data)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e
        logger.info(f"Wrote {path}")


def load_transcription(path: Path) -> list[Word]:
    """Parse a transcription.json artifact."""
    return [Word(**item) for item in json.loads(path.read_text(encoding="utf-8"))]


def load_diarization(path: Path) -> list[DiarizationSegment]:
    """Parse a diarization.json artifact."""
    return [DiarizationSegment(**item) for item in json.loads(path.read_text(encoding="utf-8"))]
