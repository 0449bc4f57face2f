"""Reshape backend segments into the canonical word / diarization pair."""

from __future__ import annotations

from collections.abc import Iterable

from rescribe.transcription.models import (
    Assigned,
    DiarizationSegment,
    Segment,
    SpeakerIdentity,
    Unassigned,
    Word,
)


def speaker_label(speaker: SpeakerIdentity) -> str:
    """Persisted label for a speaker identity.

    ``Unassigned(3)`` becomes ``"speaker3"``; ``Assigned`` becomes its ``id``,
    never the human-readable ``label``.
    """
    match speaker:
        case Unassigned(index=index):
            return f"speaker{index}"
        case Assigned(id=speaker_id):
            return speaker_id
    raise TypeError(f"Unknown speaker identity: {speaker!r}")


def normalize(segments: Iterable[Segment]) -> tuple[list[Word], list[DiarizationSegment]]:
    """Expand segments into words and speaker intervals, preserving order."""
    words: list[Word] = []
    diarization: list[DiarizationSegment] = []

    for seg in segments:
        label = speaker_label(seg.speaker) if seg.speaker is not None else None

        for text, confidence in seg.words:
            words.append(
                Word(
                    text=text,
                    start=seg.start,
                    end=seg.end,
                    confidence=confidence,
                    speaker=label,
                )
            )

        if label is not None:
            diarization.append(DiarizationSegment(start=seg.start, end=seg.end, speaker_label=label))

    return words, diarization
