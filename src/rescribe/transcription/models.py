"""Data models for transcription results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Unassigned:
    """Speaker cluster discovered during inference, no enrolled identity."""

    index: int


@dataclass(frozen=True)
class Assigned:
    """Speaker resolved against known voices. ``label`` is display-only."""

    id: str
    label: str = ""


SpeakerIdentity = Union[Unassigned, Assigned]


@dataclass
class Segment:
    """Backend-native interval, before normalization."""

    start: float
    end: float
    words: list[tuple[str, float]] = field(default_factory=list)
    speaker: SpeakerIdentity | None = None


@dataclass
class Word:
    text: str
    start: float
    end: float
    confidence: float = 0.0
    speaker: str | None = None


@dataclass
class DiarizationSegment:
    start: float
    end: float
    speaker_label: str
