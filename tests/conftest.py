"""Shared fixtures for rescribe tests."""

from __future__ import annotations

import math
import os
import struct
import wave
from pathlib import Path

import pytest

from rescribe.config import Config
from rescribe.retranscribe import RetranscribeContext
from rescribe.sessions import JsonSessionStore, Session
from rescribe.transcription.base import Transcriber
from rescribe.transcription.models import Assigned, Segment, Unassigned

SESSION_ID = "session-1"


def write_sine_wav(path: Path, sample_rate: int = 16000, duration: float = 0.5, channels: int = 1) -> Path:
    """Write a 440Hz sine wave as 16-bit PCM."""
    n_samples = int(sample_rate * duration)

    frames = []
    for i in range(n_samples):
        t = i / sample_rate
        value = int(32767 * 0.5 * math.sin(2 * math.pi * 440.0 * t))
        frames.append(struct.pack("<h", value) * channels)

    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(b"".join(frames))
    return path


class FakeTranscriber(Transcriber):
    """Returns canned segments and records the audio paths it was given."""

    name = "fake"

    def __init__(self, segments: list[Segment] | None = None, error: Exception | None = None) -> None:
        self.segments = segments or []
        self.error = error
        self.calls: list[Path] = []

    async def transcribe(self, audio_path: Path) -> list[Segment]:
        self.calls.append(audio_path)
        if self.error is not None:
            raise self.error
        return [
            Segment(start=s.start, end=s.end, words=list(s.words), speaker=s.speaker)
            for s in self.segments
        ]


class RecordingFactory:
    """Transcriber factory that hands out one transcriber and counts calls."""

    def __init__(self, transcriber: Transcriber | None = None, error: Exception | None = None) -> None:
        self.transcriber = transcriber or FakeTranscriber()
        self.error = error
        self.calls: list[tuple] = []

    def __call__(self, backend, config, data_dir, language, executor=None) -> Transcriber:
        self.calls.append((backend, language))
        if self.error is not None:
            raise self.error
        return self.transcriber


@pytest.fixture
def cloud_segments() -> list[Segment]:
    """Three words over 0.0-4.2s from one resolved speaker."""
    return [
        Segment(
            start=0.0,
            end=4.2,
            words=[("Hello", 0.99), ("there,", 0.95), ("everyone.", 0.9)],
            speaker=Assigned(id="spk_1", label="Alice"),
        )
    ]


@pytest.fixture
def mixed_segments() -> list[Segment]:
    """One unenrolled cluster, one resolved speaker, one silent-speaker segment."""
    return [
        Segment(start=0.0, end=1.5, words=[("Good", 0.8), ("morning.", 0.8)], speaker=Unassigned(index=0)),
        Segment(start=1.5, end=3.0, words=[("Hi", 0.7), ("Bob.", 0.7)], speaker=Assigned(id="spk_1", label="Alice")),
        Segment(start=3.0, end=3.5, words=[("Okay.", 0.6)], speaker=None),
    ]


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Data directory with one recorded session."""
    root = tmp_path / "data"
    session_dir = root / SESSION_ID
    session_dir.mkdir(parents=True)
    write_sine_wav(session_dir / "audio.wav")
    return root


@pytest.fixture
def store(data_dir) -> JsonSessionStore:
    store = JsonSessionStore(data_dir / "sessions.json")
    store.add(Session(id=SESSION_ID, language="en", audio_path=str(data_dir / SESSION_ID / "audio.wav")))
    return store


@pytest.fixture
def context(data_dir, store) -> RetranscribeContext:
    config = Config()
    config.data.dir = str(data_dir)
    return RetranscribeContext(data_dir=data_dir, store=store, config=config)


@pytest.fixture
def tmp_config_file(tmp_path):
    """Write a minimal TOML config to a temp directory and return its path."""
    config_toml = tmp_path / "config.toml"
    config_toml.write_text('[cloud]\nmodel = "nova-3"\n\n[data]\ndir = "/tmp/test-sessions"\n')
    return config_toml


def list_dir(path: Path) -> list[str]:
    return sorted(os.listdir(path))


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip tests that need real model files when running in CI."""
    in_ci = os.environ.get("CI", "").lower() in ("true", "1", "yes")

    for item in items:
        if "hardware" in item.keywords and in_ci:
            item.add_marker(pytest.mark.skip(reason="hardware tests disabled in CI"))
