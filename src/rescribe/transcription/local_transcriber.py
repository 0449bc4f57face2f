"""On-device transcription (whisper.cpp) with optional pyannote segmentation.

The acoustic model is a ggml whisper checkpoint loaded through pywhispercpp.
Diarization runs the pyannote powerset segmentation model exported to ONNX:
audio is cut into fixed 10s windows, each window yields per-frame speaker
activity, and every whisper segment is attributed to the speaker slot with the
most active frames inside it. Slots are renumbered in order of first
appearance, so the same audio and weights always give the same indices.

Everything here is blocking. ``transcribe`` hands the work to the executor it
was constructed with so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import logging
import math
from concurrent.futures import Executor
from pathlib import Path

import numpy as np

from rescribe.audio.decoder import AudioDecodeError, decode_audio, resample
from rescribe.config import LocalConfig
from rescribe.errors import BackendInitError, BackendTranscriptionError
from rescribe.transcription.base import Transcriber
from rescribe.transcription.models import Segment, Unassigned

logger = logging.getLogger(__name__)

WHISPER_MODEL = Path("models/whisper/base.en.ggml")
DIARIZATION_MODEL = Path("models/pyannote/speaker_diarization.onnx")

_SAMPLE_RATE = 16000
_WINDOW_SECONDS = 10
_WINDOW_SAMPLES = _WINDOW_SECONDS * _SAMPLE_RATE

# pyannote segmentation-3.0 powerset classes -> active local speaker slots
_POWERSET = [(), (0,), (1,), (2,), (0, 1), (0, 2), (1, 2)]
_NUM_SLOTS = 3


def _load_whisper(model_path: Path, threads: int):
    from pywhispercpp.model import Model

    return Model(
        str(model_path),
        n_threads=threads,
        print_progress=False,
        print_realtime=False,
    )


def _load_segmentation(model_path: Path, threads: int):
    import onnxruntime as ort

    options = ort.SessionOptions()
    options.intra_op_num_threads = threads
    options.inter_op_num_threads = 1
    return ort.InferenceSession(str(model_path), options, providers=["CPUExecutionProvider"])


def frame_activity(scores: np.ndarray) -> np.ndarray:
    """Per-frame speaker activity (frames x slots) from one window of model output.

    Accepts powerset log-probabilities (7 classes) or multilabel probabilities
    (one column per slot).
    """
    if scores.shape[-1] == len(_POWERSET):
        activity = np.zeros((scores.shape[0], _NUM_SLOTS), dtype=np.float32)
        for frame, cls in enumerate(np.argmax(scores, axis=-1)):
            for slot in _POWERSET[cls]:
                activity[frame, slot] = 1.0
        return activity
    return (scores > 0.5).astype(np.float32)


def dominant_speaker(
    activity: np.ndarray, frame_duration: float, start: float, end: float
) -> int | None:
    """Slot with the most active frames in [start, end), or None if silent."""
    first = int(math.floor(start / frame_duration))
    last = max(first + 1, int(math.ceil(end / frame_duration)))
    window = activity[first:last]
    if window.size == 0:
        return None
    totals = window.sum(axis=0)
    if totals.max() <= 0:
        return None
    return int(np.argmax(totals))


class LocalTranscriber(Transcriber):
    """Transcribes and diarizes with models stored under the data directory."""

    name = "local"

    def __init__(
        self,
        data_dir: Path,
        language: str,
        config: LocalConfig | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._config = config or LocalConfig()
        self._language = language or "en"
        self._executor = executor

        whisper_path = data_dir / WHISPER_MODEL
        diarization_path = data_dir / DIARIZATION_MODEL

        if not whisper_path.is_file():
            raise BackendInitError(f"Whisper model not found: {whisper_path}")
        if self._config.diarization and not diarization_path.is_file():
            raise BackendInitError(f"Diarization model not found: {diarization_path}")

        try:
            self._whisper = _load_whisper(whisper_path, self._config.threads)
            self._segmentation = (
                _load_segmentation(diarization_path, self._config.threads)
                if self._config.diarization
                else None
            )
        except ImportError as e:
            raise BackendInitError(
                "Local transcription is not installed. Install with:\n"
                "  pip install 'rescribe[local]'"
            ) from e
        except Exception as e:
            raise BackendInitError(f"Could not load local models: {e}") from e

        logger.info(
            f"Local models loaded: whisper={whisper_path.name}, "
            f"diarization={'on' if self._segmentation is not None else 'off'}"
        )

    async def transcribe(self, audio_path: Path) -> list[Segment]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._transcribe_file, audio_path)

    def _transcribe_file(self, audio_path: Path) -> list[Segment]:
        try:
            samples, sample_rate = decode_audio(audio_path)
        except AudioDecodeError as e:
            raise BackendTranscriptionError(str(e)) from e
        return self.transcribe_samples(samples, sample_rate)

    def transcribe_samples(self, samples: np.ndarray, sample_rate: int) -> list[Segment]:
        """Blocking inference on decoded mono samples."""
        if sample_rate != _SAMPLE_RATE:
            logger.info(f"Resampling {sample_rate}Hz -> {_SAMPLE_RATE}Hz")
            samples = resample(samples, sample_rate, _SAMPLE_RATE)
        if len(samples) == 0:
            logger.warning("No audio samples to transcribe")
            return []

        duration = len(samples) / _SAMPLE_RATE

        try:
            raw_segments = self._whisper.transcribe(samples, language=self._language)
        except Exception as e:
            raise BackendTranscriptionError(f"Local transcription failed: {e}") from e

        segments: list[Segment] = []
        for seg in raw_segments:
            tokens = seg.text.split()
            if not tokens:
                continue
            # whisper.cpp timestamps are centiseconds
            start = min(seg.t0 / 100.0, duration)
            end = max(start, min(seg.t1 / 100.0, duration))
            confidence = float(getattr(seg, "probability", 1.0))
            if not math.isfinite(confidence):
                confidence = 1.0
            segments.append(Segment(start=start, end=end, words=[(t, confidence) for t in tokens]))

        if self._segmentation is not None and segments:
            self._assign_speakers(samples, segments)

        logger.info(f"Local transcription produced {len(segments)} segments")
        return segments

    def _assign_speakers(self, samples: np.ndarray, segments: list[Segment]) -> None:
        try:
            activity, frame_duration = self._diarize(samples)
        except Exception as e:
            raise BackendTranscriptionError(f"Local diarization failed: {e}") from e

        slot_to_index: dict[int, int] = {}
        for seg in segments:
            slot = dominant_speaker(activity, frame_duration, seg.start, seg.end)
            if slot is None:
                continue
            index = slot_to_index.setdefault(slot, len(slot_to_index))
            seg.speaker = Unassigned(index=index)

        logger.info(f"Diarization found {len(slot_to_index)} speakers")

    def _diarize(self, samples: np.ndarray) -> tuple[np.ndarray, float]:
        """Run the segmentation model window by window. Returns (activity, frame duration)."""
        input_name = self._segmentation.get_inputs()[0].name
        num_windows = max(1, math.ceil(len(samples) / _WINDOW_SAMPLES))

        windows: list[np.ndarray] = []
        frames_per_window = 0
        for i in range(num_windows):
            chunk = samples[i * _WINDOW_SAMPLES:(i + 1) * _WINDOW_SAMPLES]
            if len(chunk) < _WINDOW_SAMPLES:
                chunk = np.pad(chunk, (0, _WINDOW_SAMPLES - len(chunk)))
            batch = chunk.astype(np.float32)[None, None, :]
            scores = self._segmentation.run(None, {input_name: batch})[0][0]
            frames_per_window = scores.shape[0]
            windows.append(frame_activity(scores))

        return np.concatenate(windows, axis=0), _WINDOW_SECONDS / frames_per_window
