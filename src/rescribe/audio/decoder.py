"""Decode recorded session audio into mono float32 samples."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import soundfile as sf

logger = logging.getLogger(__name__)


class AudioDecodeError(Exception):
    """The audio container could not be read."""


def decode_audio(audio_path: Path) -> tuple[np.ndarray, int]:
    """Read an audio file. Returns (mono float32 samples, sample rate)."""
    try:
        data, sample_rate = sf.read(str(audio_path), dtype="float32", always_2d=True)
    except (RuntimeError, OSError) as e:
        raise AudioDecodeError(f"Could not decode {audio_path}: {e}") from e

    # Mix down to mono
    samples = data.mean(axis=1).astype(np.float32) if data.shape[1] > 1 else data[:, 0]

    logger.info(f"Audio loaded: {len(samples) / sample_rate:.2f}s @ {sample_rate}Hz")
    return np.ascontiguousarray(samples), int(sample_rate)


def resample(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """Linear-interpolation resample. Returns the input unchanged if rates match."""
    if src_rate == dst_rate or len(samples) == 0:
        return samples

    target_len = int(len(samples) * dst_rate / src_rate)
    indices = np.linspace(0, len(samples) - 1, target_len)
    return np.interp(indices, np.arange(len(samples)), samples).astype(np.float32)
