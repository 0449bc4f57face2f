"""Cloud transcription + diarization through a Deepgram-compatible API."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from rescribe.config import CloudConfig
from rescribe.errors import BackendInitError, BackendTranscriptionError
from rescribe.transcription.base import Transcriber
from rescribe.transcription.models import Assigned, Segment, SpeakerIdentity, Unassigned

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = frozenset({
    "bg", "ca", "cs", "da", "de", "de-CH", "el", "en", "en-AU", "en-GB", "en-IN",
    "en-NZ", "en-US", "es", "es-419", "et", "fi", "fr", "fr-CA", "hi", "hu", "id",
    "it", "ja", "ko", "ko-KR", "lt", "lv", "ms", "multi", "nl", "nl-BE", "no", "pl",
    "pt", "pt-BR", "ro", "ru", "sk", "sv", "sv-SE", "th", "th-TH", "tr", "uk", "vi",
    "zh", "zh-CN", "zh-TW",
})


def _speaker_from(item: dict) -> SpeakerIdentity | None:
    """Speaker identity of an utterance or word.

    Services with voice enrolment attach ``speaker_id`` (and ``speaker_name``);
    plain diarization only gives an integer cluster in ``speaker``.
    """
    speaker_id = item.get("speaker_id")
    if speaker_id is not None:
        return Assigned(id=str(speaker_id), label=str(item.get("speaker_name") or speaker_id))
    speaker = item.get("speaker")
    if isinstance(speaker, int) and not isinstance(speaker, bool):
        return Unassigned(index=speaker)
    return None


def _word_entry(w: dict) -> tuple[str, float]:
    return w.get("punctuated_word") or w.get("word", ""), float(w.get("confidence", 0.0))


def parse_response(payload: dict) -> list[Segment]:
    """Convert a /v1/listen response body into segments ordered by start."""
    results = payload.get("results") or {}
    segments: list[Segment] = []

    utterances = results.get("utterances")
    if utterances:
        for utt in utterances:
            words = [_word_entry(w) for w in utt.get("words", [])]
            if not words:
                continue
            segments.append(
                Segment(
                    start=float(utt.get("start", 0.0)),
                    end=float(utt.get("end", 0.0)),
                    words=words,
                    speaker=_speaker_from(utt),
                )
            )
    else:
        # No utterances: group channel-0 words into same-speaker runs
        channels = results.get("channels") or [{}]
        alternatives = channels[0].get("alternatives") or [{}]
        current: Segment | None = None
        for w in alternatives[0].get("words", []):
            speaker = _speaker_from(w)
            if current is None or speaker != current.speaker:
                current = Segment(
                    start=float(w.get("start", 0.0)),
                    end=float(w.get("end", 0.0)),
                    speaker=speaker,
                )
                segments.append(current)
            current.words.append(_word_entry(w))
            current.end = max(current.end, float(w.get("end", 0.0)))

    segments.sort(key=lambda s: s.start)
    return segments


class CloudTranscriber(Transcriber):
    """Sends the whole recording to the cloud service in one request."""

    name = "cloud"

    def __init__(self, language: str, config: CloudConfig | None = None) -> None:
        self._config = config or CloudConfig()
        self._language = language or "en"

        if not self._config.api_key:
            raise BackendInitError(
                "No cloud API key configured. Set DEEPGRAM_API_KEY or api_key in [cloud]."
            )
        if self._language not in SUPPORTED_LANGUAGES:
            raise BackendInitError(f"Unsupported language for cloud transcription: {self._language!r}")

        self._url = self._config.host.rstrip("/") + "/v1/listen"

    async def transcribe(self, audio_path: Path) -> list[Segment]:
        try:
            content = audio_path.read_bytes()
        except OSError as e:
            raise BackendTranscriptionError(f"Could not read {audio_path}: {e}") from e

        params = {
            "model": self._config.model,
            "language": self._language,
            "diarize": "true",
            "punctuate": "true",
            "utterances": "true",
        }
        headers = {
            "Authorization": f"Token {self._config.api_key}",
            "Content-Type": "audio/wav",
        }

        logger.info(f"Uploading {len(content) / 1e6:.1f} MB to {self._url}")
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout, connect=10.0)) as client:
                response = await client.post(self._url, params=params, headers=headers, content=content)
        except httpx.TimeoutException as e:
            raise BackendTranscriptionError(f"Cloud transcription timed out: {e}") from e
        except httpx.HTTPError as e:
            raise BackendTranscriptionError(f"Cloud transcription request failed: {e}") from e

        if response.status_code in (401, 403):
            raise BackendTranscriptionError(
                f"Cloud transcription rejected the API key (HTTP {response.status_code})"
            )
        if not response.is_success:
            raise BackendTranscriptionError(
                f"Cloud transcription failed (HTTP {response.status_code}): {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise BackendTranscriptionError(f"Cloud transcription returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise BackendTranscriptionError("Cloud transcription returned an unexpected body")

        try:
            segments = parse_response(payload)
        except (TypeError, ValueError, AttributeError, KeyError, IndexError) as e:
            raise BackendTranscriptionError(f"Cloud transcription returned a malformed body: {e}") from e
        logger.info(f"Cloud transcription produced {len(segments)} segments")
        return segments
