"""Retranscription orchestration: validate -> transcribe -> normalize -> persist -> commit.

A run moves through the ``Stage`` states in order and stops at the first
failure, which is raised as a ``RetranscribeError`` tagged with the stage it
happened in. Nothing is retried here.

Runs for the same session are serialized with a per-session lock. Every
request also takes a freshness token. A run only skips the session update when
a request issued after it has already committed its own result; such a run
still writes its artifacts and reports that it was superseded. Runs are
shielded from caller cancellation because local inference cannot be
interrupted anyway.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import itertools
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from rescribe.config import Config
from rescribe.errors import (
    BackendInitError,
    BackendTranscriptionError,
    PersistenceError,
    RetranscribeError,
    SerializationError,
    SessionUpdateError,
    ValidationError,
)
from rescribe.output.json_output import write_results
from rescribe.sessions import Session, SessionNotFoundError, SessionStore, SessionStoreError
from rescribe.transcription import Backend, create_transcriber
from rescribe.transcription.base import Transcriber
from rescribe.transcription.normalize import normalize

logger = logging.getLogger(__name__)

AUDIO_FILENAME = "audio.wav"
TRANSCRIPTION_FILENAME = "transcription.json"
DIARIZATION_FILENAME = "diarization.json"


class Stage(enum.Enum):
    VALIDATING = "validating"
    BACKEND_READY = "backend_ready"
    TRANSCRIBING = "transcribing"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    SESSION_UPDATING = "session_updating"
    DONE = "done"
    FAILED = "failed"


# Classification for failures that escape a stage without one
_STAGE_ERRORS: dict[Stage, type[RetranscribeError]] = {
    Stage.VALIDATING: ValidationError,
    Stage.BACKEND_READY: BackendInitError,
    Stage.TRANSCRIBING: BackendTranscriptionError,
    Stage.NORMALIZING: SerializationError,
    Stage.PERSISTING: PersistenceError,
    Stage.SESSION_UPDATING: SessionUpdateError,
}


@dataclass
class RetranscribeContext:
    """Everything a run needs from the surrounding application."""

    data_dir: Path
    store: SessionStore
    config: Config = field(default_factory=Config)


@dataclass(frozen=True)
class SessionPaths:
    audio: Path
    transcription: Path
    diarization: Path

    @classmethod
    def for_session(cls, data_dir: Path, session_id: str) -> SessionPaths:
        session_dir = data_dir / session_id
        return cls(
            audio=session_dir / AUDIO_FILENAME,
            transcription=session_dir / TRANSCRIPTION_FILENAME,
            diarization=session_dir / DIARIZATION_FILENAME,
        )


@dataclass
class _Run:
    session_id: str
    token: int
    stage: Stage = Stage.VALIDATING

    def advance(self, stage: Stage) -> None:
        self.stage = stage
        logger.info(f"[{self.session_id}] {stage.value}")


def _check_session_id(session_id: str) -> None:
    if not session_id or session_id in (".", "..") or "/" in session_id or "\\" in session_id:
        raise ValidationError(f"Invalid session id: {session_id!r}", stage=Stage.VALIDATING.value)


TranscriberFactory = Callable[..., Transcriber]


class Retranscriber:
    """Re-derives transcription and diarization artifacts for recorded sessions."""

    def __init__(
        self,
        context: RetranscribeContext,
        transcriber_factory: TranscriberFactory = create_transcriber,
    ) -> None:
        self._ctx = context
        self._factory = transcriber_factory
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, context.config.local.workers),
            thread_name_prefix="rescribe-inference",
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, int] = {}
        self._committed: dict[str, int] = {}
        self._tokens = itertools.count(1)
        self._jobs: set[asyncio.Task] = set()

    def __enter__(self) -> Retranscriber:
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the inference worker pool, waiting for in-flight work."""
        self._executor.shutdown(wait=True)

    def _enter(self, session_id: str) -> asyncio.Lock:
        self._pending[session_id] = self._pending.get(session_id, 0) + 1
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _leave(self, session_id: str) -> None:
        self._pending[session_id] -= 1
        if self._pending[session_id] == 0:
            # Nothing holds or waits for the lock any more
            del self._pending[session_id]
            self._locks.pop(session_id, None)
            self._committed.pop(session_id, None)

    def _issue_token(self) -> int:
        return next(self._tokens)

    def _record_commit(self, session_id: str, token: int) -> None:
        self._committed[session_id] = max(token, self._committed.get(session_id, 0))

    def is_superseded(self, session_id: str, token: int) -> bool:
        """True once a request issued after ``token`` has updated the session."""
        return self._committed.get(session_id, 0) > token

    async def retranscribe(self, session_id: str, use_local: bool) -> bool:
        """Re-run transcription + diarization for one session.

        Returns True when the session now points at the new artifacts, and
        False when the artifacts were written but a newer request had already
        committed. Raises a ``RetranscribeError`` subclass on failure. If the
        caller is cancelled the run continues in the background and still
        persists its result.
        """
        backend = Backend.from_flag(use_local)
        token = self._issue_token()
        lock = self._enter(session_id)
        job = asyncio.ensure_future(self._run(_Run(session_id, token), backend, lock))
        self._jobs.add(job)
        job.add_done_callback(functools.partial(self._job_done, session_id))
        return await asyncio.shield(job)

    def _job_done(self, session_id: str, job: asyncio.Task) -> None:
        self._jobs.discard(job)
        self._leave(session_id)
        # Mark the exception retrieved; _run already logged it and a
        # still-waiting caller gets it through the shield.
        if not job.cancelled():
            job.exception()

    async def _run(self, run: _Run, backend: Backend, lock: asyncio.Lock) -> bool:
        session_id = run.session_id
        try:
            logger.info(f"[{session_id}] {run.stage.value} ({backend.value} backend)")
            _check_session_id(session_id)
            paths = SessionPaths.for_session(self._ctx.data_dir, session_id)
            if not paths.audio.exists():
                raise ValidationError("Audio file does not exist")

            async with lock:
                run.advance(Stage.BACKEND_READY)
                session = await self._load_session(session_id)
                transcriber = await self._create_backend(backend, session)

                run.advance(Stage.TRANSCRIBING)
                segments = await transcriber.transcribe(paths.audio)

                run.advance(Stage.NORMALIZING)
                words, diarization = normalize(segments)

                run.advance(Stage.PERSISTING)
                await asyncio.to_thread(
                    write_results, words, diarization, paths.transcription, paths.diarization
                )

                run.advance(Stage.SESSION_UPDATING)
                if self.is_superseded(session_id, run.token):
                    logger.warning(
                        f"[{session_id}] superseded by a newer committed request, "
                        f"leaving session record alone"
                    )
                    return False
                await self._update_session(session_id, paths)
                self._record_commit(session_id, run.token)

                run.advance(Stage.DONE)
                logger.info(
                    f"[{session_id}] {len(words)} words, {len(diarization)} speaker segments"
                )
                return True
        except RetranscribeError as e:
            self._fail(run, e)
            raise
        except Exception as e:
            error = _STAGE_ERRORS.get(run.stage, RetranscribeError)(f"Unexpected failure: {e}")
            self._fail(run, error)
            raise error from e

    def _fail(self, run: _Run, error: RetranscribeError) -> None:
        error.stage = run.stage.value
        run.stage = Stage.FAILED
        logger.error(f"[{run.session_id}] failed in {error.stage} ({error.kind}): {error.message}")

    async def _load_session(self, session_id: str) -> Session:
        try:
            return await asyncio.to_thread(self._ctx.store.session_get, session_id)
        except SessionNotFoundError as e:
            raise ValidationError(f"Unknown session: {session_id}") from e
        except SessionStoreError as e:
            raise ValidationError(f"Could not load session {session_id}: {e}") from e

    async def _create_backend(self, backend: Backend, session: Session) -> Transcriber:
        create = functools.partial(
            self._factory,
            backend,
            self._ctx.config,
            self._ctx.data_dir,
            session.language,
            executor=self._executor,
        )
        if backend is Backend.LOCAL:
            # Model loading is heavy; keep it off the event loop
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, create)
        return create()

    async def _update_session(self, session_id: str, paths: SessionPaths) -> None:
        try:
            await asyncio.to_thread(
                self._ctx.store.session_update_transcription,
                session_id,
                paths.transcription,
                paths.diarization,
            )
        except (SessionStoreError, SessionNotFoundError) as e:
            raise SessionUpdateError(f"Could not update session {session_id}: {e}") from e

    async def commit_session(self, session_id: str) -> None:
        """Re-run only the session update, for artifacts that are already on disk."""
        _check_session_id(session_id)
        paths = SessionPaths.for_session(self._ctx.data_dir, session_id)
        if not (paths.transcription.exists() and paths.diarization.exists()):
            raise ValidationError("Transcription artifacts do not exist", stage=Stage.VALIDATING.value)

        lock = self._enter(session_id)
        try:
            async with lock:
                logger.info(f"[{session_id}] {Stage.SESSION_UPDATING.value}")
                await self._update_session(session_id, paths)
        except SessionUpdateError as e:
            e.stage = Stage.SESSION_UPDATING.value
            raise
        finally:
            self._leave(session_id)


def retranscribe(context: RetranscribeContext, session_id: str, use_local: bool) -> bool:
    """Blocking entry point: run one retranscription to completion.

    Returns False if a newer request already updated the session.
    """
    with Retranscriber(context) as retranscriber:
        return asyncio.run(retranscriber.retranscribe(session_id, use_local))


def commit_session(context: RetranscribeContext, session_id: str) -> None:
    """Blocking entry point for ``Retranscriber.commit_session``."""
    with Retranscriber(context) as retranscriber:
        asyncio.run(retranscriber.commit_session(session_id))
