from __future__ import annotations

import enum
from concurrent.futures import Executor
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rescribe.config import Config
    from rescribe.transcription.base import Transcriber


class Backend(enum.Enum):
    LOCAL = "local"
    CLOUD = "cloud"

    @classmethod
    def from_flag(cls, use_local: bool) -> Backend:
        return cls.LOCAL if use_local else cls.CLOUD


def create_transcriber(
    backend: Backend,
    config: Config,
    data_dir: Path,
    language: str,
    executor: Executor | None = None,
) -> Transcriber:
    """Create the transcriber for the selected backend."""
    if backend is Backend.LOCAL:
        from rescribe.transcription.local_transcriber import LocalTranscriber

        return LocalTranscriber(data_dir, language, config.local, executor=executor)
    else:
        from rescribe.transcription.cloud_transcriber import CloudTranscriber

        return CloudTranscriber(language, config.cloud)
