"""Configuration management with TOML loading and defaults."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_DIR = Path("~/.config/rescribe").expanduser()
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_CONFIG_TOML = """\
[data]
dir = "~/.local/share/rescribe"   # one sub-directory per session, plus models/

[local]
threads = 4               # whisper.cpp inference threads
workers = 1               # dedicated worker threads for model load + inference
diarization = true        # run the pyannote segmentation model when it is installed

[cloud]
host = "https://api.deepgram.com"
api_key = ""              # or set DEEPGRAM_API_KEY
model = "nova-2"
timeout = 300.0           # seconds, applies to the whole upload + response
"""


@dataclass
class DataConfig:
    dir: str = "~/.local/share/rescribe"

    @property
    def resolved_dir(self) -> Path:
        return Path(self.dir).expanduser()


@dataclass
class LocalConfig:
    threads: int = 4
    workers: int = 1
    diarization: bool = True


@dataclass
class CloudConfig:
    host: str = "https://api.deepgram.com"
    api_key: str = ""
    model: str = "nova-2"
    timeout: float = 300.0


@dataclass
class Config:
    data: DataConfig = field(default_factory=DataConfig)
    local: LocalConfig = field(default_factory=LocalConfig)
    cloud: CloudConfig = field(default_factory=CloudConfig)

    @classmethod
    def load(cls) -> Config:
        """Load config from TOML file, falling back to defaults."""
        config = cls()

        if CONFIG_PATH.exists():
            with open(CONFIG_PATH, "rb") as f:
                data = tomllib.load(f)
            config = _merge_toml(config, data)

        # Env var overrides
        if api_key := os.environ.get("DEEPGRAM_API_KEY"):
            config.cloud.api_key = api_key
        if data_dir := os.environ.get("RESCRIBE_DATA_DIR"):
            config.data.dir = data_dir

        return config


def _merge_toml(config: Config, data: dict) -> Config:
    """Merge TOML data into config dataclass."""
    for section in ("data", "local", "cloud"):
        if section not in data:
            continue
        target = getattr(config, section)
        for k, v in data[section].items():
            if hasattr(target, k):
                setattr(target, k, v)

    return config


def ensure_config_file() -> Path:
    """Create default config file if it doesn't exist. Returns the path."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    if not CONFIG_PATH.exists():
        CONFIG_PATH.write_text(DEFAULT_CONFIG_TOML)
    return CONFIG_PATH
