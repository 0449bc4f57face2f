"""Tests for configuration loading."""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

from rescribe.config import Config, DataConfig, _merge_toml, ensure_config_file


class TestDefaults:
    def test_default_cloud_host(self):
        cfg = Config()
        assert cfg.cloud.host == "https://api.deepgram.com"

    def test_default_cloud_key_empty(self):
        cfg = Config()
        assert cfg.cloud.api_key == ""

    def test_default_local_settings(self):
        cfg = Config()
        assert cfg.local.diarization is True
        assert cfg.local.workers == 1


class TestMergeToml:
    def test_full_override(self):
        cfg = Config()
        data = {
            "local": {"threads": 8, "diarization": False},
            "cloud": {"model": "nova-3", "timeout": 30.0},
        }
        merged = _merge_toml(cfg, data)
        assert merged.local.threads == 8
        assert merged.local.diarization is False
        assert merged.cloud.model == "nova-3"
        assert merged.cloud.timeout == 30.0

    def test_partial_toml_keeps_defaults(self):
        cfg = Config()
        data = {"cloud": {"model": "nova-3"}}
        merged = _merge_toml(cfg, data)
        assert merged.cloud.model == "nova-3"
        # Other sections unchanged
        assert merged.local.threads == 4
        assert merged.data.dir == "~/.local/share/rescribe"

    def test_unknown_keys_ignored(self):
        cfg = Config()
        data = {"local": {"nonexistent_key": 42}, "unknown_section": {"a": 1}}
        merged = _merge_toml(cfg, data)
        assert not hasattr(merged.local, "nonexistent_key")


class TestLoad:
    def test_reads_toml_file(self, tmp_config_file):
        with mock.patch("rescribe.config.CONFIG_PATH", tmp_config_file), mock.patch.dict(os.environ, {}, clear=True):
            cfg = Config.load()
        assert cfg.cloud.model == "nova-3"
        assert cfg.data.dir == "/tmp/test-sessions"

    def test_api_key_from_env(self):
        with mock.patch.dict(os.environ, {"DEEPGRAM_API_KEY": "dg_test123"}):
            with mock.patch("rescribe.config.CONFIG_PATH") as mock_path:
                mock_path.exists.return_value = False
                cfg = Config.load()
        assert cfg.cloud.api_key == "dg_test123"

    def test_data_dir_from_env(self):
        with mock.patch.dict(os.environ, {"RESCRIBE_DATA_DIR": "/srv/rescribe"}):
            with mock.patch("rescribe.config.CONFIG_PATH") as mock_path:
                mock_path.exists.return_value = False
                cfg = Config.load()
        assert cfg.data.resolved_dir == Path("/srv/rescribe")


class TestEnsureConfigFile:
    def test_creates_file_when_missing(self, tmp_path):
        config_dir = tmp_path / "rescribe"
        config_path = config_dir / "config.toml"
        with mock.patch("rescribe.config.CONFIG_DIR", config_dir), \
             mock.patch("rescribe.config.CONFIG_PATH", config_path):
            result = ensure_config_file()
        assert result.exists()
        assert "[cloud]" in result.read_text()

    def test_does_not_overwrite_existing(self, tmp_path):
        config_dir = tmp_path / "rescribe"
        config_dir.mkdir()
        config_path = config_dir / "config.toml"
        config_path.write_text("# custom config\n")
        with mock.patch("rescribe.config.CONFIG_DIR", config_dir), \
             mock.patch("rescribe.config.CONFIG_PATH", config_path):
            ensure_config_file()
        assert config_path.read_text() == "# custom config\n"


class TestResolvedDir:
    def test_expands_tilde(self):
        cfg = DataConfig(dir="~/rescribe")
        resolved = cfg.resolved_dir
        assert "~" not in str(resolved)
        assert str(resolved).endswith("rescribe")

    def test_absolute_path_unchanged(self):
        cfg = DataConfig(dir="/tmp/sessions")
        assert cfg.resolved_dir == Path("/tmp/sessions")
