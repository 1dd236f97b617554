"""Tests for configuration loading."""
import pytest

from shared.config import DEFAULT_PORT, load_config

EXAMPLE_TOML = """\
[server]
host = "127.0.0.1"
port = 8080
play_data_path = "show/playData.json"
outbox_limit = 64

[sync]
lead_ms = 400
resync_tolerance_sec = 0.25
"""


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "none.toml", env={})
    assert config.server.port == DEFAULT_PORT == 5174
    assert config.server.host == "0.0.0.0"
    assert config.sync.lead_ms == 250
    assert config.sync.probe_batch_size == 10
    assert config.sync.start_threshold_ms == 60
    assert config.sync.resync_tolerance_sec == 0.5


def test_load_toml(tmp_path):
    path = tmp_path / "dubsync.toml"
    path.write_text(EXAMPLE_TOML)
    config = load_config(path, env={})
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 8080
    assert config.server.play_data_path == "show/playData.json"
    assert config.server.outbox_limit == 64
    assert config.sync.lead_ms == 400
    assert config.sync.resync_tolerance_sec == 0.25
    assert config.sync.probe_interval_ms == 1000


def test_env_overrides(tmp_path):
    path = tmp_path / "dubsync.toml"
    path.write_text(EXAMPLE_TOML)
    config = load_config(path, env={"PORT": "9000", "DUBSYNC_PLAY_DATA": "x.json", "DUBSYNC_LOG_DIR": "/tmp/l"})
    assert config.server.port == 9000
    assert config.server.play_data_path == "x.json"
    assert config.server.log_dir == "/tmp/l"


def test_config_path_from_env(tmp_path):
    path = tmp_path / "other.toml"
    path.write_text("[server]\nport = 7000\n")
    assert load_config(env={"DUBSYNC_CONFIG": str(path)}).server.port == 7000


def test_invalid_port():
    with pytest.raises(ValueError):
        load_config(env={"PORT": "abc", "DUBSYNC_CONFIG": "/nonexistent/dubsync.toml"})
