"""DubSync configuration: optional TOML file plus environment overrides."""
from __future__ import annotations
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_PORT = 5174
DEFAULT_CONFIG_FILE = Path("dubsync.toml")


@dataclass
class SyncSettings:
    lead_ms: int = 250
    probe_interval_ms: int = 1000
    probe_batch_size: int = 10
    start_threshold_ms: int = 60
    resync_tolerance_sec: float = 0.5
    resync_interval_ms: int = 1000
    heartbeat_interval_ms: int = 5000


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    play_data_path: str = "src/data/playData.json"
    log_dir: str = "logs"
    outbox_limit: int = 256


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)


def _parse_sync(raw: dict) -> SyncSettings:
    defaults = SyncSettings()
    return SyncSettings(
        lead_ms=int(raw.get("lead_ms", defaults.lead_ms)),
        probe_interval_ms=int(raw.get("probe_interval_ms", defaults.probe_interval_ms)),
        probe_batch_size=int(raw.get("probe_batch_size", defaults.probe_batch_size)),
        start_threshold_ms=int(raw.get("start_threshold_ms", defaults.start_threshold_ms)),
        resync_tolerance_sec=float(raw.get("resync_tolerance_sec", defaults.resync_tolerance_sec)),
        resync_interval_ms=int(raw.get("resync_interval_ms", defaults.resync_interval_ms)),
        heartbeat_interval_ms=int(raw.get("heartbeat_interval_ms", defaults.heartbeat_interval_ms)),
    )


def _parse_server(raw: dict) -> ServerConfig:
    defaults = ServerConfig()
    return ServerConfig(
        host=raw.get("host", defaults.host),
        port=int(raw.get("port", defaults.port)),
        play_data_path=raw.get("play_data_path", defaults.play_data_path),
        log_dir=raw.get("log_dir", defaults.log_dir),
        outbox_limit=int(raw.get("outbox_limit", defaults.outbox_limit)),
    )


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Load `dubsync.toml` (if present) and apply environment overrides:
    PORT, DUBSYNC_PLAY_DATA, DUBSYNC_LOG_DIR.
    """
    if env is None:
        env = os.environ
    if path is None:
        path = Path(env.get("DUBSYNC_CONFIG", DEFAULT_CONFIG_FILE))

    data: dict = {}
    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)

    config = AppConfig(
        server=_parse_server(data.get("server", {})),
        sync=_parse_sync(data.get("sync", {})),
    )

    if env.get("PORT"):
        try:
            config.server.port = int(env["PORT"])
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {env['PORT']!r}") from None
    if env.get("DUBSYNC_PLAY_DATA"):
        config.server.play_data_path = env["DUBSYNC_PLAY_DATA"]
    if env.get("DUBSYNC_LOG_DIR"):
        config.server.log_dir = env["DUBSYNC_LOG_DIR"]
    return config
