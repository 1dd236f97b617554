"""DubSync audio output: mpv driven over its JSON IPC socket."""
from __future__ import annotations
import asyncio
import itertools
import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Optional

from client.scheduler import PlaybackRejected

logger = logging.getLogger("dubsync.client.mpv")

COMMAND_TIMEOUT_S = 3.0


class MpvController:
    """
    Audio-only mpv subprocess implementing the scheduler's media element.
    Media paths are resolved against `media_root`, which may be a local
    directory or an http(s) base URL.
    """

    def __init__(self, media_root: str = "public/Audio"):
        self.media_root = media_root
        self._preloaded: Optional[str] = None  # source queued as the next playlist entry
        self._proc: Optional[subprocess.Popen] = None
        self._socket_path = str(Path(tempfile.gettempdir()) / f"dubsync_mpv_{os.getpid()}.sock")
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._pending: dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._connected = False
        self._read_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def resolve(self, rel_path: str) -> str:
        if self.media_root.startswith(("http://", "https://")):
            return f"{self.media_root.rstrip('/')}/{rel_path}"
        return str((Path(self.media_root) / rel_path).resolve())

    async def start(self) -> bool:
        """Start mpv idle, paused, with an IPC server."""
        if os.path.exists(self._socket_path):
            os.unlink(self._socket_path)

        cmd = [
            "mpv",
            "--no-config",
            "--no-video",
            "--idle=yes",
            "--pause",
            "--keep-open=always",
            "--prefetch-playlist=yes",
            "--no-terminal",
            f"--input-ipc-server={self._socket_path}",
        ]
        try:
            self._proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
            logger.info("mpv started (pid=%d)", self._proc.pid)
        except FileNotFoundError:
            logger.error("mpv not found; install mpv for audience playback")
            return False

        for _ in range(50):
            await asyncio.sleep(0.1)
            if os.path.exists(self._socket_path):
                break
        else:
            logger.error("mpv IPC socket did not appear")
            return False

        try:
            self._reader, self._writer = await asyncio.open_unix_connection(self._socket_path)
        except OSError as e:
            logger.error("Failed to connect to mpv socket: %s", e)
            return False
        self._connected = True
        self._read_task = asyncio.create_task(self._read_loop())
        logger.info("Connected to mpv IPC socket")
        return True

    async def _read_loop(self) -> None:
        while self._reader:
            line = await self._reader.readline()
            if not line:
                break
            try:
                data = json.loads(line)
            except ValueError:
                logger.debug("Unparsable mpv line: %r", line)
                continue
            if "request_id" in data:
                fut = self._pending.pop(data["request_id"], None)
                if fut and not fut.done():
                    fut.set_result(data)
        self._connected = False
        logger.warning("mpv IPC connection closed")

    async def _command(self, *args: Any) -> Optional[dict]:
        """Send a command; returns mpv's reply or None on failure."""
        if not self._connected or not self._writer:
            return None
        req_id = next(self._ids)
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = fut
        try:
            self._writer.write((json.dumps({"command": list(args), "request_id": req_id}) + "\n").encode())
            await self._writer.drain()
            reply = await asyncio.wait_for(fut, timeout=COMMAND_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning("mpv command timed out: %s", args[0] if args else "")
            return None
        except OSError as e:
            logger.error("mpv command error: %s", e)
            return None
        finally:
            self._pending.pop(req_id, None)
        if reply.get("error") != "success":
            logger.debug("mpv %s failed: %s", args[0] if args else "", reply.get("error"))
            return None
        return reply

    async def load(self, rel_path: str) -> bool:
        """Replace the current file, staying paused. A preloaded file is switched to in place."""
        source = self.resolve(rel_path)
        await self._command("set_property", "pause", True)
        if source == self._preloaded:
            ok = await self._command("playlist-next", "force") is not None
        else:
            ok = await self._command("loadfile", source, "replace") is not None
        self._preloaded = None
        if ok:
            logger.info("Loaded %s", source)
        else:
            logger.error("Failed to load %s", source)
        return ok

    async def preload(self, rel_path: str) -> bool:
        """Queue a file after the current one so mpv prefetches it."""
        source = self.resolve(rel_path)
        if source == self._preloaded:
            return True
        # Keeps the current entry, drops any earlier queued file
        await self._command("playlist-clear")
        ok = await self._command("loadfile", source, "append") is not None
        self._preloaded = source if ok else None
        if ok:
            logger.debug("Preloading %s", source)
        return ok

    # ---- Media element interface ----

    async def play(self) -> None:
        if await self._command("set_property", "pause", False) is None:
            raise PlaybackRejected("mpv is not ready")

    async def pause(self) -> None:
        await self._command("set_property", "pause", True)

    async def get_current_time(self) -> Optional[float]:
        result = await self._command("get_property", "time-pos")
        if result is not None and result.get("data") is not None:
            return float(result["data"])
        return None

    async def set_current_time(self, seconds: float) -> None:
        await self._command("seek", max(0.0, seconds), "absolute")

    async def set_playback_rate(self, rate: float) -> None:
        await self._command("set_property", "speed", rate)

    async def stop_subprocess(self) -> None:
        """Terminate mpv."""
        self._connected = False
        if self._read_task:
            self._read_task.cancel()
        if self._writer:
            self._writer.close()
        if self._proc:
            self._proc.terminate()
            self._proc = None
