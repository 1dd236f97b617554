"""DubSync audience player: connection + clock + scheduler + audio output."""
from __future__ import annotations
import logging
from typing import Any, Callable, Optional

from shared.anchor import now_ms
from shared.config import SyncSettings
from shared.script_data import audio_relpath
from shared.state import PlaybackState
from client.connection import SyncConnection
from client.mpv_controller import MpvController
from client.scheduler import PlaybackScheduler

logger = logging.getLogger("dubsync.client.player")


class AudiencePlayer:
    """Follows the server's STATE stream in one language."""

    def __init__(self, url: str, mpv: MpvController, lang: str = "hi",
                 settings: Optional[SyncSettings] = None, clock: Callable[[], int] = now_ms):
        self.mpv = mpv
        self.lang = lang
        self.connection = SyncConnection(url, on_state=self._on_state, on_event=self._on_event,
                                         settings=settings, clock=clock)
        self.scheduler = PlaybackScheduler(mpv, lambda: self.connection.offset_ms, settings, clock)
        self.on_status: Optional[Callable[[str], None]] = None
        self._loaded: Optional[tuple[str, int, str]] = None

    @property
    def offset_ms(self) -> float:
        return self.connection.offset_ms

    async def run(self) -> None:
        self.scheduler.start()
        try:
            await self.connection.run()
        finally:
            self.scheduler.stop()

    async def stop(self) -> None:
        self.scheduler.stop()
        await self.connection.close()

    async def set_language(self, lang: str) -> None:
        self.lang = lang
        if self.connection.state is not None:
            await self._on_state(self.connection.state)

    async def _on_state(self, state: PlaybackState) -> None:
        key = (state.scene, state.cue_index, self.lang)
        if key != self._loaded:
            if await self.mpv.load(audio_relpath(*key)):
                self._loaded = key
                await self.mpv.preload(audio_relpath(state.scene, state.cue_index + 1, self.lang))
        result = await self.scheduler.apply_state(state)
        self._report(f"Scene {state.scene} · cue {state.cue_index} · {result}")

    async def _on_event(self, msg_type: str, data: dict[str, Any]) -> None:
        # STATE follows every granular event and carries everything we need
        logger.debug("Event %s", msg_type)

    def _report(self, text: str) -> None:
        logger.info(text)
        if self.on_status:
            self.on_status(text)
