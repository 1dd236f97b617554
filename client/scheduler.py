"""DubSync playback scheduler: turns (state, anchor, offset) into media actions."""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional, Protocol

from shared.anchor import now_ms, project_media_time, start_delay_ms
from shared.clock_sync import needs_resync
from shared.config import SyncSettings
from shared.state import PlaybackState

logger = logging.getLogger("dubsync.client.scheduler")


class PlaybackRejected(Exception):
    """The media element refused to start (not ready, autoplay blocked, ...)."""


class MediaElement(Protocol):
    async def get_current_time(self) -> Optional[float]: ...
    async def set_current_time(self, seconds: float) -> None: ...
    async def set_playback_rate(self, rate: float) -> None: ...
    async def play(self) -> None: ...
    async def pause(self) -> None: ...


class PlaybackScheduler:
    """
    Keeps one media element on the server timeline.

    `apply_state` positions and starts/stops the element for a new STATE;
    the resync loop snaps it back when it wanders past the tolerance.
    """

    def __init__(self, media: MediaElement, offset_source: Callable[[], float],
                 settings: Optional[SyncSettings] = None, clock: Callable[[], int] = now_ms):
        self.media = media
        self.settings = settings or SyncSettings()
        self._offset_source = offset_source
        self._clock = clock
        self._state: Optional[PlaybackState] = None
        self._start_task: Optional[asyncio.Task] = None
        self._resync_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> Optional[PlaybackState]:
        return self._state

    @property
    def start_pending(self) -> bool:
        return self._start_task is not None and not self._start_task.done()

    def target_time(self, state: Optional[PlaybackState] = None) -> Optional[float]:
        state = state or self._state
        if state is None:
            return None
        if state.is_paused:
            return state.anchor.media_time_sec
        return project_media_time(state.anchor, state.playback_rate, self._offset_source(), self._clock())

    async def apply_state(self, state: PlaybackState) -> str:
        """Returns "paused", "scheduled" or "playing"."""
        self._state = state
        self._cancel_start()

        if state.is_paused:
            await self.media.pause()
            await self.media.set_current_time(state.anchor.media_time_sec)
            return "paused"

        await self.media.set_playback_rate(state.playback_rate)
        local_now = self._clock()
        offset = self._offset_source()
        target = project_media_time(state.anchor, state.playback_rate, offset, local_now)
        delay = start_delay_ms(state.anchor, offset, local_now)
        await self.media.set_current_time(max(0.0, target))

        if delay > self.settings.start_threshold_ms:
            # Anchor still ahead of us: hold until the lead time has passed
            await self.media.pause()
            self._start_task = asyncio.create_task(self._deferred_start(delay))
            logger.debug("Start scheduled in %.0fms at %.3fs", delay, target)
            return "scheduled"

        await self._play()
        return "playing"

    async def _deferred_start(self, delay_ms: float) -> None:
        await asyncio.sleep(delay_ms / 1000.0)
        await self._play()

    async def _play(self) -> None:
        try:
            await self.media.play()
        except PlaybackRejected as e:
            logger.debug("Play rejected: %s", e)

    async def resync(self) -> bool:
        """One drift check; True when currentTime was snapped."""
        state = self._state
        if state is None or state.is_paused or self.start_pending:
            return False
        local_now = self._clock()
        offset = self._offset_source()
        if start_delay_ms(state.anchor, offset, local_now) > 0:
            return False
        current = await self.media.get_current_time()
        if current is None:
            return False
        target = project_media_time(state.anchor, state.playback_rate, offset, local_now)
        if not needs_resync(current, target, self.settings.resync_tolerance_sec):
            return False
        await self.media.set_current_time(target)
        logger.info("Resync: %.3fs -> %.3fs (drift %.0fms)", current, target, (current - target) * 1000)
        return True

    def start(self) -> None:
        """Start the periodic resync loop."""
        if self._resync_task is None or self._resync_task.done():
            self._resync_task = asyncio.create_task(self._resync_loop())

    def stop(self) -> None:
        self._cancel_start()
        if self._resync_task:
            self._resync_task.cancel()
            self._resync_task = None

    def _cancel_start(self) -> None:
        if self._start_task:
            self._start_task.cancel()
            self._start_task = None

    async def _resync_loop(self) -> None:
        interval = self.settings.resync_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                await self.resync()
            except Exception as e:
                logger.error("Resync error: %s", e)
