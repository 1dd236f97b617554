"""DubSync server playback state: the single source of truth."""
from __future__ import annotations
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from shared.anchor import Anchor, AnchorInput, now_ms, reconcile_anchor
from shared.state import PlaybackState

logger = logging.getLogger("dubsync.server.state")


@dataclass(frozen=True)
class StateUpdate:
    """Partial update; None means "not requested" (distinct from zero)."""
    scene: Optional[str] = None
    cue_index: Optional[int] = None
    playback_rate: Optional[float] = None
    is_paused: Optional[bool] = None
    anchor: Optional[AnchorInput] = None


class StateStore:
    """
    Owns the one PlaybackState of the process.
    Only `apply` mutates it; callers never see the live object.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._state = PlaybackState(anchor=Anchor(server_time_epoch_ms=clock(), media_time_sec=0.0))

    def now(self) -> int:
        return self._clock()

    def get(self) -> PlaybackState:
        return dataclasses.replace(self._state)

    def apply(self, update: StateUpdate, trust_client_time: bool = False) -> PlaybackState:
        state = self._state
        if update.scene is not None:
            state.scene = update.scene
        if update.cue_index is not None:
            state.cue_index = update.cue_index
        if update.playback_rate is not None:
            state.playback_rate = update.playback_rate
        if update.is_paused is not None:
            state.is_paused = update.is_paused
        state.anchor = reconcile_anchor(state.anchor, update.anchor, trust_client_time, self._clock())
        logger.debug(
            "State: scene=%s cue=%d rate=%.2f paused=%s anchor=(%d, %.3f)",
            state.scene, state.cue_index, state.playback_rate, state.is_paused,
            state.anchor.server_time_epoch_ms, state.anchor.media_time_sec,
        )
        return self.get()
