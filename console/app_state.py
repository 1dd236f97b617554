"""DubSync operator console state: script navigation and command building."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Optional

from shared.anchor import AnchorInput, DEFAULT_LEAD_MS, make_anchor, project_media_time
from shared.protocol import (
    cue_command, pause_command, rate_command, resume_command, seek_command,
)
from shared.script_data import FlatDialog, PlayScript, load_script
from shared.state import PlaybackState

logger = logging.getLogger("dubsync.console.state")

RATE_MIN = 0.5
RATE_MAX = 2.5
RATE_STEP = 0.05
AUTO_ADVANCE_GAP_SEC = 0.5


def clamp_rate(rate: float) -> float:
    return round(min(RATE_MAX, max(RATE_MIN, rate)), 2)


class ConsoleState:
    """
    What the operator is looking at. Times passed in are estimated server
    epoch ms (local clock + offset), so anchors land on the server timeline.
    """

    def __init__(self, script: Optional[PlayScript] = None, lead_ms: int = DEFAULT_LEAD_MS):
        self.lead_ms = lead_ms
        self.script: Optional[PlayScript] = None
        self.dialogs: list[FlatDialog] = []
        self.current_index = 0
        self.playback_rate = 1.0
        self.auto_play = True
        self.server_state: Optional[PlaybackState] = None
        if script is not None:
            self.set_script(script)

    def set_script(self, script: PlayScript) -> None:
        self.script = script
        self.dialogs = script.flatten()
        self.current_index = 0

    def load_script(self, path: Path) -> PlayScript:
        script = load_script(path)
        self.set_script(script)
        logger.info("Loaded script '%s' (%d dialogs)", script.play_title, len(self.dialogs))
        return script

    # ---- Navigation ----

    def current(self) -> Optional[FlatDialog]:
        if 0 <= self.current_index < len(self.dialogs):
            return self.dialogs[self.current_index]
        return None

    def go_next(self) -> Optional[FlatDialog]:
        if self.current_index + 1 >= len(self.dialogs):
            return None
        self.current_index += 1
        return self.current()

    def go_prev(self) -> Optional[FlatDialog]:
        if self.current_index <= 0:
            return None
        self.current_index -= 1
        return self.current()

    def jump_to(self, index: int) -> Optional[FlatDialog]:
        if not 0 <= index < len(self.dialogs):
            return None
        self.current_index = index
        return self.current()

    def find_index(self, scene: str, cue_index: int) -> Optional[int]:
        for item in self.dialogs:
            if item.scene_id == scene and item.scene_dialog_index == cue_index:
                return item.global_index
        return None

    # ---- Server state ----

    def sync_from_server(self, state: PlaybackState) -> None:
        """Follow STATE from the server (another console may be driving)."""
        self.server_state = state
        self.playback_rate = state.playback_rate
        index = self.find_index(state.scene, state.cue_index)
        if index is not None:
            self.current_index = index

    @property
    def is_playing(self) -> bool:
        return self.server_state is not None and not self.server_state.is_paused

    def projected_time(self, server_now: float) -> Optional[float]:
        state = self.server_state
        if state is None:
            return None
        if state.is_paused:
            return state.anchor.media_time_sec
        return project_media_time(state.anchor, state.playback_rate, 0.0, server_now)

    def _server_on_current(self) -> bool:
        item = self.current()
        state = self.server_state
        return (item is not None and state is not None
                and state.scene == item.scene_id and state.cue_index == item.scene_dialog_index)

    # ---- Commands ----

    def build_cue(self, server_now: float) -> Optional[dict[str, Any]]:
        """CUE for the current dialog from its start, with lead time."""
        item = self.current()
        if item is None:
            return None
        anchor = make_anchor(0.0, self.lead_ms, int(server_now))
        return cue_command(
            item.scene_dialog_index,
            AnchorInput(anchor.media_time_sec, anchor.server_time_epoch_ms),
            scene=item.scene_id,
            playback_rate=self.playback_rate,
        )

    def build_pause(self, server_now: float) -> dict[str, Any]:
        return pause_command(self.projected_time(server_now))

    def build_resume(self) -> dict[str, Any]:
        # No anchor: the server resumes from the frozen position
        return resume_command()

    def build_seek(self, media_time_sec: float) -> dict[str, Any]:
        return seek_command(max(0.0, media_time_sec))

    def build_rate(self, rate: float, server_now: float) -> dict[str, Any]:
        """Rate change rebased at the current position so playback does not jump back."""
        self.playback_rate = clamp_rate(rate)
        return rate_command(self.playback_rate, self.projected_time(server_now))

    def adjust_rate(self, delta: float) -> float:
        return clamp_rate(self.playback_rate + delta)

    def should_auto_advance(self, server_now: float) -> bool:
        if not self.auto_play or not self.is_playing or not self._server_on_current():
            return False
        if self.current_index + 1 >= len(self.dialogs):
            return False
        duration = self.dialogs[self.current_index].dialog.duration
        if not duration:
            return False
        position = self.projected_time(server_now)
        return position is not None and position >= duration + AUTO_ADVANCE_GAP_SEC
