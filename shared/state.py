"""DubSync shared playback state record."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from shared.anchor import Anchor, now_ms

DEFAULT_SCENE = "1"


def _fresh_anchor() -> Anchor:
    return Anchor(server_time_epoch_ms=now_ms(), media_time_sec=0.0)


@dataclass
class PlaybackState:
    scene: str = DEFAULT_SCENE
    cue_index: int = 0
    playback_rate: float = 1.0
    is_paused: bool = True
    anchor: Anchor = field(default_factory=_fresh_anchor)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scene": self.scene,
            "cueIndex": self.cue_index,
            "playbackRate": self.playback_rate,
            "isPaused": self.is_paused,
            "anchor": self.anchor.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PlaybackState":
        return cls(
            scene=str(raw.get("scene", DEFAULT_SCENE)),
            cue_index=int(raw.get("cueIndex", 0)),
            playback_rate=float(raw.get("playbackRate", 1.0)),
            is_paused=bool(raw.get("isPaused", True)),
            anchor=Anchor.from_dict(raw["anchor"]),
        )
