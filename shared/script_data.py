"""DubSync dialog script (playData.json) parsing and cue manifests."""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from shared.anchor import is_number

logger = logging.getLogger("dubsync.shared.script")

LANGUAGES = ("hi", "en")


class ScriptDataError(Exception):
    """Script file missing, unreadable or not shaped like a play script."""


@dataclass
class Dialog:
    cue_id: str = ""
    hindi: Optional[str] = None
    english: Optional[str] = None
    audio_file: Optional[str] = None
    audio_file_hi: Optional[str] = None
    audio_file_en: Optional[str] = None
    character: Optional[str] = None
    duration: Optional[float] = None


@dataclass
class Scene:
    title: str = ""
    dialogs: list[Dialog] = field(default_factory=list)


@dataclass
class CueDescriptor:
    cue_id: str
    audio_file_hi: Optional[str]
    audio_file_en: Optional[str]
    duration: Optional[float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "cueId": self.cue_id,
            "audioFileHi": self.audio_file_hi,
            "audioFileEn": self.audio_file_en,
            "duration": self.duration,
        }


@dataclass
class FlatDialog:
    """A dialog positioned in the whole play (all scenes in file order)."""
    scene_id: str
    scene_title: str
    scene_dialog_index: int
    global_index: int
    dialog: Dialog


@dataclass
class PlayScript:
    play_title: str = ""
    total_scenes: int = 0
    scenes: dict[str, Scene] = field(default_factory=dict)

    def manifest(self, scene_id: str) -> Optional[list[CueDescriptor]]:
        scene = self.scenes.get(str(scene_id))
        if scene is None:
            return None
        return [
            CueDescriptor(
                cue_id=d.cue_id,
                audio_file_hi=d.audio_file_hi or d.audio_file,
                audio_file_en=d.audio_file_en or d.audio_file,
                duration=d.duration,
            )
            for d in scene.dialogs
        ]

    def flatten(self) -> list[FlatDialog]:
        flat: list[FlatDialog] = []
        for scene_id, scene in self.scenes.items():
            for i, dialog in enumerate(scene.dialogs):
                flat.append(FlatDialog(scene_id, scene.title, i, len(flat), dialog))
        return flat


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _parse_dialog(raw: dict) -> Dialog:
    duration = raw.get("duration")
    return Dialog(
        cue_id=str(raw.get("cueId") if raw.get("cueId") is not None else ""),
        hindi=raw.get("hindi"),
        english=raw.get("english"),
        audio_file=_opt_str(raw.get("audioFile")),
        audio_file_hi=_opt_str(raw.get("audioFileHi")),
        audio_file_en=_opt_str(raw.get("audioFileEn")),
        character=raw.get("character"),
        duration=float(duration) if is_number(duration) else None,
    )


def parse_script(data: Any) -> PlayScript:
    if not isinstance(data, dict) or not isinstance(data.get("scenes"), dict):
        raise ScriptDataError("script has no 'scenes' object")
    scenes: dict[str, Scene] = {}
    for scene_id, raw_scene in data["scenes"].items():
        if not isinstance(raw_scene, dict):
            raise ScriptDataError(f"scene {scene_id!r} is not an object")
        dialogs = raw_scene.get("dialogs") or []
        scenes[str(scene_id)] = Scene(
            title=raw_scene.get("title", ""),
            dialogs=[_parse_dialog(d) for d in dialogs if isinstance(d, dict)],
        )
    return PlayScript(
        play_title=data.get("playTitle", ""),
        total_scenes=data.get("totalScenes", len(scenes)),
        scenes=scenes,
    )


def load_script(path: Path) -> PlayScript:
    """Load a playData.json script file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ScriptDataError(f"cannot read script {path}: {e}") from e
    return parse_script(data)


def try_load_script(path: Path) -> Optional[PlayScript]:
    """Like load_script, but missing or broken data is reported as None."""
    try:
        return load_script(path)
    except ScriptDataError as e:
        logger.warning("Script data unavailable: %s", e)
        return None


def audio_relpath(scene: str, cue_index: int, lang: str) -> str:
    """Audio file layout under the media root: `01/004-hi.mp3`."""
    scene_dir = f"{int(scene):02d}" if str(scene).isdigit() else str(scene)
    return f"{scene_dir}/{cue_index:03d}-{lang}.mp3"
