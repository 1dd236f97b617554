"""DubSync network protocol definitions."""
from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from shared.anchor import AnchorInput, is_number, now_ms
from shared.state import PlaybackState

# ---- Server → client message types ----
MSG_HELLO = "HELLO"
MSG_STATE = "STATE"
MSG_SCENE_LOAD = "SCENE_LOAD"
MSG_CUE = "CUE"
MSG_PAUSE = "PAUSE"
MSG_RESUME = "RESUME"
MSG_SEEK = "SEEK"
MSG_RATE = "RATE"
MSG_PING = "PING"
MSG_PONG = "PONG"
MSG_HEARTBEAT = "HEARTBEAT"


def encode(event: dict[str, Any]) -> str:
    return json.dumps(event)


def make_event(msg_type: str, now: Optional[int] = None, **fields: Any) -> dict[str, Any]:
    """Server event stamped with the emission time."""
    event: dict[str, Any] = {"type": msg_type, "serverTimeEpochMs": now_ms() if now is None else now}
    event.update(fields)
    return event


def hello_event(now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_HELLO, now)


def state_event(state: PlaybackState, now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_STATE, now, state=state.to_dict())


def scene_load_event(scene: str, now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_SCENE_LOAD, now, scene=scene)


def cue_event(cue_index: int, now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_CUE, now, cueIndex=cue_index)


def pause_event(now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_PAUSE, now)


def resume_event(now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_RESUME, now)


def seek_event(media_time_sec: float, now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_SEEK, now, mediaTimeSec=media_time_sec)


def rate_event(playback_rate: float, now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_RATE, now, playbackRate=playback_rate)


def heartbeat_event(now: Optional[int] = None) -> dict[str, Any]:
    return make_event(MSG_HEARTBEAT, now)


def ping_reply(t0: Optional[int] = None, now: Optional[int] = None) -> dict[str, Any]:
    event = make_event(MSG_PING, now)
    if t0 is not None:
        event["t0"] = t0
    return event


# ---- Client → server commands ----

@dataclass(frozen=True)
class Ping:
    t0: Optional[int] = None


@dataclass(frozen=True)
class Heartbeat:
    pass


@dataclass(frozen=True)
class CueCommand:
    cue_index: int
    anchor: AnchorInput
    scene: Optional[str] = None
    playback_rate: Optional[float] = None


@dataclass(frozen=True)
class SeekCommand:
    anchor: AnchorInput


@dataclass(frozen=True)
class RateCommand:
    playback_rate: float
    anchor: Optional[AnchorInput] = None


@dataclass(frozen=True)
class PauseCommand:
    anchor: Optional[AnchorInput] = None


@dataclass(frozen=True)
class ResumeCommand:
    anchor: Optional[AnchorInput] = None


@dataclass(frozen=True)
class Ignored:
    reason: str


InboundMessage = Union[
    Ping, Heartbeat, CueCommand, SeekCommand, RateCommand, PauseCommand, ResumeCommand, Ignored,
]


def scene_id(value: Any) -> Optional[str]:
    """Scene identifiers travel as strings or numbers; normalised to str."""
    if isinstance(value, str):
        return value
    if is_number(value):
        return str(int(value)) if float(value).is_integer() else str(value)
    return None


def valid_rate(value: Any) -> bool:
    return is_number(value) and value > 0


def valid_cue_index(value: Any) -> bool:
    return is_number(value) and float(value).is_integer() and value >= 0


def _optional_anchor(msg: dict[str, Any]) -> Optional[AnchorInput]:
    """`anchor` object first, then a top-level `mediaTimeSec`."""
    anchor = AnchorInput.from_wire(msg.get("anchor"))
    if anchor is None and is_number(msg.get("mediaTimeSec")):
        anchor = AnchorInput(media_time_sec=float(msg["mediaTimeSec"]))
    return anchor


def _parse_cue(msg: dict[str, Any]) -> InboundMessage:
    anchor = AnchorInput.from_wire(msg.get("anchor"))
    if not valid_cue_index(msg.get("cueIndex")) or anchor is None:
        return Ignored("CUE requires cueIndex and anchor.mediaTimeSec")
    rate = msg.get("playbackRate")
    return CueCommand(
        cue_index=int(msg["cueIndex"]),
        anchor=anchor,
        scene=scene_id(msg.get("scene")),
        playback_rate=float(rate) if valid_rate(rate) else None,
    )


def _parse_seek(msg: dict[str, Any]) -> InboundMessage:
    anchor = _optional_anchor(msg)
    if anchor is None:
        return Ignored("SEEK requires a media time")
    return SeekCommand(anchor=anchor)


def _parse_rate(msg: dict[str, Any]) -> InboundMessage:
    if not valid_rate(msg.get("playbackRate")):
        return Ignored("RATE requires a positive playbackRate")
    return RateCommand(
        playback_rate=float(msg["playbackRate"]),
        anchor=AnchorInput.from_wire(msg.get("anchor")),
    )


def _parse_ping(msg: dict[str, Any]) -> InboundMessage:
    t0 = msg.get("t0")
    return Ping(t0=int(t0) if is_number(t0) else None)


_PARSERS = {
    MSG_PING: _parse_ping,
    MSG_HEARTBEAT: lambda msg: Heartbeat(),
    MSG_CUE: _parse_cue,
    MSG_SEEK: _parse_seek,
    MSG_RATE: _parse_rate,
    MSG_PAUSE: lambda msg: PauseCommand(anchor=_optional_anchor(msg)),
    MSG_RESUME: lambda msg: ResumeCommand(anchor=_optional_anchor(msg)),
}


def parse_inbound(raw: Union[str, bytes]) -> InboundMessage:
    """Parse a client message. Anything unusable becomes `Ignored`; never raises."""
    try:
        msg = json.loads(raw)
    except (ValueError, TypeError) as e:
        return Ignored(f"invalid JSON: {e}")
    if not isinstance(msg, dict):
        return Ignored("message is not an object")
    parser = _PARSERS.get(msg.get("type"))
    if parser is None:
        return Ignored(f"unknown type: {msg.get('type')!r}")
    return parser(msg)


def parse_event(raw: Union[str, bytes]) -> tuple[str, dict[str, Any]]:
    """Parse a server event into (type, body). Raises ValueError when unusable."""
    data = json.loads(raw)
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ValueError("event without a type")
    return data["type"], data


# ---- Command builders used by clients ----

def ping_command(t0: int) -> dict[str, Any]:
    return {"type": MSG_PING, "t0": t0}


def heartbeat_command() -> dict[str, Any]:
    return {"type": MSG_HEARTBEAT}


def cue_command(cue_index: int, anchor: AnchorInput, scene: Optional[str] = None,
                playback_rate: Optional[float] = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": MSG_CUE, "cueIndex": cue_index, "anchor": anchor.to_dict()}
    if scene is not None:
        msg["scene"] = scene
    if playback_rate is not None:
        msg["playbackRate"] = playback_rate
    return msg


def seek_command(media_time_sec: float) -> dict[str, Any]:
    return {"type": MSG_SEEK, "anchor": {"mediaTimeSec": media_time_sec}}


def rate_command(playback_rate: float, media_time_sec: Optional[float] = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": MSG_RATE, "playbackRate": playback_rate}
    if media_time_sec is not None:
        msg["anchor"] = {"mediaTimeSec": media_time_sec}
    return msg


def pause_command(media_time_sec: Optional[float] = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": MSG_PAUSE}
    if media_time_sec is not None:
        msg["mediaTimeSec"] = media_time_sec
    return msg


def resume_command(media_time_sec: Optional[float] = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": MSG_RESUME}
    if media_time_sec is not None:
        msg["mediaTimeSec"] = media_time_sec
    return msg
