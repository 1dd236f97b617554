"""DubSync anchor model: where playback is on the server timeline."""
from __future__ import annotations
import math
import time
from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_LEAD_MS = 250


def now_ms() -> int:
    return int(time.time() * 1000)


def is_number(value: Any) -> bool:
    """True for finite JSON numbers; bools, NaN and Infinity are not numbers on the wire."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Anchor:
    """At server time `server_time_epoch_ms` the media position was `media_time_sec`."""
    server_time_epoch_ms: int
    media_time_sec: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "serverTimeEpochMs": self.server_time_epoch_ms,
            "mediaTimeSec": self.media_time_sec,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Anchor":
        return cls(
            server_time_epoch_ms=int(raw["serverTimeEpochMs"]),
            media_time_sec=float(raw["mediaTimeSec"]),
        )


@dataclass(frozen=True)
class AnchorInput:
    """Anchor as supplied by a caller; the timestamp may be missing."""
    media_time_sec: float
    server_time_epoch_ms: Optional[int] = None

    @classmethod
    def from_wire(cls, raw: Any) -> Optional["AnchorInput"]:
        """Parse `{mediaTimeSec, serverTimeEpochMs?}`; None unless mediaTimeSec is numeric."""
        if not isinstance(raw, dict) or not is_number(raw.get("mediaTimeSec")):
            return None
        ts = raw.get("serverTimeEpochMs")
        return cls(
            media_time_sec=float(raw["mediaTimeSec"]),
            server_time_epoch_ms=int(ts) if is_number(ts) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"mediaTimeSec": self.media_time_sec}
        if self.server_time_epoch_ms is not None:
            data["serverTimeEpochMs"] = self.server_time_epoch_ms
        return data


def make_anchor(media_time_sec: float, lead_ms: int = DEFAULT_LEAD_MS,
                now: Optional[int] = None) -> Anchor:
    """
    Anchor stamped slightly in the future so every client can receive and
    schedule the action before it takes effect. Pass `now` as the estimated
    server time when calling from a client.
    """
    if now is None:
        now = now_ms()
    return Anchor(server_time_epoch_ms=int(now + lead_ms), media_time_sec=float(media_time_sec))


def reconcile_anchor(
    previous: Anchor,
    supplied: Optional[AnchorInput],
    trust_client_time: bool = False,
    now: Optional[int] = None,
) -> Anchor:
    """
    Server-side anchor replacement.

    With a supplied anchor the media time is taken from it; its timestamp is
    kept only when `trust_client_time` is set (cue advances carry a lead time
    computed by the operator). Without one the previous media time is kept
    and the timestamp refreshed to now, which freezes media time.
    """
    if now is None:
        now = now_ms()
    if supplied is None:
        return Anchor(server_time_epoch_ms=now, media_time_sec=previous.media_time_sec)
    if trust_client_time and supplied.server_time_epoch_ms is not None:
        ts = supplied.server_time_epoch_ms
    else:
        ts = now
    return Anchor(server_time_epoch_ms=ts, media_time_sec=supplied.media_time_sec)


def server_now_ms(local_now_ms: float, offset_ms: float) -> float:
    return local_now_ms + offset_ms


def project_media_time(anchor: Anchor, playback_rate: float, offset_ms: float,
                       local_now_ms: float) -> float:
    """Media position implied by the anchor at the given local time."""
    elapsed_sec = max(0.0, (server_now_ms(local_now_ms, offset_ms) - anchor.server_time_epoch_ms) / 1000.0)
    return anchor.media_time_sec + elapsed_sec * playback_rate


def start_delay_ms(anchor: Anchor, offset_ms: float, local_now_ms: float) -> float:
    """Positive when the anchor lies in the future (lead time not yet elapsed)."""
    return anchor.server_time_epoch_ms - server_now_ms(local_now_ms, offset_ms)
