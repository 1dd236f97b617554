"""DubSync clock offset math (NTP-like probes over the WebSocket)."""
from __future__ import annotations
import statistics
import time
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProbeReply:
    server_time_ms: int  # server clock when replying
    local_receive_ms: int  # local clock when the reply arrived
    local_send_ms: Optional[int] = None  # echoed t0, when the server returned it

    @property
    def rtt_ms(self) -> float:
        if self.local_send_ms is not None:
            return float(self.local_receive_ms - self.local_send_ms)
        # Legacy approximation for replies without t0
        return float(2 * (self.local_receive_ms - self.server_time_ms))

    @property
    def offset_ms(self) -> float:
        """server - local, assuming symmetric latency."""
        return self.server_time_ms - (self.local_receive_ms - self.rtt_ms / 2.0)


class ClockOffsetEstimator:
    """Collects offset samples in batches and publishes the batch median."""

    BATCH_SIZE = 10

    def __init__(self, batch_size: int = BATCH_SIZE) -> None:
        self.batch_size = batch_size
        self._samples: list[float] = []
        self._offset_ms: float = 0.0
        self._batches = 0

    def add_sample(self, offset_ms: float) -> None:
        self._samples.append(offset_ms)
        if len(self._samples) >= self.batch_size:
            # Upper median: sorted[n // 2]
            self._offset_ms = statistics.median_high(self._samples)
            self._samples.clear()
            self._batches += 1

    def add_reply(self, reply: ProbeReply) -> None:
        self.add_sample(reply.offset_ms)

    @property
    def offset_ms(self) -> float:
        """Current estimate of server_time - local_time."""
        return self._offset_ms

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def is_calibrated(self) -> bool:
        return self._batches > 0

    def server_now_ms(self, local_ms: Optional[float] = None) -> float:
        """Convert local epoch ms to estimated server epoch ms."""
        if local_ms is None:
            local_ms = time.time() * 1000
        return local_ms + self._offset_ms

    def reset(self) -> None:
        self._samples.clear()
        self._offset_ms = 0.0
        self._batches = 0


def needs_resync(current_time_sec: float, target_time_sec: float, tolerance_sec: float = 0.5) -> bool:
    """Snap only when drift exceeds the tolerance; smaller drift is left alone."""
    return abs(current_time_sec - target_time_sec) > tolerance_sec
