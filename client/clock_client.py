"""DubSync client-side clock offset probing."""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from shared.anchor import is_number, now_ms
from shared.clock_sync import ClockOffsetEstimator, ProbeReply
from shared.protocol import ping_command

logger = logging.getLogger("dubsync.client.clock")


class ClockClient:
    """
    Sends a PING every interval and feeds the replies to the estimator.
    One instance per connection; `stop()` cancels the probe task.
    """

    def __init__(self, send_func: Callable[[dict[str, Any]], Awaitable[None]],
                 interval_ms: int = 1000, batch_size: int = ClockOffsetEstimator.BATCH_SIZE,
                 clock: Callable[[], int] = now_ms):
        """
        send_func: async callable(event) that sends on the channel
        clock: local epoch-ms source
        """
        self.send = send_func
        self.interval_ms = interval_ms
        self.estimator = ClockOffsetEstimator(batch_size)
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def offset_ms(self) -> float:
        return self.estimator.offset_ms

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def server_now_ms(self) -> float:
        return self.estimator.server_now_ms(self._clock())

    def start(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._probe_loop())

    def stop(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None

    async def _probe_loop(self) -> None:
        interval = self.interval_ms / 1000.0
        while True:
            await self.send(ping_command(self._clock()))
            await asyncio.sleep(interval)

    def handle_reply(self, event: dict[str, Any]) -> None:
        """Called with a PING/PONG event from the server."""
        server_time = event.get("serverTimeEpochMs")
        if not is_number(server_time):
            return
        t0 = event.get("t0")
        reply = ProbeReply(
            server_time_ms=int(server_time),
            local_receive_ms=self._clock(),
            local_send_ms=int(t0) if is_number(t0) else None,
        )
        previous = self.estimator.offset_ms
        self.estimator.add_reply(reply)
        if self.estimator.offset_ms != previous:
            logger.debug("Clock offset %.1fms -> %.1fms (rtt %.1fms)", previous, self.estimator.offset_ms, reply.rtt_ms)
