"""DubSync client WebSocket connection to the server."""
from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.asyncio.client import ClientConnection, connect

from shared.anchor import now_ms
from shared.config import SyncSettings
from shared.protocol import (
    parse_event, heartbeat_command,
    MSG_HELLO, MSG_STATE, MSG_PING, MSG_PONG, MSG_HEARTBEAT,
)
from shared.state import PlaybackState
from client.clock_client import ClockClient

logger = logging.getLogger("dubsync.client.connection")

INITIAL_BACKOFF_S = 0.5
MAX_BACKOFF_S = 10.0

StateHandler = Callable[[PlaybackState], Awaitable[None]]
EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class SyncConnection:
    """
    Keeps a channel open to the server, reconnecting after drops.
    Every (re)connect gets HELLO + STATE from the server, so no history is
    needed to resynchronise. Clock probing and heartbeats live only as long
    as the socket.
    """

    def __init__(self, url: str, on_state: Optional[StateHandler] = None,
                 on_event: Optional[EventHandler] = None,
                 settings: Optional[SyncSettings] = None, clock: Callable[[], int] = now_ms):
        self.url = url
        self.on_state = on_state
        self.on_event = on_event
        self.on_connection_change: Optional[Callable[[bool], None]] = None
        self.settings = settings or SyncSettings()
        self.state: Optional[PlaybackState] = None
        self._clock_source = clock
        self.clock = self._new_clock()
        self._ws: Optional[ClientConnection] = None
        self._running = False
        self._heartbeat_task: Optional[asyncio.Task] = None

    def _new_clock(self) -> ClockClient:
        return ClockClient(
            self.send,
            interval_ms=self.settings.probe_interval_ms,
            batch_size=self.settings.probe_batch_size,
            clock=self._clock_source,
        )

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def offset_ms(self) -> float:
        return self.clock.offset_ms

    async def send(self, event: dict[str, Any]) -> None:
        """Best effort: dropped with a log line when not connected."""
        if self._ws is None:
            logger.debug("Not connected; dropping %s", event.get("type"))
            return
        try:
            await self._ws.send(json.dumps(event))
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("Send error: %s", e)

    async def run(self) -> None:
        """Connect and process messages until `close()` is called."""
        self._running = True
        backoff = INITIAL_BACKOFF_S
        while self._running:
            try:
                await self._run_once()
                backoff = INITIAL_BACKOFF_S
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.warning("Connection to %s lost: %s", self.url, e)
            if not self._running:
                break
            logger.info("Reconnecting in %.1fs", backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF_S)

    async def close(self) -> None:
        self._running = False
        if self._ws is not None:
            await self._ws.close()
            logger.info("Disconnected from server")

    async def _run_once(self) -> None:
        logger.info("Connecting to %s", self.url)
        async with connect(self.url, ping_interval=10, ping_timeout=30) as ws:
            self._ws = ws
            # Offset estimates belong to a connection
            self.clock = self._new_clock()
            self.clock.start()
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
            self._notify_connection(True)
            try:
                async for raw in ws:
                    await self.handle_message(raw)
            finally:
                self._ws = None
                self.clock.stop()
                self._heartbeat_task.cancel()
                self._heartbeat_task = None
                self._notify_connection(False)

    def _notify_connection(self, connected: bool) -> None:
        if self.on_connection_change:
            self.on_connection_change(connected)

    async def _heartbeat_loop(self) -> None:
        interval = self.settings.heartbeat_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            await self.send(heartbeat_command())

    async def handle_message(self, raw: str | bytes) -> None:
        try:
            msg_type, data = parse_event(raw)
        except ValueError as e:
            logger.debug("Ignoring unparsable event: %s", e)
            return

        if msg_type in (MSG_PING, MSG_PONG):
            self.clock.handle_reply(data)
        elif msg_type == MSG_HELLO:
            logger.info("Server hello (server time %s)", data.get("serverTimeEpochMs"))
        elif msg_type == MSG_HEARTBEAT:
            pass
        elif msg_type == MSG_STATE:
            try:
                state = PlaybackState.from_dict(data["state"])
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.debug("Ignoring malformed STATE: %s", e)
                return
            self.state = state
            if self.on_state:
                await self.on_state(state)
        elif self.on_event:
            await self.on_event(msg_type, data)
