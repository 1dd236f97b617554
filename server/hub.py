"""DubSync server hub: client sessions, command dispatch, ordered broadcast."""
from __future__ import annotations
import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from shared.anchor import AnchorInput
from shared.protocol import (
    encode, parse_inbound, scene_id, valid_cue_index, valid_rate,
    hello_event, state_event, scene_load_event, cue_event, pause_event,
    resume_event, seek_event, rate_event, heartbeat_event, ping_reply,
    Ping, Heartbeat, CueCommand, SeekCommand, RateCommand, PauseCommand,
    ResumeCommand, Ignored,
)
from shared.state import PlaybackState
from server.state_store import StateStore, StateUpdate

logger = logging.getLogger("dubsync.server.hub")

DEFAULT_OUTBOX_LIMIT = 256

SendText = Callable[[str], Awaitable[None]]


class ClientSession:
    """
    One connected client. Events are queued synchronously and written by
    `run_writer`, so broadcasting never waits on a socket.
    """

    def __init__(self, send_text: SendText, outbox_limit: int = DEFAULT_OUTBOX_LIMIT,
                 session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.outbox_limit = outbox_limit
        self.closed = False
        self._send_text = send_text
        self._outbox: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def enqueue(self, event: dict[str, Any]) -> bool:
        if self.closed:
            return False
        if self._outbox.qsize() >= self.outbox_limit:
            logger.warning("Outbox full for %s (%d events); closing", self.session_id, self.outbox_limit)
            self.close()
            return False
        self._outbox.put_nowait(encode(event))
        return True

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._outbox.put_nowait(None)  # wakes the writer

    async def run_writer(self) -> None:
        """Write queued events in order until closed or the socket fails."""
        while True:
            raw = await self._outbox.get()
            if raw is None:
                return
            try:
                await self._send_text(raw)
            except Exception as e:
                logger.warning("Failed to send to %s: %s", self.session_id, e)
                self.closed = True
                return


class SyncHub:
    """
    Applies operator commands to the StateStore and fans the resulting
    events out to every session: granular events first, then one STATE.
    Handlers are synchronous, so no other command can interleave.
    """

    def __init__(self, store: Optional[StateStore] = None, outbox_limit: int = DEFAULT_OUTBOX_LIMIT):
        self.store = store or StateStore()
        self.outbox_limit = outbox_limit
        self._sessions: dict[str, ClientSession] = {}

    @property
    def sessions(self) -> dict[str, ClientSession]:
        return self._sessions

    def connect(self, send_text: SendText) -> ClientSession:
        """Register a connection and greet it with HELLO + STATE."""
        session = ClientSession(send_text, self.outbox_limit)
        self._sessions[session.session_id] = session
        now = self.store.now()
        session.enqueue(hello_event(now))
        session.enqueue(state_event(self.store.get(), now))
        logger.info("Client connected: %s (%d open)", session.session_id, len(self._sessions))
        return session

    def disconnect(self, session: ClientSession) -> None:
        if self._sessions.pop(session.session_id, None) is not None:
            logger.info("Client disconnected: %s (%d open)", session.session_id, len(self._sessions))
        session.close()

    def broadcast(self, events: list[dict[str, Any]]) -> None:
        for session in list(self._sessions.values()):
            for event in events:
                if not session.enqueue(event):
                    self.disconnect(session)
                    break

    # ---- Channel messages ----

    def handle_message(self, session: ClientSession, raw: str | bytes) -> None:
        msg = parse_inbound(raw)
        if isinstance(msg, Ping):
            session.enqueue(ping_reply(msg.t0, self.store.now()))
        elif isinstance(msg, Heartbeat):
            session.enqueue(heartbeat_event(self.store.now()))
        elif isinstance(msg, CueCommand):
            self._on_cue(msg)
        elif isinstance(msg, SeekCommand):
            self._on_seek(msg)
        elif isinstance(msg, RateCommand):
            self._on_rate(msg)
        elif isinstance(msg, PauseCommand):
            self._commit(StateUpdate(is_paused=True, anchor=msg.anchor), [pause_event])
        elif isinstance(msg, ResumeCommand):
            self._commit(StateUpdate(is_paused=False, anchor=msg.anchor), [resume_event])
        elif isinstance(msg, Ignored):
            logger.debug("Ignored message from %s: %s", session.session_id, msg.reason)

    def _on_cue(self, msg: CueCommand) -> None:
        previous_scene = self.store.get().scene
        state = self.store.apply(
            StateUpdate(
                scene=msg.scene,
                cue_index=msg.cue_index,
                playback_rate=msg.playback_rate,
                is_paused=False,
                anchor=msg.anchor,
            ),
            trust_client_time=True,
        )
        now = self.store.now()
        events = []
        if msg.scene is not None and msg.scene != previous_scene:
            events.append(scene_load_event(msg.scene, now))
        events.append(cue_event(state.cue_index, now))
        events.append(state_event(state, now))
        logger.info("CUE scene=%s cue=%d", state.scene, state.cue_index)
        self.broadcast(events)

    def _on_seek(self, msg: SeekCommand) -> None:
        media_time = msg.anchor.media_time_sec
        self._commit(StateUpdate(anchor=msg.anchor), [lambda now: seek_event(media_time, now)])

    def _on_rate(self, msg: RateCommand) -> None:
        rate = msg.playback_rate
        self._commit(
            StateUpdate(playback_rate=rate, anchor=msg.anchor),
            [lambda now: rate_event(rate, now)],
        )

    def _commit(self, update: StateUpdate, granular: list[Callable[[int], dict[str, Any]]]) -> PlaybackState:
        """Apply with the anchor untrusted, then broadcast granular events + STATE."""
        state = self.store.apply(update)
        now = self.store.now()
        events = [make(now) for make in granular]
        events.append(state_event(state, now))
        self.broadcast(events)
        return state

    # ---- Unary update (REST) ----

    def apply_update(self, body: Any) -> PlaybackState:
        """
        Same mutation and broadcast sequence as the channel, for callers
        that do not hold a socket. Fields with the wrong type are treated
        as absent.
        """
        if not isinstance(body, dict):
            return self._commit(StateUpdate(), [])

        scene = scene_id(body.get("scene"))
        cue_index = int(body["cueIndex"]) if valid_cue_index(body.get("cueIndex")) else None
        rate = float(body["playbackRate"]) if valid_rate(body.get("playbackRate")) else None
        is_paused = body.get("isPaused") if isinstance(body.get("isPaused"), bool) else None
        anchor = AnchorInput.from_wire(body.get("anchor"))

        granular: list[Callable[[int], dict[str, Any]]] = []
        if scene is not None:
            granular.append(lambda now: scene_load_event(scene, now))
        if cue_index is not None:
            granular.append(lambda now: cue_event(cue_index, now))
        if is_paused is not None:
            granular.append(pause_event if is_paused else resume_event)
        if rate is not None:
            granular.append(lambda now: rate_event(rate, now))
        if anchor is not None:
            granular.append(lambda now: seek_event(anchor.media_time_sec, now))

        update = StateUpdate(
            scene=scene, cue_index=cue_index, playback_rate=rate,
            is_paused=is_paused, anchor=anchor,
        )
        logger.info("Update via REST: %s", json.dumps(body))
        return self._commit(update, granular)
