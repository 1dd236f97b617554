"""
Route registration for the DubSync server.

- WS   /ws                  sync channel (HELLO + STATE on connect)
- GET  /current             playback state snapshot
- POST /update              partial state update, broadcast like a channel command
- GET  /manifest/{scene_id} cue descriptors from the script file
"""
from __future__ import annotations
import asyncio
import logging
from pathlib import Path

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from shared.script_data import try_load_script
from server.hub import ClientSession, SyncHub

logger = logging.getLogger("dubsync.server.routes")


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/current")
    async def current() -> dict:
        hub: SyncHub = app.state.hub
        return hub.store.get().to_dict()

    @app.post("/update")
    async def update(request: Request) -> dict:
        hub: SyncHub = app.state.hub
        try:
            body = await request.json()
        except ValueError:
            body = None
        hub.apply_update(body)
        return {"ok": True}

    @app.get("/manifest/{scene_id}")
    async def manifest(scene_id: str):
        script = try_load_script(Path(app.state.config.server.play_data_path))
        cues = script.manifest(scene_id) if script is not None else None
        if cues is None:
            logger.info("Manifest requested for unknown scene %s", scene_id)
            return JSONResponse(status_code=404, content={"error": "Scene not found"})
        return [c.to_dict() for c in cues]

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:
        await ws.accept()
        hub: SyncHub = app.state.hub
        session = hub.connect(ws.send_text)
        writer = asyncio.create_task(session.run_writer())
        reader = asyncio.create_task(_read_loop(ws, hub, session))
        try:
            done, _ = await asyncio.wait({writer, reader}, return_when=asyncio.FIRST_COMPLETED)
            if writer in done and not reader.done():
                # Writer gave up (overflow or send failure): drop the socket too
                try:
                    await ws.close(code=1011)
                except RuntimeError as e:
                    logger.debug("Close after writer exit failed: %s", e)
        finally:
            hub.disconnect(session)
            reader.cancel()
            writer.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)


async def _read_loop(ws: WebSocket, hub: SyncHub, session: ClientSession) -> None:
    try:
        while True:
            msg = await ws.receive()
            if msg["type"] == "websocket.disconnect":
                return
            raw = msg.get("text")
            if raw is None:
                raw = msg.get("bytes")
            if raw is not None:
                hub.handle_message(session, raw)
    except WebSocketDisconnect:
        pass
