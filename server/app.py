"""FastAPI app factory for the DubSync server."""
from __future__ import annotations
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config import AppConfig, load_config
from server.hub import SyncHub
from server.routes import register_routes
from server.state_store import StateStore


def create_app(config: Optional[AppConfig] = None, hub: Optional[SyncHub] = None) -> FastAPI:
    """Build the app; tests pass their own config and hub."""
    if config is None:
        config = load_config()

    app = FastAPI(title="DubSync")
    app.state.config = config
    app.state.hub = hub or SyncHub(StateStore(), outbox_limit=config.server.outbox_limit)

    # Browser consoles are served from elsewhere during rehearsals
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    register_routes(app)
    return app
