"""DubSync server entry point."""
from __future__ import annotations
import logging
from pathlib import Path

import uvicorn

from shared.config import load_config
from shared.logging_utils import setup_rotating_logger
from server.app import create_app


def main() -> None:
    config = load_config()
    setup_rotating_logger("dubsync.server", Path(config.server.log_dir))
    logger = logging.getLogger("dubsync.server")
    logger.info("DubSync server starting on %s:%d", config.server.host, config.server.port)
    logger.info("Script data: %s; WS at /ws", config.server.play_data_path)

    app = create_app(config)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level="info")


if __name__ == "__main__":
    main()
