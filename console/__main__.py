"""DubSync operator console entry point."""
from __future__ import annotations
import asyncio
import logging
import os
import sys
import threading
from pathlib import Path

from PySide6.QtWidgets import QApplication

from shared.config import load_config
from shared.logging_utils import setup_rotating_logger
from shared.script_data import ScriptDataError
from client.connection import SyncConnection
from console.app_state import ConsoleState
from console.ui.main_window import ConsoleMainWindow


def _run_asyncio_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


def main() -> None:
    config = load_config()
    setup_rotating_logger("dubsync.console", Path(config.server.log_dir))
    logger = logging.getLogger("dubsync.console")
    logger.info("DubSync console starting")

    state = ConsoleState(lead_ms=config.sync.lead_ms)
    try:
        state.load_script(Path(config.server.play_data_path))
    except ScriptDataError as e:
        logger.error("No script loaded: %s", e)

    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=_run_asyncio_loop, args=(loop,), daemon=True)
    thread.start()

    server_url = os.environ.get("DUBSYNC_SERVER", f"ws://localhost:{config.server.port}/ws")
    connection = SyncConnection(server_url, settings=config.sync)

    app = QApplication(sys.argv)
    app.setApplicationName("DubSync Console")
    app.setOrganizationName("DubSync")

    window = ConsoleMainWindow(state, connection, loop)
    window.show()

    # Start only after the window has wired its callbacks
    asyncio.run_coroutine_threadsafe(connection.run(), loop)

    exit_code = app.exec()

    asyncio.run_coroutine_threadsafe(connection.close(), loop)
    loop.call_soon_threadsafe(loop.stop)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
