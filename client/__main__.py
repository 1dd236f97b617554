"""DubSync audience player entry point."""
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
from client.mpv_controller import MpvController
from client.ui.main_window import PlayerMainWindow


def _run_asyncio_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


def main() -> None:
    config = load_config()
    setup_rotating_logger("dubsync.client", Path(config.server.log_dir))
    logger = logging.getLogger("dubsync.client")
    logger.info("DubSync player starting")

    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=_run_asyncio_loop, args=(loop,), daemon=True)
    thread.start()

    app = QApplication(sys.argv)
    app.setApplicationName("DubSync Player")
    app.setOrganizationName("DubSync")

    mpv = MpvController(os.environ.get("DUBSYNC_MEDIA_ROOT", "public/Audio"))
    asyncio.run_coroutine_threadsafe(mpv.start(), loop)

    window = PlayerMainWindow(loop, mpv, config.sync)
    window.show()

    exit_code = app.exec()

    asyncio.run_coroutine_threadsafe(mpv.stop_subprocess(), loop)
    loop.call_soon_threadsafe(loop.stop)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
