"""DubSync audience player window."""
from __future__ import annotations
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt, QTimer, Signal, QObject
from PySide6.QtWidgets import (
    QComboBox, QFormLayout, QLabel, QLineEdit, QMainWindow, QPushButton,
    QSpinBox, QStackedWidget, QStatusBar, QVBoxLayout, QWidget,
)

from shared.config import DEFAULT_PORT, SyncSettings
from client.mpv_controller import MpvController
from client.player import AudiencePlayer

logger = logging.getLogger("dubsync.client.ui")

CONFIG_FILE = Path.home() / ".dubsync" / "player.json"


class _Signaler(QObject):
    status_changed = Signal(str)
    connection_changed = Signal(bool)


class PlayerMainWindow(QMainWindow):
    def __init__(self, loop: asyncio.AbstractEventLoop, mpv: MpvController,
                 settings: Optional[SyncSettings] = None):
        super().__init__()
        self.loop = loop
        self.mpv = mpv
        self.settings = settings
        self._player: Optional[AudiencePlayer] = None
        self._signaler = _Signaler()

        self.setWindowTitle("DubSync Player")
        self.resize(480, 360)

        self.stack = QStackedWidget()
        self.setCentralWidget(self.stack)
        self.stack.addWidget(self._build_start_screen())
        self.stack.addWidget(self._build_status_screen())

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.status_bar.showMessage("Choose a language and tap to start")

        self._signaler.status_changed.connect(self._on_status)
        self._signaler.connection_changed.connect(self._on_connection_changed)

        self._timer = QTimer()
        self._timer.timeout.connect(self._tick)
        self._timer.start(1000)

        self._load_last_connection()

    def _build_start_screen(self) -> QWidget:
        screen = QWidget()
        layout = QVBoxLayout(screen)
        layout.setContentsMargins(30, 30, 30, 30)

        title = QLabel("DubSync")
        title.setStyleSheet("font-size: 32px; font-weight: bold;")
        layout.addWidget(title)

        form = QFormLayout()
        self.fld_host = QLineEdit("localhost")
        self.fld_port = QSpinBox()
        self.fld_port.setRange(1, 65535)
        self.fld_port.setValue(DEFAULT_PORT)
        self.fld_lang = QComboBox()
        self.fld_lang.addItem("Hindi", "hi")
        self.fld_lang.addItem("English", "en")
        form.addRow("Server:", self.fld_host)
        form.addRow("Port:", self.fld_port)
        form.addRow("Language:", self.fld_lang)
        layout.addLayout(form)

        # Audio may only start after this gesture
        self.btn_start = QPushButton("Tap to Start")
        self.btn_start.setMinimumHeight(60)
        self.btn_start.clicked.connect(self._on_start)
        layout.addWidget(self.btn_start)

        hint = QLabel("Keep this window open for uninterrupted audio.")
        hint.setStyleSheet("color: #888;")
        layout.addWidget(hint)
        layout.addStretch()
        return screen

    def _build_status_screen(self) -> QWidget:
        screen = QWidget()
        layout = QVBoxLayout(screen)
        self.status_label = QLabel("Connecting...")
        self.status_label.setAlignment(Qt.AlignCenter)
        self.status_label.setStyleSheet("font-size: 20px;")
        layout.addWidget(self.status_label)
        self.offset_label = QLabel("synced offset: 0 ms")
        self.offset_label.setAlignment(Qt.AlignCenter)
        self.offset_label.setStyleSheet("font-size: 11px; color: #888;")
        layout.addWidget(self.offset_label)
        return screen

    def _on_start(self) -> None:
        host = self.fld_host.text().strip()
        port = self.fld_port.value()
        lang = self.fld_lang.currentData()
        if not host:
            return
        self._save_connection(host, port, lang)

        self._player = AudiencePlayer(f"ws://{host}:{port}/ws", self.mpv, lang, self.settings)
        self._player.on_status = self._signaler.status_changed.emit
        self._player.connection.on_connection_change = self._signaler.connection_changed.emit
        asyncio.run_coroutine_threadsafe(self._player.run(), self.loop)

        self.stack.setCurrentIndex(1)
        self.status_bar.showMessage(f"Connecting to {host}:{port}...")

    def _on_status(self, text: str) -> None:
        self.status_label.setText(text)

    def _on_connection_changed(self, connected: bool) -> None:
        self.status_bar.showMessage("Connected" if connected else "Disconnected; retrying...")

    def _tick(self) -> None:
        if self._player:
            self.offset_label.setText(f"synced offset: {round(self._player.offset_ms)} ms")

    def _save_connection(self, host: str, port: int, lang: str) -> None:
        try:
            CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
            CONFIG_FILE.write_text(json.dumps({"host": host, "port": port, "lang": lang}, indent=2))
        except OSError as e:
            logger.warning("Failed to save player config: %s", e)

    def _load_last_connection(self) -> None:
        if not CONFIG_FILE.exists():
            return
        try:
            config = json.loads(CONFIG_FILE.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Failed to load player config: %s", e)
            return
        self.fld_host.setText(config.get("host", "localhost"))
        self.fld_port.setValue(int(config.get("port", DEFAULT_PORT)))
        index = self.fld_lang.findData(config.get("lang", "hi"))
        if index >= 0:
            self.fld_lang.setCurrentIndex(index)

    def closeEvent(self, event) -> None:
        if self._player:
            asyncio.run_coroutine_threadsafe(self._player.stop(), self.loop)
        super().closeEvent(event)
