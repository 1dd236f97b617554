"""DubSync operator console window: cue list, transport, speed, seek."""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Optional

from PySide6.QtCore import Qt, QTimer, Signal, QObject
from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QCheckBox, QGroupBox, QHBoxLayout, QLabel, QListWidget, QListWidgetItem,
    QMainWindow, QPushButton, QSlider, QStatusBar, QVBoxLayout, QWidget,
)

from shared.state import PlaybackState
from client.connection import SyncConnection
from console.app_state import ConsoleState, RATE_MAX, RATE_MIN, RATE_STEP

logger = logging.getLogger("dubsync.console.ui")


def _fmt(seconds: float) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class _Signaler(QObject):
    state_received = Signal(object)
    connection_changed = Signal(bool)


class ConsoleMainWindow(QMainWindow):
    def __init__(self, state: ConsoleState, connection: SyncConnection, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.state = state
        self.connection = connection
        self.loop = loop
        self._signaler = _Signaler()
        self._seek_dragging = False

        title = state.script.play_title if state.script else "DubSync"
        self.setWindowTitle(f"{title} - DubSync Console")
        self.resize(1100, 800)

        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.addLayout(self._build_info_row())
        layout.addLayout(self._build_transport_row())
        layout.addWidget(self._build_timeline())
        layout.addLayout(self._build_speed_row())
        self.cue_list = QListWidget()
        self.cue_list.itemDoubleClicked.connect(self._on_cue_clicked)
        layout.addWidget(self.cue_list, stretch=1)

        self.status = QStatusBar()
        self.setStatusBar(self.status)
        self.status.showMessage("Connecting...")

        self._setup_shortcuts()
        self._populate_cues()

        connection.on_state = self._on_state_async
        connection.on_connection_change = self._signaler.connection_changed.emit
        self._signaler.state_received.connect(self._on_state)
        self._signaler.connection_changed.connect(self._on_connection_changed)

        self._timer = QTimer()
        self._timer.timeout.connect(self._tick)
        self._timer.start(200)

    # ---- Layout ----

    def _build_info_row(self) -> QHBoxLayout:
        row = QHBoxLayout()
        self.lbl_current = QLabel("CURRENT: —")
        self.lbl_current.setStyleSheet("font-size: 18px; font-weight: bold;")
        self.lbl_next = QLabel("NEXT: —")
        self.lbl_next.setStyleSheet("font-size: 14px; color: #888;")
        self.lbl_offset = QLabel("offset: 0 ms")
        self.lbl_offset.setStyleSheet("font-size: 11px; color: #888;")
        row.addWidget(self.lbl_current)
        row.addStretch()
        row.addWidget(self.lbl_next)
        row.addWidget(self.lbl_offset)
        return row

    def _build_transport_row(self) -> QHBoxLayout:
        row = QHBoxLayout()
        self.btn_prev = QPushButton("◀ PREV")
        self.btn_go = QPushButton("GO")
        self.btn_go.setStyleSheet("background-color: #4CAF50; color: white; font-size: 24px; font-weight: bold;")
        self.btn_next = QPushButton("NEXT ▶")
        self.btn_pause = QPushButton("PAUSE")
        self.btn_pause.setStyleSheet("background-color: #FF9800; color: white;")
        self.btn_resume = QPushButton("RESUME")
        self.btn_prev.clicked.connect(self._on_prev)
        self.btn_go.clicked.connect(self._on_go)
        self.btn_next.clicked.connect(self._on_next)
        self.btn_pause.clicked.connect(self._on_pause)
        self.btn_resume.clicked.connect(self._on_resume)
        for btn in (self.btn_prev, self.btn_go, self.btn_next, self.btn_pause, self.btn_resume):
            btn.setMinimumHeight(60)
            row.addWidget(btn)
        self.chk_auto = QCheckBox("Auto-play")
        self.chk_auto.setChecked(self.state.auto_play)
        self.chk_auto.toggled.connect(self._on_auto_toggled)
        row.addWidget(self.chk_auto)
        return row

    def _build_timeline(self) -> QGroupBox:
        group = QGroupBox("Playback Timeline")
        layout = QVBoxLayout(group)
        labels = QHBoxLayout()
        self.lbl_position = QLabel("0:00")
        self.lbl_duration = QLabel("0:00")
        labels.addWidget(self.lbl_position)
        labels.addStretch()
        labels.addWidget(self.lbl_duration)
        layout.addLayout(labels)
        self.seek_slider = QSlider(Qt.Horizontal)
        self.seek_slider.setRange(0, 0)
        self.seek_slider.sliderPressed.connect(self._on_seek_pressed)
        self.seek_slider.sliderReleased.connect(self._on_seek_released)
        layout.addWidget(self.seek_slider)
        return group

    def _build_speed_row(self) -> QHBoxLayout:
        row = QHBoxLayout()
        row.addWidget(QLabel("Speed:"))
        self.speed_slider = QSlider(Qt.Horizontal)
        self.speed_slider.setRange(int(RATE_MIN * 100), int(RATE_MAX * 100))
        self.speed_slider.setSingleStep(int(RATE_STEP * 100))
        self.speed_slider.setPageStep(int(RATE_STEP * 100))
        self.speed_slider.setValue(100)
        self.speed_slider.sliderReleased.connect(self._on_speed_released)
        self.lbl_speed = QLabel("1.00x")
        row.addWidget(self.speed_slider, stretch=1)
        row.addWidget(self.lbl_speed)
        return row

    def _setup_shortcuts(self) -> None:
        QShortcut(QKeySequence(Qt.Key_Left), self, activated=lambda: self._nudge_rate(-RATE_STEP))
        QShortcut(QKeySequence(Qt.Key_Right), self, activated=lambda: self._nudge_rate(RATE_STEP))
        QShortcut(QKeySequence(Qt.Key_Space), self, activated=self._toggle_play_pause)

    def _populate_cues(self) -> None:
        self.cue_list.clear()
        for item in self.state.dialogs:
            d = item.dialog
            text = f"[{item.scene_id}] {d.cue_id}  {d.character or ''}: {d.english or d.hindi or ''}"
            entry = QListWidgetItem(text)
            entry.setData(Qt.UserRole, item.global_index)
            self.cue_list.addItem(entry)
        self._refresh_labels()

    # ---- Sending ----

    def _server_now(self) -> float:
        return self.connection.clock.server_now_ms()

    def _send(self, command: Optional[dict[str, Any]]) -> None:
        if command is None:
            return
        logger.info("Send %s", command.get("type"))
        asyncio.run_coroutine_threadsafe(self.connection.send(command), self.loop)

    # ---- Actions ----

    def _on_go(self) -> None:
        self._send(self.state.build_cue(self._server_now()))
        self._refresh_labels()

    def _on_next(self) -> None:
        if self.state.go_next():
            self._on_go()

    def _on_prev(self) -> None:
        if self.state.go_prev():
            self._on_go()

    def _on_cue_clicked(self, entry: QListWidgetItem) -> None:
        if self.state.jump_to(entry.data(Qt.UserRole)):
            self._on_go()

    def _on_pause(self) -> None:
        self._send(self.state.build_pause(self._server_now()))

    def _on_resume(self) -> None:
        self._send(self.state.build_resume())

    def _toggle_play_pause(self) -> None:
        if self.state.is_playing:
            self._on_pause()
        elif self.state.server_state is not None and self.state.find_index(
                self.state.server_state.scene, self.state.server_state.cue_index) == self.state.current_index:
            self._on_resume()
        else:
            self._on_go()

    def _on_auto_toggled(self, on: bool) -> None:
        self.state.auto_play = on

    def _on_seek_pressed(self) -> None:
        self._seek_dragging = True

    def _on_seek_released(self) -> None:
        self._seek_dragging = False
        self._send(self.state.build_seek(self.seek_slider.value() / 1000.0))

    def _on_speed_released(self) -> None:
        self._send(self.state.build_rate(self.speed_slider.value() / 100.0, self._server_now()))
        self._refresh_labels()

    def _nudge_rate(self, delta: float) -> None:
        self._send(self.state.build_rate(self.state.adjust_rate(delta), self._server_now()))
        self._refresh_labels()

    # ---- Incoming ----

    async def _on_state_async(self, state: PlaybackState) -> None:
        self._signaler.state_received.emit(state)

    def _on_state(self, state: PlaybackState) -> None:
        self.state.sync_from_server(state)
        self._refresh_labels()

    def _on_connection_changed(self, connected: bool) -> None:
        self.status.showMessage("Connected" if connected else "Disconnected; retrying...")

    def _refresh_labels(self) -> None:
        current = self.state.current()
        nxt = self.state.dialogs[self.state.current_index + 1] if self.state.current_index + 1 < len(self.state.dialogs) else None
        self.lbl_current.setText(f"CURRENT: {current.dialog.cue_id}" if current else "CURRENT: —")
        self.lbl_next.setText(f"NEXT: {nxt.dialog.cue_id}" if nxt else "NEXT: —")
        self.lbl_speed.setText(f"{self.state.playback_rate:.2f}x")
        if not self.speed_slider.isSliderDown():
            self.speed_slider.setValue(round(self.state.playback_rate * 100))
        if current:
            self.cue_list.setCurrentRow(current.global_index)
            duration = current.dialog.duration or 0.0
            self.seek_slider.setRange(0, int(duration * 1000))
            self.lbl_duration.setText(_fmt(duration))

    def _tick(self) -> None:
        server_now = self._server_now()
        self.lbl_offset.setText(f"offset: {round(self.connection.offset_ms)} ms")
        position = self.state.projected_time(server_now)
        if position is not None:
            self.lbl_position.setText(_fmt(position))
            if not self._seek_dragging:
                self.seek_slider.setValue(int(position * 1000))
        if self.state.should_auto_advance(server_now):
            self._on_next()
