"""macOS menu bar application for voiceclip."""

from __future__ import annotations

import logging
import platform
from typing import Optional

from .clipboard import get_clipboard
from .config import history_path, load_config, update_config
from .exceptions import VoiceClipError
from .history import compute_cost
from .hotkey import HotkeyBridge, KeyComboHotkeyMonitor, format_hotkey, normalize_hotkey
from .models import RecordingState, TranscriptionResult
from .storage import HistoryStore, SQLiteHistoryStore
from .workflow import RecordingWorkflow

TITLES = {
    RecordingState.IDLE: "🎤",
    RecordingState.RECORDING: "🔴",
    RecordingState.TRANSCRIBING: "⏳",
    RecordingState.SUCCESS: "✅",
    RecordingState.ERROR: "⚠️",
}

RECENT_DAYS = 7


def _require_macos() -> None:
    if platform.system() != "Darwin":  # pragma: no cover - platform guard
        raise RuntimeError("The menu bar application is only supported on macOS.")


class VoiceClipMenuApp:  # pragma: no cover - interactive
    """Controller for the macOS menu bar workflow."""

    def __init__(self) -> None:
        _require_macos()
        import rumps  # type: ignore

        from .recorder import AudioRecorder

        self._rumps = rumps
        self._config = load_config()

        try:
            canonical_hotkey = normalize_hotkey(self._config.hotkey)
        except ValueError:
            logging.warning("Invalid stored hotkey %s; falling back to option+1.", self._config.hotkey)
            canonical_hotkey = "option+1"
        if canonical_hotkey != self._config.hotkey:
            update_config(hotkey=canonical_hotkey)
            self._config.hotkey = canonical_hotkey
        self._hotkey_display = format_hotkey(canonical_hotkey)

        self._store = self._create_store()
        self._transcriber = self._store if self._config.server_url else self._create_transcriber()
        self._recorder = AudioRecorder()
        self._workflow = RecordingWorkflow(
            self._recorder,
            self._transcriber,
            self._store,
            get_clipboard(self._config.clipboard),
            display_seconds=self._config.display_seconds,
            on_change=self._on_workflow_change,
            on_success=self._on_success,
        )

        self._app = rumps.App(TITLES[RecordingState.IDLE], quit_button=None)
        self._status_item = rumps.MenuItem("")
        self._toggle_item = rumps.MenuItem("Start Recording", callback=self._on_toggle_clicked)
        self._copy_item = rumps.MenuItem("Copy Last Transcription", callback=self._copy_last)
        self._history_menu = rumps.MenuItem("History")
        self._history_menu.add(rumps.MenuItem("Loading…"))
        self._app.menu = [
            self._status_item,
            self._toggle_item,
            self._copy_item,
            self._history_menu,
            rumps.separator,
            rumps.MenuItem("About", callback=self._show_about),
            rumps.MenuItem("Exit", callback=self._quit),
        ]

        self._bridge = HotkeyBridge()
        self._bridge.register(self._workflow.toggle)
        self._hotkey_monitor: Optional[KeyComboHotkeyMonitor] = None

        self._store.connect()
        self._refresh_history()
        self._start_hotkey_monitor()
        self._render()

    def _create_store(self) -> HistoryStore:
        if self._config.server_url:
            from .client import ApiClient

            return ApiClient.from_config(self._config)
        return SQLiteHistoryStore(history_path(self._config))

    def _create_transcriber(self):
        from .transcriber import GroqTranscriber

        return GroqTranscriber(self._config.groq_api_key, model=self._config.transcription_model)

    def run(self) -> None:
        self._rumps.debug_mode(False)
        self._app.run()

    def _quit(self, _sender) -> None:
        if self._hotkey_monitor is not None:
            self._hotkey_monitor.stop()
        self._bridge.unregister()
        self._store.disconnect()
        self._rumps.quit_application()

    def _start_hotkey_monitor(self) -> None:
        try:
            self._hotkey_monitor = KeyComboHotkeyMonitor(self._config.hotkey, self._bridge.fire)
        except VoiceClipError as exc:
            logging.error("Failed to initialise hotkey monitor: %s", exc)
            self._status_item.title = f"Hotkey error: {exc}"
            return
        self._hotkey_monitor.start()

    def _on_toggle_clicked(self, _sender) -> None:
        self._bridge.fire()

    def _on_workflow_change(self, _workflow: RecordingWorkflow) -> None:
        self._render()

    def _on_success(self, result: TranscriptionResult, record_id: Optional[str]) -> None:
        self._recorder.play_success_sound()
        cost = compute_cost(result.duration_seconds)
        self._notify("Copied to Clipboard!", f"{result.duration_seconds:.2f}s · ${cost:.6f}")
        if record_id is not None:
            self._refresh_history()

    def _render(self) -> None:
        state = self._workflow.display_state
        self._app.title = TITLES[state]
        self._toggle_item.title = "Stop Recording" if state is RecordingState.RECORDING else "Start Recording"
        if state is RecordingState.RECORDING:
            self._status_item.title = f"Recording… press {self._hotkey_display} to stop."
        elif state is RecordingState.TRANSCRIBING:
            self._status_item.title = "Transcribing…"
        elif state is RecordingState.ERROR:
            self._status_item.title = f"Error: {self._workflow.last_error}"
        elif state is RecordingState.SUCCESS:
            self._status_item.title = "Copied to clipboard."
        else:
            self._status_item.title = f"Press {self._hotkey_display} to record."

    def _copy_last(self, _sender) -> None:
        result = self._workflow.last_result
        if result is None:
            self._notify("Nothing to copy", "No transcription yet.")
            return
        try:
            get_clipboard(self._config.clipboard).write(result.text)
        except VoiceClipError as exc:
            self._notify("Copy failed", str(exc))

    def _refresh_history(self) -> None:
        self._history_menu.clear()
        try:
            days = self._store.aggregate_by_date()[:RECENT_DAYS]
        except VoiceClipError as exc:
            logging.warning("Could not load history: %s", exc)
            self._history_menu.add(self._rumps.MenuItem("History unavailable"))
            return
        if not days:
            self._history_menu.add(self._rumps.MenuItem("No transcriptions yet"))
            return
        for day in days:
            self._history_menu.add(
                self._rumps.MenuItem(f"{day.date} ({day.count})", callback=self._make_day_callback(day.date))
            )

    def _make_day_callback(self, date: str):
        def show_day(_sender) -> None:
            try:
                records = self._store.query_by_date(date)
            except VoiceClipError as exc:
                self._notify("History unavailable", str(exc))
                return
            lines = [f"{r.timestamp.astimezone():%H:%M}  {r.text}" for r in records]
            self._rumps.alert(title=f"Transcriptions on {date}", message="\n\n".join(lines) or "Empty")

        return show_day

    def _show_about(self, _sender) -> None:
        self._notify("voiceclip", f"Press {self._hotkey_display} to record and copy speech.")

    def _notify(self, title: str, message: str) -> None:
        try:
            self._rumps.notification("voiceclip", title, message)
        except Exception as exc:
            logging.debug("Notification unavailable: %s", exc)


def run() -> None:
    """Launch the menu bar application."""

    app = VoiceClipMenuApp()
    app.run()


__all__ = ["VoiceClipMenuApp", "run"]
