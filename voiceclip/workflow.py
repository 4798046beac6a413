"""The record -> transcribe -> save -> copy cycle driven by a toggle signal."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from .clipboard import Clipboard
from .exceptions import CaptureError
from .history import build_record, save_best_effort, utcnow
from .models import AudioBlob, RecordingState, TranscriptionResult
from .recorder import Capture
from .storage import HistoryStore
from .transcriber import TranscriptionClient

DISPLAY_SECONDS = 3.0


def _run_in_thread(target: Callable[..., None], *args: Any) -> None:
    threading.Thread(target=target, args=args, daemon=True).start()


def _schedule_timer(delay: float, callback: Callable[[], None]) -> None:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


class RecordingWorkflow:
    """State machine behind the hotkey.

    ``idle`` -toggle-> ``recording`` -toggle-> ``transcribing`` -> ``idle``
    (with a transient success flag) or ``error``, which resets to ``idle``
    after ``display_seconds``. Toggles during ``transcribing`` are ignored.
    Saving to history is best-effort: a failed save never stops the text from
    reaching the clipboard.
    """

    def __init__(
        self,
        recorder: Capture,
        transcriber: TranscriptionClient,
        store: HistoryStore,
        clipboard: Clipboard,
        *,
        display_seconds: float = DISPLAY_SECONDS,
        on_change: Optional[Callable[["RecordingWorkflow"], None]] = None,
        on_success: Optional[Callable[[TranscriptionResult, Optional[str]], None]] = None,
        spawn: Callable[..., None] = _run_in_thread,
        schedule: Callable[[float, Callable[[], None]], None] = _schedule_timer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._store = store
        self._clipboard = clipboard
        self._display_seconds = display_seconds
        self._on_change = on_change
        self._on_success = on_success
        self._spawn = spawn
        self._schedule = schedule
        self._clock = clock

        self.state = RecordingState.IDLE
        self.success_visible = False
        self.last_result: Optional[TranscriptionResult] = None
        self.last_record_id: Optional[str] = None
        self.last_error: Optional[str] = None
        self._error_generation = 0

    def toggle(self) -> None:
        if self.state is RecordingState.TRANSCRIBING:
            logging.debug("Toggle ignored while transcribing.")
            return
        if self.state is RecordingState.RECORDING:
            self._stop()
        else:
            self._start()

    def _start(self) -> None:
        self.success_visible = False
        self.last_error = None
        try:
            self._recorder.start()
        except CaptureError as exc:
            self._fail(exc)
            return
        self._set_state(RecordingState.RECORDING)

    def _stop(self) -> None:
        self._set_state(RecordingState.TRANSCRIBING)
        finished_at = self._clock()
        try:
            blob = self._recorder.stop()
        except CaptureError as exc:
            self._fail(exc)
            return
        self._spawn(self._process, blob, finished_at)

    def _process(self, blob: AudioBlob, finished_at: datetime) -> None:
        try:
            result = self._transcriber.transcribe(blob)
            self.last_result = result
            record = build_record(result.text, result.duration_seconds, timestamp=finished_at)
            self.last_record_id = save_best_effort(self._store, record)
            self._clipboard.write(result.text)
        except Exception as exc:
            logging.exception("Recording workflow failed")
            self._fail(exc)
            return

        self.success_visible = True
        self._set_state(RecordingState.IDLE)
        self._schedule(self._display_seconds, self._clear_success)
        if self._on_success is not None:
            self._on_success(result, self.last_record_id)

    def _fail(self, exc: Exception) -> None:
        self._error_generation += 1
        generation = self._error_generation
        self.last_error = str(exc)
        self._set_state(RecordingState.ERROR)
        self._schedule(self._display_seconds, lambda: self._clear_error(generation))

    def _clear_error(self, generation: int) -> None:
        # A later error owns its own reset; a toggle may have started a new recording.
        if self.state is RecordingState.ERROR and generation == self._error_generation:
            self.last_error = None
            self._set_state(RecordingState.IDLE)

    def _clear_success(self) -> None:
        if self.success_visible:
            self.success_visible = False
            self._notify()

    @property
    def display_state(self) -> RecordingState:
        """The state to show, with the transient success flag folded in."""

        if self.state is RecordingState.IDLE and self.success_visible:
            return RecordingState.SUCCESS
        return self.state

    def _set_state(self, state: RecordingState) -> None:
        self.state = state
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            try:
                self._on_change(self)
            except Exception:
                logging.exception("Workflow observer failed")
