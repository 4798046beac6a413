from datetime import datetime, timezone
from typing import List, Optional

import pytest

from voiceclip.exceptions import CaptureError, ClipboardError, NotConnectedError, PersistenceError
from voiceclip.models import AudioBlob, HistoryDay, TranscriptionData, TranscriptionRecord, TranscriptionResult
from voiceclip.storage import SQLiteHistoryStore


class FakeRecorder:
    def __init__(self, fail_start: Optional[Exception] = None, fail_stop: Optional[Exception] = None):
        self.capturing = False
        self.starts = 0
        self.fail_start = fail_start
        self.fail_stop = fail_stop

    def start(self) -> None:
        if self.capturing:
            raise CaptureError("Already recording.")
        if self.fail_start is not None:
            raise self.fail_start
        self.capturing = True
        self.starts += 1

    def stop(self) -> AudioBlob:
        if not self.capturing:
            raise CaptureError("Not recording.")
        self.capturing = False
        if self.fail_stop is not None:
            raise self.fail_stop
        return AudioBlob(data=b"RIFF....WAVE", mime_type="audio/wav", filename="audio.wav")

    def is_capturing(self) -> bool:
        return self.capturing


class FakeTranscriber:
    def __init__(self, result: Optional[TranscriptionResult] = None, error: Optional[Exception] = None):
        self.result = result or TranscriptionResult(text="Hello world", duration_seconds=2.5)
        self.error = error
        self.blobs: List[AudioBlob] = []
        self.during_call = None

    def transcribe(self, blob: AudioBlob) -> TranscriptionResult:
        self.blobs.append(blob)
        if self.during_call is not None:
            self.during_call()
        if self.error is not None:
            raise self.error
        return self.result


class FakeClipboard:
    def __init__(self, fail: bool = False):
        self.writes: List[str] = []
        self.fail = fail

    def write(self, text: str) -> None:
        if self.fail:
            raise ClipboardError("Clipboard unavailable")
        self.writes.append(text)


class MemoryStore:
    def __init__(self, fail_insert: bool = False):
        self.connected = False
        self.fail_insert = fail_insert
        self.records: List[TranscriptionRecord] = []
        self.queried: List[str] = []

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def _check(self) -> None:
        if not self.connected:
            raise NotConnectedError("History store is not connected. Call connect() first.")

    def insert(self, data: TranscriptionData) -> str:
        self._check()
        if self.fail_insert:
            raise PersistenceError("Failed to save transcription: disk full")
        record_id = str(len(self.records) + 1)
        self.records.append(
            TranscriptionRecord(
                id=record_id,
                text=data.text,
                duration_seconds=data.duration_seconds,
                cost_usd=data.cost_usd,
                timestamp=data.timestamp,
                date=data.date,
            )
        )
        return record_id

    def aggregate_by_date(self) -> List[HistoryDay]:
        self._check()
        counts = {}
        for record in self.records:
            counts[record.date] = counts.get(record.date, 0) + 1
        return [HistoryDay(date=d, count=c) for d, c in sorted(counts.items(), reverse=True)]

    def query_by_date(self, date: str) -> List[TranscriptionRecord]:
        self._check()
        self.queried.append(date)
        matches = [r for r in self.records if r.date == date]
        return sorted(matches, key=lambda r: r.timestamp, reverse=True)


class ManualScheduler:
    """Collects delayed callbacks so tests can fire them explicitly."""

    def __init__(self):
        self.pending = []

    def __call__(self, delay, callback):
        self.pending.append((delay, callback))

    def run_all(self):
        pending, self.pending = self.pending, []
        for _delay, callback in pending:
            callback()


def run_inline(target, *args):
    target(*args)


FIXED_NOW = datetime(2025, 12, 16, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteHistoryStore(tmp_path / "history.db")
    store.connect()
    yield store
    store.disconnect()
