"""Dataclasses describing transcriptions, history entries and configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class AudioBlob:
    """A finalized recording ready to be uploaded."""

    data: bytes
    mime_type: str = "audio/wav"
    filename: str = "audio.wav"


@dataclass(slots=True, frozen=True)
class TranscriptionResult:
    text: str = ""
    duration_seconds: float = 0.0


@dataclass(slots=True, frozen=True)
class TranscriptionData:
    """A history entry that has not been assigned an id yet."""

    text: str
    duration_seconds: float
    cost_usd: float
    timestamp: datetime
    date: str


@dataclass(slots=True, frozen=True)
class TranscriptionRecord:
    """Represents a stored transcription."""

    id: str
    text: str
    duration_seconds: float
    cost_usd: float
    timestamp: datetime
    date: str


@dataclass(slots=True, frozen=True)
class HistoryDay:
    date: str
    count: int


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    groq_api_key: Optional[str] = None
    transcription_model: str = "whisper-large-v3-turbo"
    hotkey: str = "option+1"
    server_url: Optional[str] = None
    api_key: Optional[str] = None
    api_timeout: float = 60.0
    verify_ssl: bool = True
    history_path: Optional[str] = None
    display_seconds: float = 3.0
    clipboard: str = "pasteboard"
