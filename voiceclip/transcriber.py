"""Speech-to-text clients."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from openai import OpenAI, OpenAIError

from .exceptions import TranscriptionError
from .models import AudioBlob, TranscriptionResult

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "whisper-large-v3-turbo"


class TranscriptionClient(Protocol):
    """Common interface for transcription providers."""

    def transcribe(self, blob: AudioBlob) -> TranscriptionResult:
        """Return the transcript of ``blob`` and the audio duration in seconds."""


class GroqTranscriber:
    """Hosted Whisper transcription through Groq's OpenAI-compatible API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = GROQ_BASE_URL,
        client_factory: Callable[..., Any] = OpenAI,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._base_url = base_url
        self._client_factory = client_factory
        self._client = None

    def _get_client(self):
        if not self._api_key:
            raise TranscriptionError(
                "GROQ_API_KEY is not set. Export GROQ_API_KEY or run `voiceclip config --groq-api-key`."
            )
        if self._client is None:
            self._client = self._client_factory(api_key=self._api_key, base_url=self._base_url)
        return self._client

    def transcribe(self, blob: AudioBlob) -> TranscriptionResult:
        client = self._get_client()
        try:
            response = client.audio.transcriptions.create(
                model=self.model,
                file=(blob.filename, blob.data, blob.mime_type),
                temperature=0,
                response_format="verbose_json",
            )
        except OpenAIError as exc:
            raise TranscriptionError(f"Transcription request failed: {exc}") from exc
        # verbose_json carries the duration; providers may still omit it.
        text = getattr(response, "text", None) or ""
        duration = getattr(response, "duration", None) or 0
        return TranscriptionResult(text=text, duration_seconds=float(duration))
