"""Microphone capture."""

from __future__ import annotations

import io
import logging
from typing import Protocol

import numpy as np

from .exceptions import CaptureError
from .models import AudioBlob

# (soundfile format, mime type, file name) in order of preference.
PREFERRED_FORMAT = ("FLAC", "audio/flac", "audio.flac")
FALLBACK_FORMAT = ("WAV", "audio/wav", "audio.wav")


class Capture(Protocol):
    def start(self) -> None: ...

    def stop(self) -> AudioBlob: ...

    def is_capturing(self) -> bool: ...


def choose_format(available: dict) -> tuple:
    if PREFERRED_FORMAT[0] in available:
        return PREFERRED_FORMAT
    return FALLBACK_FORMAT


class AudioRecorder:
    """Stream audio from the default microphone and encode it on stop."""

    def __init__(self, samplerate: int = 16000, channels: int = 1) -> None:
        try:
            import sounddevice as sd  # type: ignore
            import soundfile as sf  # type: ignore
        except Exception as exc:  # pragma: no cover - needs PortAudio/libsndfile
            raise CaptureError(
                "The `sounddevice` and `soundfile` packages are required for recording."
            ) from exc

        self._sd = sd
        self._sf = sf
        self._samplerate = samplerate
        self._channels = channels
        self._stream = None
        self._frames: list[np.ndarray] = []

    def is_capturing(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self._stream is not None:
            raise CaptureError("Already recording.")

        self._frames = []
        try:
            stream = self._sd.InputStream(
                samplerate=self._samplerate,
                channels=self._channels,
                dtype="float32",
                callback=self._callback,
            )
            stream.start()
        except self._sd.PortAudioError as exc:
            raise CaptureError(f"Could not open the microphone: {exc}") from exc
        self._stream = stream

    def stop(self) -> AudioBlob:
        if self._stream is None:
            raise CaptureError("Not recording.")

        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except self._sd.PortAudioError as exc:
            raise CaptureError(f"Failed to stop recording: {exc}") from exc

        if not self._frames:
            raise CaptureError("No audio was captured.")

        audio = np.concatenate(self._frames, axis=0)
        self._frames = []
        fmt, mime_type, filename = choose_format(self._sf.available_formats())
        buffer = io.BytesIO()
        try:
            self._sf.write(buffer, audio, self._samplerate, format=fmt)
        except (RuntimeError, ValueError) as exc:
            raise CaptureError(f"Failed to encode audio as {fmt}: {exc}") from exc
        return AudioBlob(data=buffer.getvalue(), mime_type=mime_type, filename=filename)

    def _callback(self, indata, frames, time, status) -> None:
        if status:
            logging.debug("Recorder status: %s", status)
        self._frames.append(indata.copy())

    def play_success_sound(self, frequency: float = 800.0, seconds: float = 0.15) -> None:
        """Play a short sine beep with a quick fade in and out."""

        samplerate = 44100
        t = np.linspace(0.0, seconds, int(samplerate * seconds), endpoint=False)
        envelope = np.minimum(1.0, t / 0.01) * np.exp(-t * 30.0)
        tone = (0.3 * envelope * np.sin(2 * np.pi * frequency * t)).astype(np.float32)
        try:
            self._sd.play(tone, samplerate)
        except self._sd.PortAudioError as exc:
            logging.debug("Failed to play notification sound: %s", exc)
