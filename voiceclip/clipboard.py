"""Clipboard adapters."""

from __future__ import annotations

from typing import Protocol

import pyperclip

from .exceptions import ClipboardError


class Clipboard(Protocol):
    def write(self, text: str) -> None: ...


class PasteboardClipboard:
    """Write to the macOS general pasteboard through AppKit."""

    def __init__(self) -> None:
        try:
            from AppKit import NSPasteboard, NSPasteboardTypeString  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise ClipboardError(
                "The `pyobjc` packages are required to access the clipboard. Install voiceclip[mac]."
            ) from exc
        self._pasteboard = NSPasteboard.generalPasteboard()
        self._type = NSPasteboardTypeString

    def write(self, text: str) -> None:  # pragma: no cover - needs a macOS session
        self._pasteboard.clearContents()
        if not self._pasteboard.setString_forType_(text, self._type):
            raise ClipboardError("The pasteboard rejected the write.")


class PyperclipClipboard:
    """Write to the system clipboard with pyperclip (xclip, wl-copy, pbcopy, win32)."""

    def write(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            raise ClipboardError(f"Clipboard unavailable: {exc}") from exc


def get_clipboard(name: str = "pasteboard") -> Clipboard:
    """Return the configured clipboard, falling back to pyperclip off macOS."""

    if name == "pasteboard":
        try:
            return PasteboardClipboard()
        except ClipboardError:
            return PyperclipClipboard()
    if name == "pyperclip":
        return PyperclipClipboard()
    raise ClipboardError(f"Unknown clipboard backend: {name}")
