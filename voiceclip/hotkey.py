"""Hotkey parsing, the toggle bridge and the macOS global key monitor."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .exceptions import HotkeyError

MODIFIER_ALIASES = {
    "cmd": "command",
    "⌘": "command",
    "command": "command",
    "control": "control",
    "ctrl": "control",
    "^": "control",
    "option": "option",
    "alt": "option",
    "⌥": "option",
    "shift": "shift",
    "⇧": "shift",
}

MODIFIER_ORDER = ("control", "option", "shift", "command")

KEY_ALIASES = {
    "enter": "return",
    "return": "return",
    "space": "space",
    "spacebar": "space",
    "tab": "tab",
    "escape": "escape",
    "esc": "escape",
}

MODIFIER_DISPLAY = {
    "command": "⌘",
    "shift": "⇧",
    "option": "⌥",
    "control": "⌃",
}

KEY_DISPLAY = {
    "space": "Space",
    "return": "Return",
    "tab": "Tab",
    "escape": "Esc",
}


def normalize_hotkey(raw: str) -> str:
    """Return a canonical ``modifier+...+key`` form, e.g. ``Alt+1`` -> ``option+1``."""

    parts = [part.strip().lower() for part in raw.strip().split("+") if part.strip()]
    if not parts:
        raise ValueError("Hotkey cannot be empty.")

    modifiers: list[str] = []
    key: Optional[str] = None
    for part in parts:
        alias = MODIFIER_ALIASES.get(part, part)
        if alias in MODIFIER_ORDER:
            if alias not in modifiers:
                modifiers.append(alias)
            continue
        if key is not None:
            raise ValueError("Only one non-modifier key can be used in a shortcut.")
        mapped = KEY_ALIASES.get(alias, alias)
        if (len(mapped) == 1 and mapped.isprintable()) or mapped in KEY_DISPLAY:
            key = mapped
        else:
            raise ValueError(f"Unsupported key '{part}' in shortcut.")

    if key is None:
        raise ValueError("A shortcut must include a primary key.")
    if not modifiers:
        raise ValueError("A global shortcut needs at least one modifier.")

    return "+".join([mod for mod in MODIFIER_ORDER if mod in modifiers] + [key])


def format_hotkey(hotkey: str) -> str:
    *modifiers, key = hotkey.split("+")
    display = "".join(MODIFIER_DISPLAY.get(mod, mod.title()) for mod in modifiers)
    if key in KEY_DISPLAY:
        return f"{display}{KEY_DISPLAY[key]}"
    return f"{display}{key.upper()}"


class HotkeyBridge:
    """Single-consumer channel delivering toggle events.

    Only one listener may be registered at a time. Each ``fire()`` invokes it
    at most once.
    """

    def __init__(self) -> None:
        self._listener: Optional[Callable[[], None]] = None

    def register(self, listener: Callable[[], None]) -> None:
        if self._listener is not None:
            raise HotkeyError("Hotkey already registered")
        self._listener = listener

    def unregister(self) -> None:
        self._listener = None

    def is_registered(self) -> bool:
        return self._listener is not None

    def fire(self) -> bool:
        listener = self._listener
        if listener is None:
            logging.debug("Hotkey pressed with no registered listener.")
            return False
        listener()
        return True


class KeyComboHotkeyMonitor:
    """Fire ``on_press`` once per press of a global key combination (macOS)."""

    def __init__(self, combo: str, on_press: Callable[[], None]) -> None:
        try:
            from AppKit import (  # type: ignore
                NSEvent,
                NSEventMaskKeyDown,
                NSEventMaskKeyUp,
                NSEventModifierFlagCommand,
                NSEventModifierFlagControl,
                NSEventModifierFlagOption,
                NSEventModifierFlagShift,
            )
            from Quartz import kVK_Escape, kVK_Return, kVK_Space, kVK_Tab  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise HotkeyError(
                "The `pyobjc` packages are required for global hotkey support. Install voiceclip[mac]."
            ) from exc

        *modifiers, key = normalize_hotkey(combo).split("+")
        flags = {
            "command": NSEventModifierFlagCommand,
            "control": NSEventModifierFlagControl,
            "option": NSEventModifierFlagOption,
            "shift": NSEventModifierFlagShift,
        }
        special = {"space": kVK_Space, "return": kVK_Return, "escape": kVK_Escape, "tab": kVK_Tab}

        self._NSEvent = NSEvent
        self._mask_key_down = NSEventMaskKeyDown
        self._mask_key_up = NSEventMaskKeyUp
        self._on_press = on_press
        self._modifier_mask = 0
        for modifier in modifiers:
            self._modifier_mask |= flags[modifier]
        self._expected_key_code = special.get(key)
        self._expected_char = None if self._expected_key_code is not None else key
        self._monitors: list = []
        self._pressed = False

    def start(self) -> None:  # pragma: no cover - needs a macOS session
        if self._monitors:
            return

        def process_key_down(event):
            # Auto-repeat keeps sending key-down; only the first one counts.
            if not self._pressed and self._matches(event):
                self._pressed = True
                self._on_press()
            return event

        def process_key_up(event):
            if self._pressed and self._key_matches(event):
                self._pressed = False
            return event

        for mask, handler in ((self._mask_key_down, process_key_down), (self._mask_key_up, process_key_up)):
            self._monitors.append(self._NSEvent.addGlobalMonitorForEventsMatchingMask_handler_(mask, handler))
            self._monitors.append(self._NSEvent.addLocalMonitorForEventsMatchingMask_handler_(mask, handler))

    def stop(self) -> None:  # pragma: no cover - needs a macOS session
        for monitor in self._monitors:
            if monitor is not None:
                self._NSEvent.removeMonitor_(monitor)
        self._monitors = []
        self._pressed = False

    def _matches(self, event) -> bool:
        flags = int(event.modifierFlags())
        return (flags & self._modifier_mask) == self._modifier_mask and self._key_matches(event)

    def _key_matches(self, event) -> bool:
        if self._expected_key_code is not None:
            return int(event.keyCode()) == int(self._expected_key_code)
        chars = event.charactersIgnoringModifiers()
        return bool(chars) and chars.lower() == self._expected_char
