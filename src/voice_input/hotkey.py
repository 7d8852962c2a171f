import asyncio
import logging
import time
from typing import Optional

import keyboard

from voice_input.errors import VoiceInputError
from voice_input.session import SessionCoordinator

logger = logging.getLogger(__name__)

_MODIFIERS = {
    "ctrl": "ctrl",
    "control": "ctrl",
    "alt": "alt",
    "shift": "shift",
    "super": "windows",
    "win": "windows",
    "cmd": "windows",
    "meta": "windows",
}

_KEYS = {
    "space": "space",
    "enter": "enter",
    "return": "enter",
    "tab": "tab",
    "escape": "esc",
    "esc": "esc",
    "backspace": "backspace",
    "delete": "delete",
    "insert": "insert",
    "home": "home",
    "end": "end",
    "pageup": "page up",
    "pagedown": "page down",
    "up": "up",
    "down": "down",
    "left": "left",
    "right": "right",
    "equal": "=",
    "minus": "-",
    "bracketleft": "[",
    "bracketright": "]",
    "semicolon": ";",
    "quote": "'",
    "backquote": "`",
    "backslash": "\\",
    "comma": ",",
    "period": ".",
    "slash": "/",
    # keyboard names keypad keys after the character they produce
    "numpadadd": "plus",
    "numpadsubtract": "-",
    "numpadmultiply": "*",
    "numpaddivide": "/",
    "numpaddecimal": "decimal",
    "numpadenter": "enter",
}
_KEYS.update({f"numpad{i}": str(i) for i in range(10)})


def parse_hotkey(binding: str) -> str:
    """Convert a binding like ``"Ctrl+Space"`` to the keyboard library's syntax."""
    modifiers: list[str] = []
    key: Optional[str] = None

    for part in binding.split("+"):
        name = part.strip().lower()
        if not name:
            raise ValueError(f"Invalid hotkey: {binding!r}")
        if name in _MODIFIERS:
            mod = _MODIFIERS[name]
            if mod not in modifiers:
                modifiers.append(mod)
        elif name in _KEYS:
            key = _KEYS[name]
        elif len(name) == 1 or (name.startswith("f") and name[1:].isdigit() and 1 <= int(name[1:]) <= 24):
            key = name
        else:
            raise ValueError(f"Unsupported key {part.strip()!r} in hotkey {binding!r}")

    if key is None:
        raise ValueError(f"Hotkey {binding!r} has no main key")
    return "+".join(modifiers + [key])


class HotkeyService:
    """Global hotkey that toggles recording on the host's event loop.

    keyboard invokes callbacks on its own listener thread, so the toggle is
    handed to the loop with ``run_coroutine_threadsafe``.
    """

    def __init__(self, coordinator: SessionCoordinator, loop: asyncio.AbstractEventLoop,
                 binding: str, debounce_s: float = 0.35):
        self.coordinator = coordinator
        self.loop = loop
        self.binding = binding
        self.hotkey = parse_hotkey(binding)
        self.debounce_s = debounce_s
        self._last_trigger = float("-inf")
        self._handle = None

    def _debounced(self) -> bool:
        now = time.monotonic()
        if now - self._last_trigger < self.debounce_s:
            return False
        self._last_trigger = now
        return True

    def on_toggle(self):
        if not self._debounced():
            return
        future = asyncio.run_coroutine_threadsafe(self.coordinator.toggle(), self.loop)
        future.add_done_callback(self._report)

    @staticmethod
    def _report(future):
        try:
            future.result()
        except VoiceInputError as e:
            logger.error("Failed to toggle recording: %s", e)
        except Exception:
            logger.exception("Unexpected error while toggling recording")

    def register(self):
        if self._handle is not None:
            return
        self._handle = keyboard.add_hotkey(self.hotkey, self.on_toggle)
        logger.info("Hotkey registered: %s", self.binding)

    def unregister(self):
        if self._handle is not None:
            keyboard.remove_hotkey(self._handle)
            self._handle = None
