import logging
import time
from typing import Optional

import keyboard
import pyperclip

from voice_input.errors import DeliveryError
from voice_input.models import OutputMode

logger = logging.getLogger(__name__)

# Shift+Insert instead of Ctrl+V: some global hook tools intercept Ctrl+V
PASTE_HOTKEY = "shift+insert"
KEY_RELEASE_DELAY_S = 0.05
PASTE_SETTLE_DELAY_S = 0.1


class OutputDispatcher:
    def __init__(self, sleep=time.sleep):
        self._sleep = sleep

    def set_text(self, text: str):
        pyperclip.copy(text)
        logger.info("Text copied to clipboard: %d chars", len(text))

    def get_text(self) -> Optional[str]:
        try:
            return pyperclip.paste()
        except pyperclip.PyperclipException:
            return None

    def paste(self):
        # Wait for the recording hotkey to be released
        self._sleep(KEY_RELEASE_DELAY_S)
        keyboard.send(PASTE_HOTKEY)
        logger.info("Paste simulated (%s)", PASTE_HOTKEY)

    def set_and_paste(self, text: str):
        self.set_text(text)
        self.paste()

    def paste_temporary(self, text: str):
        """Paste ``text`` and put the previous clipboard contents back."""
        original = self.get_text()
        self.set_text(text)
        self.paste()
        self._sleep(PASTE_SETTLE_DELAY_S)
        if original is not None:
            pyperclip.copy(original)
            logger.info("Clipboard restored")

    def deliver(self, text: str, mode: OutputMode):
        try:
            if mode is OutputMode.CLIPBOARD_ONLY:
                self.set_text(text)
            elif mode is OutputMode.DIRECT_INPUT:
                self.paste_temporary(text)
            elif mode is OutputMode.BOTH:
                self.set_and_paste(text)
            else:
                raise DeliveryError(f"Unknown output mode: {mode}", text=text)
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(f"Failed to deliver text: {e}", text=text) from e
