import logging
import threading
from typing import Any, Callable, List

from voice_input.models import SessionEvent

logger = logging.getLogger(__name__)

Observer = Callable[[SessionEvent], None]


class EventBus:
    """Ordered, synchronous delivery of session events to in-process observers.

    Events reach every observer in emission order. An observer that raises is
    logged and skipped; the remaining observers still receive the event.
    """

    def __init__(self):
        self._observers: List[Observer] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe():
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def emit(self, kind: str, payload: Any = None):
        event = SessionEvent(kind=kind, payload=payload)
        logger.debug("Event: %s %r", kind, payload)
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Observer %r failed on %s", observer, kind)
