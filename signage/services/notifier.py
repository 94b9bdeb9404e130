import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

ScreenListener = Callable[[dict[str, Any]], None]


class ScreenNotifier:
    """Fire-and-forget fan-out of "this screen's schedule changed" events.

    Delivery to real devices lives in whatever subscribes; a listener that
    raises is logged and unsubscribed, and the caller never sees the error.
    """

    def __init__(self) -> None:
        self._listeners: list[ScreenListener] = []
        self._lock = threading.Lock()
        self._revision = 0

    def subscribe(self, listener: ScreenListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ScreenListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def notify(self, screen_ids: list[str], reason: str, payload: dict[str, Any] | None = None) -> int:
        with self._lock:
            self._revision += 1
            revision = self._revision
            listeners = list(self._listeners)
        message = {
            "type": reason,
            "revision": revision,
            "screen_ids": list(screen_ids),
            "payload": payload or {},
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        logger.debug("Notify screens %s: %s (revision %s)", screen_ids, reason, revision)

        stale: list[ScreenListener] = []
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.exception("Screen listener failed for %s", reason)
                stale.append(listener)

        if stale:
            with self._lock:
                for listener in stale:
                    if listener in self._listeners:
                        self._listeners.remove(listener)
        return revision

    @property
    def revision(self) -> int:
        return self._revision
