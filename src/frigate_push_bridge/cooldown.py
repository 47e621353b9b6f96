"""Per (camera, label) cooldown for the legacy frigate/events path."""

from __future__ import annotations

import threading


class CooldownGate:
    """Suppresses repeat notifications for the same camera and label.

    Keys are (camera, label) tuples.  One entry exists per pair ever
    notified, so the map is bounded by cameras x label vocabulary.
    """

    def __init__(self) -> None:
        self._last_sent: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def should_suppress(
        self, camera: str, label: str, now: float, cooldown_seconds: float
    ) -> bool:
        with self._lock:
            last = self._last_sent.get((camera, label))
        if last is None:
            return False
        return now - last < cooldown_seconds

    def record_sent(self, camera: str, label: str, now: float) -> None:
        with self._lock:
            self._last_sent[(camera, label)] = now

    def check_and_record(
        self, camera: str, label: str, now: float, cooldown_seconds: float
    ) -> bool:
        """Return True (and record ``now``) when a notification may go out."""
        key = (camera, label)
        with self._lock:
            last = self._last_sent.get(key)
            if last is not None and now - last < cooldown_seconds:
                return False
            self._last_sent[key] = now
            return True

    def clear(self) -> None:
        with self._lock:
            self._last_sent.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_sent)
