"""Bridge statistics for the health endpoint."""

from __future__ import annotations

from collections import Counter
from datetime import datetime


class StatsTracker:
    """Track broker traffic, tracker decisions, and delivery outcomes."""

    def __init__(self) -> None:
        self._start_time = datetime.now()
        self.mqtt_connected = False
        self.events_received = 0
        self.reviews_received = 0
        self.legacy_events_received = 0
        self.parse_errors = 0
        self.notifications_sent = 0
        self.notifications_failed = 0
        self.notifications_skipped = 0
        self.last_event_time: datetime | None = None
        self._decisions: Counter[str] = Counter()

    def set_mqtt_connected(self, connected: bool) -> None:
        self.mqtt_connected = connected

    def record_event(self) -> None:
        self.events_received += 1
        self.last_event_time = datetime.now()

    def record_review(self) -> None:
        self.reviews_received += 1

    def record_legacy_event(self) -> None:
        self.legacy_events_received += 1

    def record_parse_error(self) -> None:
        self.parse_errors += 1

    def record_decision(self, decision: str) -> None:
        self._decisions[decision] += 1

    def record_delivery(self, ok: bool, skipped: bool = False) -> None:
        if skipped:
            self.notifications_skipped += 1
        elif ok:
            self.notifications_sent += 1
        else:
            self.notifications_failed += 1

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self._start_time).total_seconds()

    def summary(self) -> dict:
        return {
            "mqtt_connected": self.mqtt_connected,
            "events_received": self.events_received,
            "reviews_received": self.reviews_received,
            "legacy_events_received": self.legacy_events_received,
            "parse_errors": self.parse_errors,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "notifications_skipped": self.notifications_skipped,
            "decisions": dict(self._decisions),
            "last_event_time": (
                self.last_event_time.isoformat() if self.last_event_time else None
            ),
            "uptime_seconds": round(self.uptime_seconds, 1),
        }
