"""Notification filters — severity, camera, and label allowlists.

Evaluation is a pure function of the event fields and an immutable
NotificationsConfig snapshot, so it can run from any task or thread
without locking.  Incomplete events fail closed: a missing severity
never matches a severity filter, and a missing camera or label set
never passes a non-empty allowlist.
"""

from __future__ import annotations

from collections.abc import Iterable

from .config import NotificationsConfig
from .models import Severity, SeverityFilter


class FilterEvaluator:
    """Applies one NotificationsConfig snapshot to incoming events."""

    def __init__(self, settings: NotificationsConfig) -> None:
        self._settings = settings
        self._cameras = frozenset(settings.filter_cameras)
        self._labels = frozenset(settings.filter_labels)

    @property
    def settings(self) -> NotificationsConfig:
        return self._settings

    def severity_allowed(self, severity: Severity | None) -> bool:
        if severity is None:
            return False
        wanted = self._settings.severity_filter
        if wanted is SeverityFilter.ALL:
            return True
        return severity.value == wanted.value

    def camera_allowed(self, camera: str | None) -> bool:
        if not self._cameras:
            return True
        return bool(camera) and camera in self._cameras

    def labels_allowed(self, labels: Iterable[str] | None) -> bool:
        if not self._labels:
            return True
        return any(label in self._labels for label in labels or ())

    def allows(
        self,
        severity: Severity | None,
        camera: str | None,
        labels: Iterable[str] | None,
    ) -> bool:
        """True when the event passes every configured filter."""
        return (
            self.severity_allowed(severity)
            and self.camera_allowed(camera)
            and self.labels_allowed(labels)
        )

    def allows_event(self, camera: str | None, labels: Iterable[str] | None) -> bool:
        """Camera and label checks only (flat events carry no severity)."""
        return self.camera_allowed(camera) and self.labels_allowed(labels)

    def rejection_reason(
        self,
        severity: Severity | None,
        camera: str | None,
        labels: Iterable[str] | None,
    ) -> str:
        """Human-readable reason for logs; empty string when allowed."""
        if not self.severity_allowed(severity):
            got = severity.value if severity else "none"
            return (
                f"severity '{got}' doesn't match filter "
                f"'{self._settings.severity_filter.value}'"
            )
        if not self.camera_allowed(camera):
            return f"camera '{camera}' not in filter"
        if not self.labels_allowed(labels):
            return "no objects match label filter"
        return ""
