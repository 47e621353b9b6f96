"""Review segment tracker — decides what each review message should do.

Every Frigate review segment moves through new → update → end.  The
tracker keeps one record per review id and turns each message into a
single Decision:

  - alerts notify immediately (SEND_NEW)
  - detections are tracked silently until they escalate (SEND_ESCALATION)
  - a better thumbnail for an already-notified alert refreshes the same
    on-device notification (UPDATE_IMAGE_ONLY)
  - downgrades never dispatch and never clear the notified flag
  - end drops the record (CLEANUP)

The notified flag only ever goes False → True, so a review produces at
most one SEND_NEW/SEND_ESCALATION between its first message and its end.
Tracking state is in-memory only and is lost on restart.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum

from ..filters import FilterEvaluator
from ..models import CameraEvent, MessageType, Severity

logger = logging.getLogger("frigate-push-bridge")


class ReviewState(str, Enum):
    UNTRACKED = "untracked"
    TRACKED_DETECTION = "tracked_detection"
    TRACKED_ALERT_SUPPRESSED = "tracked_alert_suppressed"  # escalation filtered out
    TRACKED_ALERT_NOTIFIED = "tracked_alert_notified"


class Decision(str, Enum):
    SUPPRESSED = "suppressed"
    SEND_NEW = "send_new"
    SEND_ESCALATION = "send_escalation"
    UPDATE_IMAGE_ONLY = "update_image_only"
    SILENT_TRACKING_UPDATE = "silent_tracking_update"
    CLEANUP = "cleanup"
    NO_CHANGE = "no_change"

    @property
    def dispatches(self) -> bool:
        return self in _DISPATCHING


_DISPATCHING = frozenset(
    {Decision.SEND_NEW, Decision.SEND_ESCALATION, Decision.UPDATE_IMAGE_ONLY}
)


@dataclass
class TrackedReview:
    review_id: str
    severity: Severity
    image_reference: str | None
    notified: bool
    last_seen_at: float

    @property
    def state(self) -> ReviewState:
        if self.notified:
            return ReviewState.TRACKED_ALERT_NOTIFIED
        if self.severity is Severity.ALERT:
            return ReviewState.TRACKED_ALERT_SUPPRESSED
        return ReviewState.TRACKED_DETECTION


@dataclass(frozen=True)
class TrackerResult:
    decision: Decision
    review: TrackedReview | None = None  # Snapshot after the transition


class ReviewTracker:
    """Thread-safe map of review id → TrackedReview plus the transition rules."""

    def __init__(self) -> None:
        self._reviews: dict[str, TrackedReview] = {}
        self._lock = threading.Lock()

    def apply(
        self,
        event: CameraEvent,
        evaluator: FilterEvaluator,
        now: float | None = None,
    ) -> TrackerResult:
        """Run one review message through the state machine."""
        if now is None:
            now = time.time()
        with self._lock:
            if event.type is MessageType.END:
                removed = self._reviews.pop(event.id, None)
                if removed is None:
                    return TrackerResult(Decision.NO_CHANGE)
                return TrackerResult(Decision.CLEANUP, replace(removed))

            entry = self._reviews.get(event.id)
            if entry is None:
                if event.type is MessageType.NEW:
                    decision = self._start(event, evaluator, now)
                else:
                    decision = self._recover_missed_new(event, evaluator, now)
            else:
                # A repeated "new" for a tracked id is treated as an update
                decision = self._advance(entry, event, evaluator, now)

            entry = self._reviews.get(event.id)
            return TrackerResult(decision, replace(entry) if entry else None)

    # ── Transitions (caller holds the lock) ───────────────

    def _track(
        self, event: CameraEvent, severity: Severity, notified: bool, now: float
    ) -> None:
        self._reviews[event.id] = TrackedReview(
            review_id=event.id,
            severity=severity,
            image_reference=event.image_reference,
            notified=notified,
            last_seen_at=now,
        )

    def _start(
        self, event: CameraEvent, evaluator: FilterEvaluator, now: float
    ) -> Decision:
        severity = event.severity
        if not evaluator.allows(severity, event.camera, event.labels):
            # Keep filtered detections so a later escalation is recognized
            if severity is Severity.DETECTION:
                self._track(event, Severity.DETECTION, notified=False, now=now)
            logger.info(
                f"[Filter] Skipping review {event.id} - "
                f"{evaluator.rejection_reason(severity, event.camera, event.labels)}"
            )
            return Decision.SUPPRESSED

        if severity is Severity.ALERT:
            self._track(event, Severity.ALERT, notified=True, now=now)
            return Decision.SEND_NEW

        self._track(event, Severity.DETECTION, notified=False, now=now)
        return Decision.SILENT_TRACKING_UPDATE

    def _recover_missed_new(
        self, event: CameraEvent, evaluator: FilterEvaluator, now: float
    ) -> Decision:
        """Update for an unknown id: only an allowed alert is acted on."""
        if event.severity is Severity.ALERT and evaluator.allows(
            event.severity, event.camera, event.labels
        ):
            logger.info(f"[Review] Update for untracked alert {event.id}, sending")
            self._track(event, Severity.ALERT, notified=True, now=now)
            return Decision.SEND_ESCALATION
        return Decision.SUPPRESSED

    def _advance(
        self,
        entry: TrackedReview,
        event: CameraEvent,
        evaluator: FilterEvaluator,
        now: float,
    ) -> Decision:
        entry.last_seen_at = now
        severity = event.severity
        if severity is None:
            return Decision.SUPPRESSED

        image = event.image_reference
        image_changed = image is not None and image != entry.image_reference

        if entry.severity is Severity.DETECTION and severity is Severity.ALERT:
            entry.severity = Severity.ALERT
            if entry.notified:
                # Re-escalation after a downgrade: the user already has it
                if image_changed:
                    entry.image_reference = image
                    return Decision.UPDATE_IMAGE_ONLY
                return Decision.NO_CHANGE
            if not evaluator.allows(severity, event.camera, event.labels):
                logger.info(
                    f"[Filter] Skipping escalation of {event.id} - "
                    f"{evaluator.rejection_reason(severity, event.camera, event.labels)}"
                )
                return Decision.SUPPRESSED
            entry.notified = True
            if image is not None:
                entry.image_reference = image
            return Decision.SEND_ESCALATION

        if entry.severity is Severity.ALERT and severity is Severity.DETECTION:
            entry.severity = Severity.DETECTION
            return Decision.SUPPRESSED

        if not image_changed:
            return Decision.NO_CHANGE

        entry.image_reference = image
        if severity is Severity.ALERT and entry.notified:
            return Decision.UPDATE_IMAGE_ONLY
        return Decision.SILENT_TRACKING_UPDATE

    # ── Inspection and reclamation ────────────────────────

    def get(self, review_id: str) -> TrackedReview | None:
        with self._lock:
            entry = self._reviews.get(review_id)
            return replace(entry) if entry else None

    def state_of(self, review_id: str) -> ReviewState:
        entry = self.get(review_id)
        return entry.state if entry else ReviewState.UNTRACKED

    def snapshot(self) -> list[TrackedReview]:
        with self._lock:
            return [replace(r) for r in self._reviews.values()]

    def prune(self, older_than_seconds: float, now: float | None = None) -> list[str]:
        """Drop reviews not seen for ``older_than_seconds`` (lost end messages)."""
        if now is None:
            now = time.time()
        cutoff = now - older_than_seconds
        with self._lock:
            stale = [rid for rid, r in self._reviews.items() if r.last_seen_at < cutoff]
            for rid in stale:
                del self._reviews[rid]
        return stale

    def clear(self) -> None:
        with self._lock:
            self._reviews.clear()

    def __contains__(self, review_id: object) -> bool:
        with self._lock:
            return review_id in self._reviews

    def __len__(self) -> int:
        with self._lock:
            return len(self._reviews)
