"""Review segment tracking — state machine and decisions."""

from .tracker import Decision, ReviewState, ReviewTracker, TrackedReview, TrackerResult

__all__ = [
    "ReviewTracker",
    "TrackedReview",
    "TrackerResult",
    "ReviewState",
    "Decision",
]
