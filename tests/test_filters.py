"""Tests for severity / camera / label filtering."""

import pytest

from frigate_push_bridge.config import NotificationsConfig
from frigate_push_bridge.filters import FilterEvaluator
from frigate_push_bridge.models import Severity, SeverityFilter


def _evaluator(**overrides) -> FilterEvaluator:
    return FilterEvaluator(NotificationsConfig(**overrides))


class TestSeverity:
    def test_default_allows_alerts_only(self):
        ev = _evaluator()
        assert ev.allows(Severity.ALERT, "front", ["person"]) is True
        assert ev.allows(Severity.DETECTION, "front", ["person"]) is False

    def test_detection_filter(self):
        ev = _evaluator(severity_filter=SeverityFilter.DETECTION)
        assert ev.allows(Severity.DETECTION, "front", []) is True
        assert ev.allows(Severity.ALERT, "front", []) is False

    def test_all_allows_both(self):
        ev = _evaluator(severity_filter=SeverityFilter.ALL)
        assert ev.allows(Severity.ALERT, "front", []) is True
        assert ev.allows(Severity.DETECTION, "front", []) is True

    @pytest.mark.parametrize("wanted", list(SeverityFilter))
    def test_missing_severity_always_rejected(self, wanted):
        ev = _evaluator(severity_filter=wanted)
        assert ev.allows(None, "front", ["person"]) is False


class TestCameraAndLabels:
    def test_empty_allowlists_allow_everything(self):
        ev = _evaluator()
        assert ev.camera_allowed("anything") is True
        assert ev.labels_allowed([]) is True

    def test_camera_allowlist(self):
        ev = _evaluator(filter_cameras=("front", "garage"))
        assert ev.allows(Severity.ALERT, "garage", ["car"]) is True
        assert ev.allows(Severity.ALERT, "back", ["car"]) is False

    def test_camera_allowlist_rejects_missing_camera(self):
        ev = _evaluator(filter_cameras=("front",))
        assert ev.camera_allowed("") is False
        assert ev.camera_allowed(None) is False

    def test_label_allowlist_needs_one_match(self):
        ev = _evaluator(filter_labels=("person",))
        assert ev.allows(Severity.ALERT, "front", ["car", "person"]) is True
        assert ev.allows(Severity.ALERT, "front", ["car", "dog"]) is False

    def test_label_allowlist_rejects_no_labels(self):
        ev = _evaluator(filter_labels=("person",))
        assert ev.labels_allowed([]) is False
        assert ev.labels_allowed(None) is False

    def test_allows_event_ignores_severity(self):
        ev = _evaluator(filter_labels=("person",))
        assert ev.allows_event("front", ["person"]) is True
        assert ev.allows_event("front", ["cat"]) is False


class TestRejectionReason:
    def test_allowed_has_no_reason(self):
        assert _evaluator().rejection_reason(Severity.ALERT, "front", ["person"]) == ""

    def test_severity_reason(self):
        reason = _evaluator().rejection_reason(Severity.DETECTION, "front", [])
        assert "severity 'detection'" in reason
        assert "'alert'" in reason

    def test_camera_reason(self):
        reason = _evaluator(filter_cameras=("front",)).rejection_reason(
            Severity.ALERT, "back", []
        )
        assert reason == "camera 'back' not in filter"

    def test_label_reason(self):
        reason = _evaluator(filter_labels=("car",)).rejection_reason(
            Severity.ALERT, "front", ["dog"]
        )
        assert reason == "no objects match label filter"
