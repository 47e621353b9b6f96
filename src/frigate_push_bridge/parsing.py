"""Broker payload adapters — raw MQTT bytes to CameraEvent.

Frigate publishes two shapes:

  frigate/reviews  {type, before, after: {id, camera, severity, start_time,
                    thumb_path, data: {objects, zones, detections}}}
  frigate/events   {type, before, after: {id, label, camera, score,
                    start_time, current_zones}}

Some sources put the review fields at the top level instead of under
``after``; both layouts are accepted.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from .exceptions import MessageParseError
from .models import CameraEvent, EventSource, MessageType, Severity


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v not in (None, "")]


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_severity(value: Any) -> Severity | None:
    try:
        return Severity(value)
    except ValueError:
        return None


def _message_type(payload: dict[str, Any]) -> MessageType:
    raw = payload.get("type")
    try:
        return MessageType(raw)
    except ValueError as e:
        raise MessageParseError(f"Unknown message type: {raw!r}") from e


def _body(payload: dict[str, Any]) -> dict[str, Any]:
    after = payload.get("after")
    return after if isinstance(after, dict) else {}


def is_review_message(topic: str, payload: dict[str, Any]) -> bool:
    """Reviews come from a reviews topic or carry a severity field."""
    return "reviews" in topic or "severity" in payload or "severity" in _body(payload)


def parse_review(payload: dict[str, Any]) -> CameraEvent:
    after = _body(payload)

    def field(name: str) -> Any:
        value = after.get(name)
        return payload.get(name) if value is None else value

    data = after.get("data")
    if not isinstance(data, dict):
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    review_id = field("id")
    if not review_id:
        raise MessageParseError("Review message has no id")

    try:
        return CameraEvent(
            id=str(review_id),
            source=EventSource.REVIEW,
            type=_message_type(payload),
            camera=str(field("camera") or ""),
            severity=_as_severity(field("severity")),
            labels=_as_str_list(data.get("objects")),
            zones=_as_str_list(data.get("zones")),
            detections=_as_str_list(data.get("detections")),
            start_time=_as_float(field("start_time")),
            thumb_path=field("thumb_path") or None,
        )
    except ValidationError as e:
        raise MessageParseError(f"Invalid review message: {e}") from e


def parse_legacy_event(payload: dict[str, Any]) -> CameraEvent:
    after = _body(payload) or payload

    event_id = after.get("id")
    if not event_id:
        raise MessageParseError("Event message has no id")

    label = after.get("label")
    try:
        return CameraEvent(
            id=str(event_id),
            source=EventSource.EVENT,
            type=_message_type(payload),
            camera=str(after.get("camera") or ""),
            labels=[str(label)] if label else [],
            zones=_as_str_list(after.get("current_zones")),
            start_time=_as_float(after.get("start_time")),
            score=_as_float(after.get("score")),
        )
    except ValidationError as e:
        raise MessageParseError(f"Invalid event message: {e}") from e


def parse_message(topic: str, raw: bytes | str) -> CameraEvent:
    """Decode one broker message.  Raises MessageParseError on bad input."""
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageParseError(f"Invalid JSON on {topic}: {e}") from e
    if not isinstance(payload, dict):
        raise MessageParseError(f"Expected a JSON object on {topic}")

    if is_review_message(topic, payload):
        return parse_review(payload)
    return parse_legacy_event(payload)
