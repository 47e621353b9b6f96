"""Turn tracker decisions into per-device notifications.

Templates are rendered in a single pass over the known placeholders, so user
templates with unknown ``{placeholders}`` or stray braces never fail:

    {label}   comma-joined, capitalized objects ("Activity" when none)
    {camera}  camera name with underscores as spaces
    {zones}   comma-joined zone names (empty when none)
    {time}    event start as local wall-clock time
    {score}   detection score as a percentage (flat events only)
"""

from __future__ import annotations

import re
from datetime import datetime

from .config import FrigateLinks
from .models import CameraEvent, Device, EventSource, Notification, Severity
from .review import Decision

_MEDIA_PREFIX = "/media/frigate"
_PLACEHOLDER = re.compile(r"\{(label|camera|zones|time|score)\}")


def format_labels(labels: list[str]) -> str:
    if not labels:
        return "Activity"
    return ", ".join(label[:1].upper() + label[1:] for label in labels)


def format_camera(camera: str) -> str:
    return camera.replace("_", " ")


def format_time(start_time: float | None) -> str:
    try:
        moment = datetime.fromtimestamp(start_time) if start_time else datetime.now()
    except (ValueError, OverflowError, OSError):
        # NaN or outside the platform's timestamp range
        moment = datetime.now()
    return moment.strftime("%I:%M:%S %p").lstrip("0")


def format_score(score: float | None) -> str:
    if not score:
        return ""
    return f"{round(score * 100)}%"


def template_values(event: CameraEvent) -> dict[str, str]:
    return {
        "{label}": format_labels(event.labels),
        "{camera}": format_camera(event.camera),
        "{zones}": ", ".join(event.zones),
        "{time}": format_time(event.start_time),
        "{score}": format_score(event.score),
    }


def render_template(template: str, values: dict[str, str]) -> str:
    """Single pass, so substituted values are never re-expanded."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(0), m.group(0)), template)


def thumbnail_url(reference: str | None, frigate: FrigateLinks) -> str | None:
    """Phone-reachable image URL for a review thumb path or an event id."""
    base = frigate.media_base_url
    if not reference or not base:
        return None
    if reference.startswith("/"):
        path = reference
        if path.startswith(_MEDIA_PREFIX):
            path = path[len(_MEDIA_PREFIX):]
        url = f"{base}{path}"
    else:
        url = f"{base}/api/events/{reference}/thumbnail.jpg"
    if frigate.jwt_token:
        url += f"?token={frigate.jwt_token}"
    return url


def notification_tag(event: CameraEvent) -> str:
    if event.source is EventSource.REVIEW:
        return f"review_{event.id}_alert"
    return f"event_{event.id}"


class NotificationComposer:
    """Builds the provider-agnostic Notification for one device."""

    def compose(
        self,
        decision: Decision,
        event: CameraEvent,
        device: Device,
        frigate: FrigateLinks,
        image_reference: str | None = None,
    ) -> Notification | None:
        """Return a Notification, or None when the decision sends nothing.

        ``image_reference`` overrides the event's own image, e.g. with the
        tracked image of the review.
        """
        if not decision.dispatches:
            return None

        values = template_values(event)
        image_url = thumbnail_url(image_reference or event.image_reference, frigate)
        tag = notification_tag(event)
        is_update = decision is Decision.UPDATE_IMAGE_ONLY

        if event.source is EventSource.REVIEW:
            priority = "high" if event.severity is Severity.ALERT else "normal"
            data = {
                "reviewId": event.id,
                "camera": event.camera,
                "objects": list(event.labels),
                "zones": list(event.zones),
                "severity": event.severity.value if event.severity else None,
                "timestamp": event.start_time,
                "type": "frigate_review_update" if is_update else "frigate_review",
                "thumbnailUrl": image_url,
                "eventId": event.detections[0] if event.detections else None,
                "action": "live",
                "tag": tag,
                "isImageUpdate": is_update,
            }
        else:
            priority = "high"
            data = {
                "eventId": event.id,
                "camera": event.camera,
                "label": event.labels[0] if event.labels else None,
                "score": event.score,
                "thumbnailUrl": image_url,
                "timestamp": event.start_time,
                "type": "frigate_detection",
                "action": "live",
                "tag": tag,
            }

        return Notification(
            title=render_template(device.templates.title, values),
            body=render_template(device.templates.body, values),
            priority=priority,
            tag=tag,
            image_url=image_url,
            is_image_update=is_update,
            sound=None if is_update else "default",
            data=data,
        )
