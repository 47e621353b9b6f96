"""Pydantic models for camera events, devices, and notifications."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Severity(str, Enum):
    DETECTION = "detection"
    ALERT = "alert"


class SeverityFilter(str, Enum):
    ALERT = "alert"
    DETECTION = "detection"
    ALL = "all"


class MessageType(str, Enum):
    NEW = "new"
    UPDATE = "update"
    END = "end"


class EventSource(str, Enum):
    REVIEW = "review"  # grouped frigate/reviews segment
    EVENT = "event"  # flat per-object frigate/events message


class TokenKind(str, Enum):
    EXPO = "expo"
    FCM = "fcm"


class CameraEvent(BaseModel):
    """Canonical shape of every broker message once it has been parsed.

    Review segments and legacy per-object events both normalize into this
    model so the rest of the bridge never looks at raw payloads.
    """

    id: str
    source: EventSource
    type: MessageType
    camera: str = ""
    severity: Severity | None = None  # legacy events carry none
    labels: list[str] = Field(default_factory=list)
    zones: list[str] = Field(default_factory=list)
    detections: list[str] = Field(default_factory=list)  # event ids in a review
    start_time: float | None = None
    score: float | None = None
    thumb_path: str | None = None

    @property
    def image_reference(self) -> str | None:
        """Best image for this event: the review thumbnail, else first event id."""
        if self.source is EventSource.EVENT:
            return self.id
        if self.thumb_path:
            return self.thumb_path
        if self.detections:
            return self.detections[0]
        return None


DEFAULT_TITLE_TEMPLATE = "{label} detected on {camera}"
DEFAULT_BODY_TEMPLATE = "Motion in {zones} at {time}"


class NotificationTemplates(BaseModel):
    title: str = DEFAULT_TITLE_TEMPLATE
    body: str = DEFAULT_BODY_TEMPLATE


class Device(BaseModel):
    token: str
    token_kind: TokenKind
    name: str = "Unknown Device"
    model: str = "Unknown Model"
    platform: str = "Unknown"
    registered_at: datetime = Field(default_factory=datetime.now)
    last_seen: datetime = Field(default_factory=datetime.now)
    templates: NotificationTemplates = Field(default_factory=NotificationTemplates)

    @property
    def redacted_token(self) -> str:
        return redact_token(self.token)


class Notification(BaseModel):
    """Provider-agnostic push payload produced by the composer."""

    title: str
    body: str
    priority: str = "high"  # "high" | "normal"
    tag: str  # collapse id, identical for every send about one review
    image_url: str | None = None
    is_image_update: bool = False
    sound: str | None = "default"
    channel_id: str = "frigate-detections"
    category_id: str = "frigate_detection"
    data: dict[str, Any] = Field(default_factory=dict)


def redact_token(token: str, keep: int = 30) -> str:
    """Shorten a push token for listings and logs."""
    return f"{token[:keep]}..."
