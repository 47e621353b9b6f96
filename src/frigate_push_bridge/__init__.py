"""Frigate Push Bridge — Frigate review events to mobile push notifications."""

__version__ = "1.2.0"

from .exceptions import (
    ConfigError,
    DeliveryError,
    InvalidTokenError,
    MessageParseError,
    PushBridgeError,
)

__all__ = [
    "__version__",
    "PushBridgeError",
    "ConfigError",
    "MessageParseError",
    "DeliveryError",
    "InvalidTokenError",
]
