"""Custom exception hierarchy for frigate-push-bridge.

All bridge exceptions inherit from PushBridgeError, allowing callers
to catch broad or specific errors:

    try:
        event = parse_message(topic, payload)
    except MessageParseError as e:
        print(f"Bad broker message: {e}")
    except PushBridgeError as e:
        print(f"frigate-push-bridge error: {e}")
"""

from __future__ import annotations


class PushBridgeError(Exception):
    """Base exception for all frigate-push-bridge errors."""


class ConfigError(PushBridgeError):
    """Raised when configuration is invalid or missing."""


class MessageParseError(PushBridgeError):
    """Raised when a broker message cannot be decoded into a camera event."""


class DeliveryError(PushBridgeError):
    """Raised when a push provider rejects or cannot accept a notification."""


class InvalidTokenError(PushBridgeError):
    """Raised when a push token has no recognizable shape."""
