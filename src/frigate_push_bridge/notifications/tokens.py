"""Push token shape detection.

Two token families are registered by the mobile app:

  expo  ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]  (Expo push service)
  fcm   long opaque Firebase registration token   (native builds)
"""

from __future__ import annotations

import re

from ..exceptions import InvalidTokenError
from ..models import TokenKind

_EXPO_TOKEN = re.compile(r"^Expo(?:nent)?PushToken\[[^\[\]\s]+\]$")
_FCM_TOKEN = re.compile(r"^[A-Za-z0-9_:\-]{100,}$")


def classify_token(token: str | None) -> TokenKind | None:
    """Return the token family, or None when the shape is unrecognized."""
    if not token or not isinstance(token, str):
        return None
    if _EXPO_TOKEN.match(token):
        return TokenKind.EXPO
    if _FCM_TOKEN.match(token):
        return TokenKind.FCM
    return None


def require_token_kind(token: str | None) -> TokenKind:
    kind = classify_token(token)
    if kind is None:
        raise InvalidTokenError("Invalid push token format")
    return kind
