"""Expo push notification delivery.

Expo relays to APNs/FCM for apps built with expo-notifications.  One
message is posted per device so a rejected token only fails that device.

Docs: https://docs.expo.dev/push-notifications/sending-notifications/
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import aiohttp

from ..models import Notification, redact_token

logger = logging.getLogger("frigate-push-bridge")

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


class ExpoPushNotifier:
    """POST notifications to the Expo push API."""

    def __init__(self, push_url: str = EXPO_PUSH_URL, timeout: float = 10.0):
        self._push_url = push_url
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def build_message(self, token: str, notification: Notification) -> dict[str, Any]:
        """Expo message for one token, with image attachments when available."""
        message: dict[str, Any] = {
            "to": token,
            "title": notification.title,
            "body": notification.body,
            "sound": notification.sound,
            "priority": notification.priority,
            "categoryId": notification.category_id,
            "channelId": notification.channel_id,
            "data": notification.data,
        }
        if notification.image_url:
            message["image"] = notification.image_url  # Android
            message["ios"] = {"attachments": [{"url": notification.image_url}]}
        message["android"] = {
            "sound": notification.sound,
            "priority": notification.priority,
            "channelId": notification.channel_id,
            "tag": notification.tag,
        }
        if notification.is_image_update:
            # Replaces the existing notification instead of alerting again
            message["_contentAvailable"] = True
        return message

    @staticmethod
    def _ticket_error(body: Any) -> str:
        """Extract an error message from an Expo push ticket response."""
        if not isinstance(body, dict):
            return ""
        tickets = body.get("data")
        if isinstance(tickets, dict):
            tickets = [tickets]
        if not isinstance(tickets, list):
            return ""
        for ticket in tickets:
            if isinstance(ticket, dict) and ticket.get("status") == "error":
                details = ticket.get("details") or {}
                reason = details.get("error", "") if isinstance(details, dict) else ""
                return f"{ticket.get('message', 'error')} {reason}".strip()
        return ""

    async def send(self, token: str, notification: Notification) -> bool:
        """Send one notification.  Returns True when Expo accepted it."""
        session = self._get_session()
        message = self.build_message(token, notification)
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        try:
            async with session.post(self._push_url, json=message, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.warning(
                        f"[Push] Expo failed: HTTP {resp.status} for "
                        f"{redact_token(token)} — {body[:200]}"
                    )
                    return False
                body = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.warning(f"[Push] Expo error for {redact_token(token)}: {e}")
            return False

        error = self._ticket_error(body)
        if error:
            logger.error(f"[Push] Expo rejected {redact_token(token)}: {error}")
            return False
        logger.info(f"[Push] Sent '{notification.title}' to {redact_token(token)}")
        return True

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
