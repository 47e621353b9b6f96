"""Push proxy delivery.

For deployments where the bridge must not hold provider credentials, a
push proxy accepts ``{token, tokenType, notification}`` and talks to
Expo or FCM on the bridge's behalf.  The proxy is authenticated with a
bearer token.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import aiohttp

from ..models import Notification, TokenKind, redact_token

logger = logging.getLogger("frigate-push-bridge")


class ProxyPushNotifier:
    """POST notifications to a push proxy service."""

    def __init__(self, proxy_url: str = "", proxy_token: str = "", timeout: float = 10.0):
        self._proxy_url = proxy_url.rstrip("/")
        self._proxy_token = proxy_token
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self._proxy_url)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def build_payload(
        self, token: str, kind: TokenKind, notification: Notification
    ) -> dict[str, Any]:
        return {
            "token": token,
            "tokenType": kind.value,
            "notification": notification.model_dump(mode="json"),
        }

    async def send(self, token: str, kind: TokenKind, notification: Notification) -> bool:
        """Hand one notification to the proxy.  Returns True on success."""
        if not self._proxy_url:
            return False

        session = self._get_session()
        headers = {"Content-Type": "application/json"}
        if self._proxy_token:
            headers["Authorization"] = f"Bearer {self._proxy_token}"
        payload = self.build_payload(token, kind, notification)

        try:
            async with session.post(
                f"{self._proxy_url}/send", json=payload, headers=headers
            ) as resp:
                ok = resp.status < 400
                if not ok:
                    body = await resp.text()
                    logger.warning(
                        f"[Push] Proxy failed: HTTP {resp.status} for "
                        f"{redact_token(token)} — {body[:200]}"
                    )
        except aiohttp.ClientError as e:
            logger.warning(f"[Push] Proxy error for {redact_token(token)}: {e}")
            return False

        if ok:
            logger.info(
                f"[Push] Proxy sent '{notification.title}' to {redact_token(token)}"
            )
        return ok

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
