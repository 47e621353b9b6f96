"""Push delivery for composed notifications.

Routes each device's notification by push token shape:
- proxy configured: every token goes through the push proxy
- "expo": Expo push API directly
- "fcm": needs the push proxy (no direct FCM credentials in the bridge)
- unrecognized token: skipped, never attempted

Deliveries for one decision fan out concurrently.  Each one is bounded
by a timeout, and a failure only affects that device's result.
"""

from __future__ import annotations

__all__ = ["DeliveryDispatcher", "DeliveryResult", "classify_token"]

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..config import DeliveryConfig
from ..exceptions import DeliveryError
from ..models import Device, Notification, TokenKind, redact_token
from .expo import ExpoPushNotifier
from .proxy import ProxyPushNotifier
from .tokens import classify_token

logger = logging.getLogger("frigate-push-bridge")


@dataclass(frozen=True)
class DeliveryResult:
    token: str
    ok: bool
    skipped: bool = False
    error: str = ""


class DeliveryDispatcher:
    """Sends notifications to devices over the right provider."""

    def __init__(self, config: DeliveryConfig | None = None):
        self._config = config or DeliveryConfig()
        self._timeout = self._config.timeout_seconds
        self._expo = ExpoPushNotifier(
            push_url=self._config.expo_push_url, timeout=self._timeout
        )
        self._proxy = ProxyPushNotifier(
            proxy_url=self._config.proxy_url,
            proxy_token=self._config.proxy_token,
            timeout=self._timeout,
        )

    async def _route(self, token: str, kind: TokenKind, notification: Notification) -> bool:
        if self._proxy.configured:
            return await self._proxy.send(token, kind, notification)
        if kind is TokenKind.EXPO:
            return await self._expo.send(token, notification)
        raise DeliveryError(
            f"No route for {kind.value} token (set delivery.proxy_url to deliver FCM tokens)"
        )

    async def deliver(self, device: Device, notification: Notification) -> DeliveryResult:
        """Deliver to one device.  Never raises."""
        kind = classify_token(device.token)
        if kind is None:
            logger.warning(
                f"[Push] Skipping device '{device.name}': "
                f"unrecognized token {redact_token(device.token)}"
            )
            return DeliveryResult(device.token, ok=False, skipped=True, error="invalid_token")
        try:
            ok = await asyncio.wait_for(
                self._route(device.token, kind, notification), timeout=self._timeout
            )
        except DeliveryError as e:
            logger.warning(f"[Push] {e}: {redact_token(device.token)}")
            return DeliveryResult(device.token, ok=False, error="no_route")
        except asyncio.TimeoutError:
            logger.warning(
                f"[Push] Timed out after {self._timeout:.0f}s for "
                f"{redact_token(device.token)}"
            )
            return DeliveryResult(device.token, ok=False, error="timeout")
        except Exception as e:
            logger.warning(f"[Push] Delivery error for {redact_token(device.token)}: {e}")
            return DeliveryResult(device.token, ok=False, error=str(e))
        return DeliveryResult(device.token, ok=ok, error="" if ok else "rejected")

    async def deliver_all(
        self, deliveries: Iterable[tuple[Device, Notification]]
    ) -> list[DeliveryResult]:
        """Deliver to many devices concurrently; results keep input order."""
        return list(
            await asyncio.gather(*(self.deliver(d, n) for d, n in deliveries))
        )

    async def close(self) -> None:
        """Clean up resources."""
        await self._expo.close()
        await self._proxy.close()
