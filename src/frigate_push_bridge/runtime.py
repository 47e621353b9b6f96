"""Mutable runtime settings: notification filters and Frigate media links.

The control plane replaces settings; the bridge reads immutable
snapshots.  Every change is persisted so it survives a restart.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from pydantic import ValidationError

from .config import BridgeConfig, FrigateLinks, NotificationsConfig
from .exceptions import ConfigError
from .store import RuntimeConfigStore, RuntimeState

logger = logging.getLogger("frigate-push-bridge")


class RuntimeSettings:
    def __init__(
        self,
        notifications: NotificationsConfig | None = None,
        frigate: FrigateLinks | None = None,
        store: RuntimeConfigStore | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._store = store
        self._notifications = notifications or NotificationsConfig()
        self._frigate = frigate or FrigateLinks()

    @classmethod
    def from_config(
        cls, config: BridgeConfig, store: RuntimeConfigStore | None = None
    ) -> "RuntimeSettings":
        """Static config, overridden by whatever the control plane last saved."""
        saved = store.load() if store is not None else None
        if saved is None:
            return cls(config.notifications, config.frigate.model_copy(), store)
        return cls(saved.notifications, saved.frigate, store)

    def snapshot(self) -> NotificationsConfig:
        with self._lock:
            return self._notifications

    def frigate(self) -> FrigateLinks:
        with self._lock:
            return self._frigate.model_copy()

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(
                RuntimeState(notifications=self._notifications, frigate=self._frigate)
            )
        except OSError as e:
            logger.error(f"[Bridge] Error saving config: {e}")

    def update_notifications(self, **changes: Any) -> NotificationsConfig:
        """Replace filter fields.  Raises ConfigError on invalid values."""
        with self._lock:
            merged = {**self._notifications.model_dump(), **changes}
            try:
                updated = NotificationsConfig(**merged)
            except ValidationError as e:
                raise ConfigError(str(e)) from e
            self._notifications = updated
            self._persist()
        logger.info(f"[Bridge] Notification filters updated: {updated.model_dump(mode='json')}")
        return updated

    def set_frigate_token(self, token: str, external_url: str | None = None) -> FrigateLinks:
        with self._lock:
            update: dict[str, Any] = {"jwt_token": token}
            if external_url:
                update["external_url"] = external_url
            self._frigate = self._frigate.model_copy(update=update)
            self._persist()
            links = self._frigate.model_copy()
        logger.info(f"[Bridge] Frigate JWT token updated: {token[:20]}...")
        if external_url:
            logger.info(f"[Bridge] External Frigate URL updated: {external_url}")
        return links
