"""Registered device directory shared by the bridge and the control plane."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from .models import Device, NotificationTemplates, redact_token
from .notifications.tokens import require_token_kind
from .store import DeviceStore

logger = logging.getLogger("frigate-push-bridge")

# Listings show this many token characters; deletes accept the same prefix.
TOKEN_PREFIX_LEN = 30


class DeviceDirectory:
    """Thread-safe token → Device map, persisted after every change."""

    def __init__(self, store: DeviceStore | None = None) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._devices: dict[str, Device] = {}
        if store is not None:
            self._devices = {d.token: d for d in store.load()}

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(list(self._devices.values()))
        except OSError as e:
            logger.error(f"[Bridge] Error saving devices: {e}")

    def register(
        self,
        token: str,
        name: str | None = None,
        model: str | None = None,
        platform: str | None = None,
    ) -> Device:
        """Add or refresh a device.  Raises InvalidTokenError on a bad token.

        Re-registering keeps the original registration time and templates.
        """
        kind = require_token_kind(token)
        now = datetime.now()
        with self._lock:
            existing = self._devices.get(token)
            device = Device(
                token=token,
                token_kind=kind,
                name=name or "Unknown Device",
                model=model or "Unknown Model",
                platform=platform or "Unknown",
                registered_at=existing.registered_at if existing else now,
                last_seen=now,
                templates=(
                    existing.templates.model_copy() if existing else NotificationTemplates()
                ),
            )
            self._devices[token] = device
            self._persist()
            total = len(self._devices)
        logger.info(f"[Bridge] Registered device: {device.name} ({device.model})")
        logger.info(f"[Bridge] Total registered devices: {total}")
        return device

    def remove(self, token: str) -> bool:
        with self._lock:
            removed = self._devices.pop(token, None) is not None
            if removed:
                self._persist()
        if removed:
            logger.info(f"[Bridge] Removed device: {redact_token(token)}")
        return removed

    def get(self, token: str) -> Device | None:
        with self._lock:
            return self._devices.get(token)

    def find(self, token_or_prefix: str) -> Device | None:
        """Exact token match, else match on the redacted listing prefix."""
        with self._lock:
            exact = self._devices.get(token_or_prefix)
            if exact is not None:
                return exact
            prefix = token_or_prefix[:TOKEN_PREFIX_LEN].removesuffix("...")
            if not prefix:
                return None
            for token, device in self._devices.items():
                if token.startswith(prefix):
                    return device
        return None

    def list_all(self) -> list[Device]:
        with self._lock:
            return list(self._devices.values())

    def update_templates(self, token: str, title: str, body: str) -> Device | None:
        with self._lock:
            device = self._devices.get(token)
            if device is None:
                return None
            updated = device.model_copy(
                update={"templates": NotificationTemplates(title=title, body=body)}
            )
            self._devices[token] = updated
            self._persist()
        logger.info(f"[Bridge] Updated templates for device: {updated.name}")
        logger.info(f"[Bridge]   Title: {title}")
        logger.info(f"[Bridge]   Body: {body}")
        return updated

    def clear(self) -> int:
        with self._lock:
            count = len(self._devices)
            self._devices.clear()
            self._persist()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)
