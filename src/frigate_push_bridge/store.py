"""YAML persistence for registered devices and runtime settings."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .config import FrigateLinks, NotificationsConfig
from .models import Device

logger = logging.getLogger("frigate-push-bridge")


class RuntimeState(BaseModel):
    """Settings changed through the control plane, persisted across restarts."""

    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    frigate: FrigateLinks = Field(default_factory=FrigateLinks)


class DeviceStore:
    """Load and save registered devices to a YAML file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Device]:
        if not self._path.exists():
            return []
        try:
            data = yaml.safe_load(self._path.read_text())
            if not data or "devices" not in data:
                return []
            devices = [Device(**d) for d in data["devices"]]
        except Exception as e:
            logger.error(f"[Bridge] Error loading devices from {self._path}: {e}")
            return []
        logger.info(f"[Bridge] Loaded {len(devices)} device(s) from persistent storage")
        return devices

    def save(self, devices: list[Device]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {"devices": [d.model_dump(mode="json") for d in devices]}
        self._path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))


class RuntimeConfigStore:
    """Load and save control-plane settings to a YAML file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RuntimeState | None:
        """Return the saved state, or None when nothing usable is stored."""
        if not self._path.exists():
            return None
        try:
            data = yaml.safe_load(self._path.read_text())
            if not data:
                return None
            state = RuntimeState(**data)
        except Exception as e:
            logger.error(f"[Bridge] Error loading config from {self._path}: {e}")
            return None
        logger.info("[Bridge] Loaded configuration from persistent storage")
        return state

    def save(self, state: RuntimeState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = state.model_dump(mode="json")
        self._path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
