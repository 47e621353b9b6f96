"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigError
from .models import SeverityFilter

DEFAULT_CONFIG_PATH = "~/.frigate-push-bridge/config.yaml"


class MQTTConfig(BaseModel):
    host: str = "mqtt://localhost:1883"  # mqtt://host:port or mqtts://host:port
    username: str = ""
    password: str = ""
    topic: str = "frigate/reviews"  # frigate/events for the legacy per-object stream
    client_id: str = ""  # Empty = random "frigate-push-bridge-xxxxxxxx"
    keepalive: int = 60
    reconnect_min_delay: int = 1
    reconnect_max_delay: int = 60
    queue_size: int = 1000


class FrigateLinks(BaseModel):
    """Where the phone fetches thumbnails from."""

    url: str = "http://localhost:5000"
    external_url: str = ""  # Empty = use url
    jwt_token: str | None = None

    @property
    def media_base_url(self) -> str:
        return (self.external_url or self.url).rstrip("/")


class NotificationsConfig(BaseModel):
    """Filter and cooldown settings, read by the bridge as an immutable snapshot."""

    model_config = ConfigDict(frozen=True)

    cooldown: int = Field(default=30, ge=0)  # seconds, legacy event path only
    filter_labels: tuple[str, ...] = ()  # Empty = all labels
    filter_cameras: tuple[str, ...] = ()  # Empty = all cameras
    severity_filter: SeverityFilter = SeverityFilter.ALERT


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3002
    auth_token: str = ""  # Bearer token for the control plane (empty = no auth)


class DeliveryConfig(BaseModel):
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    proxy_url: str = ""  # When set, every token kind is sent through the proxy
    proxy_token: str = ""
    timeout_seconds: float = 10.0


class ReviewsConfig(BaseModel):
    stale_after_seconds: float = 3600.0  # Drop tracked reviews that never ended
    prune_interval_seconds: float = 300.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_enabled: bool = True


class BridgeConfig(BaseModel):
    mqtt: MQTTConfig = Field(default_factory=MQTTConfig)
    frigate: FrigateLinks = Field(default_factory=FrigateLinks)
    server: ServerConfig = Field(default_factory=ServerConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    reviews: ReviewsConfig = Field(default_factory=ReviewsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    data_dir: str = "~/.frigate-push-bridge"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from e


def _config_from_env() -> BridgeConfig:
    """Build config from environment variables (for Docker deployment).

    Falls back to sane defaults when env vars are not set.
    """
    frigate_url = os.environ.get("FRIGATE_URL", "http://localhost:5000")
    try:
        return BridgeConfig(
            mqtt=MQTTConfig(
                host=os.environ.get("MQTT_HOST", "mqtt://localhost:1883"),
                username=os.environ.get("MQTT_USERNAME", ""),
                password=os.environ.get("MQTT_PASSWORD", ""),
                topic=os.environ.get("MQTT_TOPIC", "frigate/reviews"),
            ),
            frigate=FrigateLinks(
                url=frigate_url,
                external_url=os.environ.get("EXTERNAL_FRIGATE_URL", frigate_url),
            ),
            server=ServerConfig(
                host=os.environ.get("BRIDGE_HOST", "0.0.0.0"),
                port=_env_int("BRIDGE_PORT", 3002),
                auth_token=os.environ.get("AUTH_TOKEN", ""),
            ),
            notifications=NotificationsConfig(
                cooldown=_env_int("NOTIFICATION_COOLDOWN", 30),
                filter_labels=_split_list(os.environ.get("FILTER_LABELS", "")),
                filter_cameras=_split_list(os.environ.get("FILTER_CAMERAS", "")),
                severity_filter=os.environ.get("SEVERITY_FILTER", "alert"),
            ),
            delivery=DeliveryConfig(
                proxy_url=os.environ.get("PUSH_PROXY_URL", ""),
                proxy_token=os.environ.get("PUSH_PROXY_TOKEN", ""),
            ),
            logging=LoggingConfig(level=os.environ.get("LOG_LEVEL", "INFO")),
            data_dir=os.environ.get("DATA_DIR", "~/.frigate-push-bridge"),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid environment configuration: {e}") from e


def load_config(path: str | Path | None = None) -> BridgeConfig:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    if path is None:
        path = Path(DEFAULT_CONFIG_PATH).expanduser()
    else:
        path = Path(path).expanduser()

    if not path.exists():
        return _config_from_env()

    raw_text = path.read_text()
    interpolated = _interpolate_env_vars(raw_text)
    try:
        data = yaml.safe_load(interpolated)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if data is None:
        return BridgeConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    try:
        return BridgeConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: BridgeConfig, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    if path is None:
        path = Path(DEFAULT_CONFIG_PATH).expanduser()
    else:
        path = Path(path).expanduser()

    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json")
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
