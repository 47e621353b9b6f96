"""MQTT subscription for Frigate review/event topics.

paho-mqtt runs its network loop on a background thread.  Incoming
messages are handed to the asyncio loop with call_soon_threadsafe and
queued, so the bridge consumes them one at a time in arrival order:

    subscriber = MQTTSubscriber(config.mqtt, on_state_change=stats.set_mqtt_connected)
    subscriber.start(asyncio.get_running_loop())
    await bridge.run(subscriber.messages())

Reconnection is delegated to paho (reconnect_delay_set); the topic is
re-subscribed on every successful connect.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any, Optional
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from .config import MQTTConfig
from .exceptions import ConfigError

logger = logging.getLogger("frigate-push-bridge")

LEGACY_EVENTS_TOPIC = "frigate/events"


def parse_broker_url(host: str) -> tuple[str, int, bool]:
    """Split ``mqtt://host:port`` / ``mqtts://host:port`` / ``host`` into parts."""
    candidate = host.strip()
    if "://" not in candidate:
        candidate = f"mqtt://{candidate}"
    parts = urlsplit(candidate)
    if parts.scheme not in ("mqtt", "mqtts", "tcp", "ssl"):
        raise ConfigError(f"Unsupported MQTT scheme '{parts.scheme}' in {host}")
    if not parts.hostname:
        raise ConfigError(f"MQTT host missing in '{host}'")
    use_tls = parts.scheme in ("mqtts", "ssl")
    try:
        port = parts.port or (8883 if use_tls else 1883)
    except ValueError as e:
        raise ConfigError(f"Invalid MQTT port in '{host}'") from e
    return parts.hostname, port, use_tls


class MQTTSubscriber:
    """Subscribe to one topic and expose messages as an async stream."""

    def __init__(
        self,
        config: MQTTConfig,
        on_state_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._config = config
        self._on_state_change = on_state_change
        self._host, self._port, self._use_tls = parse_broker_url(config.host)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[tuple[str, bytes]]] = None
        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self.dropped_messages = 0

    @property
    def topic(self) -> str:
        return self._config.topic

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _create_client(self) -> mqtt.Client:
        client_id = self._config.client_id or f"frigate-push-bridge-{uuid.uuid4().hex[:8]}"
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password or None)
        if self._use_tls:
            client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
        client.reconnect_delay_set(
            min_delay=self._config.reconnect_min_delay,
            max_delay=self._config.reconnect_max_delay,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        return client

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Connect in the background and start paho's network thread."""
        self._loop = loop
        self._queue = asyncio.Queue(maxsize=self._config.queue_size)
        self._client = self._create_client()
        logger.info(f"[MQTT] Connecting to {self._host}:{self._port}...")
        self._client.connect_async(self._host, self._port, keepalive=self._config.keepalive)
        self._client.loop_start()

    def stop(self) -> None:
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None
        self._set_connected(False)
        logger.info("[MQTT] Connection closed")

    async def messages(self) -> AsyncIterator[tuple[str, bytes]]:
        """Yield (topic, payload) in arrival order until cancelled."""
        if self._queue is None:
            raise RuntimeError("MQTTSubscriber.start() must be called first")
        while True:
            yield await self._queue.get()

    # ── paho callbacks (network thread) ───────────────────

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        if self._on_state_change is not None:
            self._on_state_change(connected)

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if getattr(reason_code, "is_failure", False):
            logger.error(f"[MQTT] Connection refused: {reason_code}")
            self._set_connected(False)
            return
        logger.info("[MQTT] Connected to broker")
        self._set_connected(True)
        result, _mid = client.subscribe(self._config.topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"[MQTT] Subscription error: {mqtt.error_string(result)}")
            return
        logger.info(f"[MQTT] Subscribed to topic: {self._config.topic}")
        if self._config.topic == LEGACY_EVENTS_TOPIC:
            logger.warning(
                "[MQTT] Using frigate/events topic. Consider switching to "
                "frigate/reviews for better notification management."
            )

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._set_connected(False)
        if getattr(reason_code, "is_failure", False):
            logger.warning(f"[MQTT] Connection lost ({reason_code}), reconnecting...")
        else:
            logger.info("[MQTT] Disconnected from broker")

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._enqueue, msg.topic, bytes(msg.payload))

    def _enqueue(self, topic: str, payload: bytes) -> None:
        """Runs on the event loop thread."""
        if self._queue is None:
            return
        try:
            self._queue.put_nowait((topic, payload))
        except asyncio.QueueFull:
            self.dropped_messages += 1
            logger.warning(f"[MQTT] Message queue full, dropped message on {topic}")
