"""Tests for the MQTT subscriber (no broker needed)."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from frigate_push_bridge.config import MQTTConfig
from frigate_push_bridge.exceptions import ConfigError
from frigate_push_bridge.mqtt import MQTTSubscriber, parse_broker_url


class TestParseBrokerUrl:
    @pytest.mark.parametrize(
        "host, expected",
        [
            ("mqtt://localhost:1883", ("localhost", 1883, False)),
            ("mqtt://broker.lan", ("broker.lan", 1883, False)),
            ("mqtts://broker.lan", ("broker.lan", 8883, True)),
            ("tcp://10.0.0.5:1884", ("10.0.0.5", 1884, False)),
            ("broker.lan:1999", ("broker.lan", 1999, False)),
            ("broker.lan", ("broker.lan", 1883, False)),
        ],
    )
    def test_valid(self, host, expected):
        assert parse_broker_url(host) == expected

    @pytest.mark.parametrize("host", ["http://broker:1883", "mqtt://", "mqtt://broker:99999"])
    def test_invalid(self, host):
        with pytest.raises(ConfigError):
            parse_broker_url(host)


class TestSubscriber:
    def test_bad_host_rejected_at_construction(self):
        with pytest.raises(ConfigError):
            MQTTSubscriber(MQTTConfig(host="ws://broker"))

    def test_on_connect_subscribes_and_reports_state(self):
        states: list[bool] = []
        sub = MQTTSubscriber(MQTTConfig(topic="frigate/reviews"), on_state_change=states.append)
        client = MagicMock()
        client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)

        sub._on_connect(client, None, None, SimpleNamespace(is_failure=False))

        client.subscribe.assert_called_once_with("frigate/reviews", qos=0)
        assert sub.is_connected is True
        assert states == [True]

    def test_refused_connection(self):
        sub = MQTTSubscriber(MQTTConfig())
        client = MagicMock()
        sub._on_connect(client, None, None, SimpleNamespace(is_failure=True))
        client.subscribe.assert_not_called()
        assert sub.is_connected is False

    def test_disconnect_reports_state(self):
        states: list[bool] = []
        sub = MQTTSubscriber(MQTTConfig(), on_state_change=states.append)
        sub._on_disconnect(MagicMock(), None, None, SimpleNamespace(is_failure=True))
        assert states == [False]

    def test_client_settings(self):
        sub = MQTTSubscriber(
            MQTTConfig(host="mqtt://broker:1883", username="frigate", password="pw")
        )
        client = sub._create_client()
        assert client.on_message == sub._on_message
        assert client.on_connect == sub._on_connect

    @pytest.mark.asyncio
    async def test_messages_arrive_in_order(self):
        sub = MQTTSubscriber(MQTTConfig())
        sub._loop = asyncio.get_running_loop()
        sub._queue = asyncio.Queue(maxsize=10)

        sub._on_message(None, None, SimpleNamespace(topic="frigate/reviews", payload=b"1"))
        sub._on_message(None, None, SimpleNamespace(topic="frigate/reviews", payload=b"2"))
        await asyncio.sleep(0)

        stream = sub.messages()
        assert await stream.__anext__() == ("frigate/reviews", b"1")
        assert await stream.__anext__() == ("frigate/reviews", b"2")

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        sub = MQTTSubscriber(MQTTConfig(queue_size=1))
        sub._queue = asyncio.Queue(maxsize=1)
        sub._enqueue("t", b"a")
        sub._enqueue("t", b"b")
        assert sub.dropped_messages == 1

    @pytest.mark.asyncio
    async def test_messages_before_start(self):
        sub = MQTTSubscriber(MQTTConfig())
        with pytest.raises(RuntimeError):
            await sub.messages().__anext__()

    def test_stop_without_start(self):
        MQTTSubscriber(MQTTConfig()).stop()
