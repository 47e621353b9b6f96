"""Tests for Expo / proxy push delivery and the dispatcher."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import aiohttp
import pytest

from frigate_push_bridge.config import DeliveryConfig
from frigate_push_bridge.models import Device, Notification, TokenKind
from frigate_push_bridge.notifications import DeliveryDispatcher, classify_token
from frigate_push_bridge.notifications.expo import ExpoPushNotifier
from frigate_push_bridge.notifications.proxy import ProxyPushNotifier

EXPO_TOKEN = "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"
FCM_TOKEN = "f" * 40 + ":APA91b" + "G" * 120


def _notification(**overrides) -> Notification:
    fields = dict(
        title="Person detected on front",
        body="Motion in driveway at 9:05:07 AM",
        tag="review_R1_alert",
        image_url="https://cams.example.com/clips/thumb.webp",
        data={"reviewId": "R1"},
    )
    fields.update(overrides)
    return Notification(**fields)


def _mock_session(captured: dict, status: int = 200, body=None):
    @asynccontextmanager
    async def mock_post(url, json=None, headers=None):
        captured["url"] = url
        captured["json"] = json
        captured["headers"] = headers or {}
        resp = AsyncMock()
        resp.status = status
        resp.json = AsyncMock(return_value=body if body is not None else {})
        resp.text = AsyncMock(return_value="error body")
        yield resp

    session = AsyncMock()
    session.post = mock_post
    return session


class TestTokenClassification:
    def test_expo_tokens(self):
        assert classify_token(EXPO_TOKEN) is TokenKind.EXPO
        assert classify_token("ExpoPushToken[abc]") is TokenKind.EXPO

    def test_fcm_token(self):
        assert classify_token(FCM_TOKEN) is TokenKind.FCM

    @pytest.mark.parametrize(
        "token", ["", None, "short", "ExponentPushToken[]", "ExponentPushToken[a b]"]
    )
    def test_unrecognized(self, token):
        assert classify_token(token) is None


class TestExpoPushNotifier:
    def test_message_shape(self):
        msg = ExpoPushNotifier().build_message(EXPO_TOKEN, _notification())

        assert msg["to"] == EXPO_TOKEN
        assert msg["sound"] == "default"
        assert msg["priority"] == "high"
        assert msg["channelId"] == "frigate-detections"
        assert msg["categoryId"] == "frigate_detection"
        assert msg["image"] == "https://cams.example.com/clips/thumb.webp"
        assert msg["ios"]["attachments"][0]["url"] == msg["image"]
        assert msg["android"]["tag"] == "review_R1_alert"
        assert "_contentAvailable" not in msg

    def test_image_update_message(self):
        msg = ExpoPushNotifier().build_message(
            EXPO_TOKEN, _notification(sound=None, is_image_update=True)
        )
        assert msg["sound"] is None
        assert msg["_contentAvailable"] is True

    def test_no_image(self):
        msg = ExpoPushNotifier().build_message(EXPO_TOKEN, _notification(image_url=None))
        assert "image" not in msg
        assert "ios" not in msg

    @pytest.mark.asyncio
    async def test_send_success(self):
        notifier = ExpoPushNotifier(push_url="https://expo.test/send")
        captured: dict = {}
        notifier._session = _mock_session(
            captured, body={"data": {"status": "ok", "id": "ticket-1"}}
        )

        assert await notifier.send(EXPO_TOKEN, _notification()) is True
        assert captured["url"] == "https://expo.test/send"
        assert captured["json"]["to"] == EXPO_TOKEN
        assert captured["headers"]["Content-Type"] == "application/json"
        await notifier.close()

    @pytest.mark.asyncio
    async def test_ticket_error_is_failure(self):
        notifier = ExpoPushNotifier()
        notifier._session = _mock_session(
            {},
            body={
                "data": [
                    {
                        "status": "error",
                        "message": "not registered",
                        "details": {"error": "DeviceNotRegistered"},
                    }
                ]
            },
        )
        assert await notifier.send(EXPO_TOKEN, _notification()) is False

    @pytest.mark.asyncio
    async def test_http_error_is_failure(self):
        notifier = ExpoPushNotifier()
        notifier._session = _mock_session({}, status=500)
        assert await notifier.send(EXPO_TOKEN, _notification()) is False

    @pytest.mark.asyncio
    async def test_client_error_is_failure(self):
        notifier = ExpoPushNotifier()

        @asynccontextmanager
        async def failing_post(url, json=None, headers=None):
            raise aiohttp.ClientConnectionError("connection refused")
            yield  # pragma: no cover

        session = AsyncMock()
        session.post = failing_post
        notifier._session = session
        assert await notifier.send(EXPO_TOKEN, _notification()) is False

    def test_ticket_error_parsing(self):
        assert ExpoPushNotifier._ticket_error({"data": {"status": "ok"}}) == ""
        assert ExpoPushNotifier._ticket_error("garbage") == ""
        assert (
            ExpoPushNotifier._ticket_error({"data": {"status": "error", "message": "bad"}})
            == "bad"
        )


class TestProxyPushNotifier:
    def test_not_configured(self):
        assert ProxyPushNotifier().configured is False

    @pytest.mark.asyncio
    async def test_unconfigured_send_returns_false(self):
        assert await ProxyPushNotifier().send(EXPO_TOKEN, TokenKind.EXPO, _notification()) is False

    @pytest.mark.asyncio
    async def test_send_with_auth(self):
        notifier = ProxyPushNotifier("https://proxy.test/", proxy_token="secret")
        captured: dict = {}
        notifier._session = _mock_session(captured)

        assert await notifier.send(FCM_TOKEN, TokenKind.FCM, _notification()) is True
        assert captured["url"] == "https://proxy.test/send"
        assert captured["headers"]["Authorization"] == "Bearer secret"
        assert captured["json"]["token"] == FCM_TOKEN
        assert captured["json"]["tokenType"] == "fcm"
        assert captured["json"]["notification"]["tag"] == "review_R1_alert"

    @pytest.mark.asyncio
    async def test_http_error(self):
        notifier = ProxyPushNotifier("https://proxy.test")
        notifier._session = _mock_session({}, status=401)
        assert await notifier.send(EXPO_TOKEN, TokenKind.EXPO, _notification()) is False


def _device(token: str, name: str = "Phone") -> Device:
    kind = classify_token(token) or TokenKind.EXPO
    return Device(token=token, token_kind=kind, name=name)


class TestDeliveryDispatcher:
    @pytest.mark.asyncio
    async def test_expo_token_goes_to_expo(self):
        dispatcher = DeliveryDispatcher()
        dispatcher._expo.send = AsyncMock(return_value=True)

        result = await dispatcher.deliver(_device(EXPO_TOKEN), _notification())

        assert result.ok is True
        dispatcher._expo.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_token_skipped(self):
        dispatcher = DeliveryDispatcher()
        dispatcher._expo.send = AsyncMock(return_value=True)

        result = await dispatcher.deliver(_device("not-a-token"), _notification())

        assert result.skipped is True
        assert result.error == "invalid_token"
        dispatcher._expo.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fcm_without_proxy_fails(self):
        result = await DeliveryDispatcher().deliver(_device(FCM_TOKEN), _notification())
        assert result.ok is False
        assert result.error == "no_route"

    @pytest.mark.asyncio
    async def test_proxy_takes_every_token(self):
        dispatcher = DeliveryDispatcher(DeliveryConfig(proxy_url="https://proxy.test"))
        dispatcher._proxy.send = AsyncMock(return_value=True)
        dispatcher._expo.send = AsyncMock(return_value=True)

        results = await dispatcher.deliver_all(
            [(_device(EXPO_TOKEN), _notification()), (_device(FCM_TOKEN), _notification())]
        )

        assert all(r.ok for r in results)
        assert dispatcher._proxy.send.await_count == 2
        dispatcher._expo.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_isolated_per_device(self):
        dispatcher = DeliveryDispatcher(DeliveryConfig(timeout_seconds=0.05))

        async def send(token, notification):
            if token == EXPO_TOKEN:
                await asyncio.sleep(1)
            return True

        dispatcher._expo.send = send
        other = "ExponentPushToken[yyyyyyyyyyyyyyyyyyyy]"
        results = await dispatcher.deliver_all(
            [(_device(EXPO_TOKEN), _notification()), (_device(other), _notification())]
        )

        assert results[0].ok is False and results[0].error == "timeout"
        assert results[1].ok is True

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self):
        dispatcher = DeliveryDispatcher()
        dispatcher._expo.send = AsyncMock(side_effect=RuntimeError("boom"))

        result = await dispatcher.deliver(_device(EXPO_TOKEN), _notification())

        assert result.ok is False
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_rejected(self):
        dispatcher = DeliveryDispatcher()
        dispatcher._expo.send = AsyncMock(return_value=False)
        result = await dispatcher.deliver(_device(EXPO_TOKEN), _notification())
        assert result.error == "rejected"
