"""Tests for the CLI commands that talk to a running bridge."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests
from click.testing import CliRunner

from frigate_push_bridge.__main__ import main

LISTED = {
    "count": 2,
    "devices": [
        {
            "token": "ExponentPushToken[aaaaaaaaaaaa...",
            "tokenType": "expo",
            "name": "Pixel",
            "model": "Pixel 8",
            "platform": "android",
            "registeredAt": "2024-06-20T09:00:00",
            "lastSeen": "2024-06-20T10:00:00",
        },
        {
            "token": "ExponentPushToken[bbbbbbbbbbbb...",
            "tokenType": "expo",
            "name": "iPhone",
            "model": "iPhone 15",
            "platform": "ios",
            "registeredAt": "2024-06-20T09:00:00",
            "lastSeen": "2024-06-20T10:00:00",
        },
    ],
}


def _response(status: int = 200, body=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Error"
    resp.json.return_value = body if body is not None else {}
    return resp


@pytest.fixture
def calls(monkeypatch):
    """Record requests made by the CLI and answer from a route table."""
    recorded: list[tuple[str, str, dict]] = []
    routes: dict[tuple[str, str], MagicMock] = {}

    def fake_request(method, url, headers=None, timeout=None, **kwargs):
        recorded.append((method, url, headers or {}))
        for (m, suffix), resp in routes.items():
            if m == method and url.endswith(suffix):
                return resp
        return _response(404, {"error": "Device not found"})

    monkeypatch.setattr(requests, "request", fake_request)
    monkeypatch.delenv("AUTH_TOKEN", raising=False)
    monkeypatch.delenv("BRIDGE_URL", raising=False)
    return recorded, routes


class TestStatus:
    def test_status(self, calls):
        recorded, routes = calls
        routes[("GET", "/health")] = _response(
            body={
                "status": "ok",
                "version": "1.2.0",
                "mqtt": "connected",
                "uptime": 42,
                "registeredTokens": 3,
                "stats": {"eventsReceived": 7, "notificationsSent": 2},
            }
        )
        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 0, result.output
        assert "connected" in result.output
        assert "Devices:   3" in result.output
        assert recorded[0][1] == "http://localhost:3002/health"

    def test_unreachable_bridge(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(requests, "request", refuse)
        result = CliRunner().invoke(main, ["status", "--url", "http://nowhere:1"])

        assert result.exit_code != 0
        assert "Cannot reach bridge" in result.output


class TestDevices:
    def test_list(self, calls):
        _, routes = calls
        routes[("GET", "/devices")] = _response(body=LISTED)

        result = CliRunner().invoke(main, ["devices", "list"])

        assert result.exit_code == 0, result.output
        assert "Total devices: 2" in result.output
        assert "Pixel 8" in result.output
        assert "iPhone" in result.output

    def test_list_empty(self, calls):
        _, routes = calls
        routes[("GET", "/devices")] = _response(body={"count": 0, "devices": []})
        result = CliRunner().invoke(main, ["devices", "list"])
        assert "No devices registered." in result.output

    def test_auth_header_sent(self, calls):
        recorded, routes = calls
        routes[("GET", "/devices")] = _response(body={"count": 0, "devices": []})
        CliRunner().invoke(main, ["devices", "--auth-token", "s3cret", "list"])
        assert recorded[0][2] == {"Authorization": "Bearer s3cret"}

    def test_unauthorized(self, calls):
        _, routes = calls
        routes[("GET", "/devices")] = _response(401, {"error": "Unauthorized"})
        result = CliRunner().invoke(main, ["devices", "list"])
        assert result.exit_code != 0
        assert "HTTP 401" in result.output

    def test_delete(self, calls):
        recorded, routes = calls
        token = "ExponentPushToken[abc]"
        routes[("DELETE", "/devices/ExponentPushToken%5Babc%5D")] = _response(
            body={"success": True}
        )

        result = CliRunner().invoke(main, ["devices", "delete", token])

        assert result.exit_code == 0, result.output
        assert recorded[0][0] == "DELETE"
        assert "Device removed" in result.output

    def test_delete_unknown(self, calls):
        result = CliRunner().invoke(main, ["devices", "delete", "nope"])
        assert result.exit_code != 0
        assert "Device not found" in result.output

    def test_clean_requires_confirmation(self, calls):
        recorded, routes = calls
        routes[("GET", "/devices")] = _response(body=LISTED)

        result = CliRunner().invoke(main, ["devices", "clean"], input="n\n")

        assert "Cancelled." in result.output
        assert all(method == "GET" for method, _, _ in recorded)

    def test_clean_removes_all(self, calls):
        recorded, routes = calls
        routes[("GET", "/devices")] = _response(body=LISTED)
        routes[("DELETE", "...")] = _response(body={"success": True})

        result = CliRunner().invoke(main, ["devices", "clean", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Removed 2 device(s)." in result.output
        assert sum(1 for method, _, _ in recorded if method == "DELETE") == 2


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "1.2.0" in result.output


def test_serve_reports_bad_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("notifications:\n  cooldown: -1\n")
    result = CliRunner().invoke(main, ["serve", "--config", str(path)])
    assert result.exit_code != 0
    assert "Invalid configuration" in result.output
