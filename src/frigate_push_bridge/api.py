"""HTTP control plane — device registration, settings, and health.

Runs alongside the MQTT bridge, sharing the same state dict.  Request
and response field names follow the mobile app (camelCase).

Endpoints:
    GET    /health                      → Bridge status and statistics (public)
    POST   /register                    → Register a push token with device metadata
    POST   /unregister                  → Remove a push token
    GET    /tokens                      → Registered tokens (redacted)
    GET    /devices                     → Registered devices (redacted tokens)
    DELETE /devices/{token}             → Remove a device by token or listed prefix
    PUT    /devices/{token}/preferences → Update a device's notification templates
    GET    /config                      → Current bridge configuration
    GET    /config/frigate-token        → Whether a Frigate JWT is configured
    POST   /config/frigate-token        → Set the Frigate JWT (and external URL)
    GET    /config/notifications        → Notification filters
    PUT    /config/notifications        → Update notification filters
"""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from . import __version__
from .exceptions import ConfigError, InvalidTokenError
from .models import Device, SeverityFilter, redact_token

logger = logging.getLogger("frigate-push-bridge")

_PUBLIC_PATHS = frozenset({"/health"})


def _json_error(status: int, code: str, message: str) -> web.Response:
    """Consistent JSON error payload."""
    return web.json_response({"error": message, "code": code}, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _device_json(device: Device, redact: bool = False) -> dict[str, Any]:
    return {
        "token": device.redacted_token if redact else device.token,
        "tokenType": device.token_kind.value,
        "name": device.name,
        "model": device.model,
        "platform": device.platform,
        "registeredAt": device.registered_at.isoformat(),
        "lastSeen": device.last_seen.isoformat(),
        "templates": device.templates.model_dump(),
    }


def _notifications_json(settings: Any) -> dict[str, Any]:
    return {
        "cooldown": settings.cooldown,
        "filterLabels": list(settings.filter_labels),
        "filterCameras": list(settings.filter_cameras),
        "severityFilter": settings.severity_filter.value,
    }


def _string_list(value: Any) -> list[str] | None:
    """Clean a list of strings from a request body; None when not a list."""
    if not isinstance(value, list):
        return None
    return [str(v).strip() for v in value if v and str(v).strip()]


def create_control_app(state: dict[str, Any]) -> web.Application:
    """Create aiohttp app with control-plane routes.

    Args:
        state: Shared state dict.  Contains directory, runtime, stats,
            tracker, and config.
    """
    directory = state["directory"]
    runtime = state["runtime"]
    stats = state["stats"]

    routes = web.RouteTableDef()

    @routes.get("/health")
    async def health(request: web.Request) -> web.Response:
        tracker = state.get("tracker")
        return web.json_response(
            {
                "status": "ok",
                "version": __version__,
                "mqtt": "connected" if stats.mqtt_connected else "disconnected",
                "uptime": int(stats.uptime_seconds),
                "stats": {
                    "eventsReceived": stats.events_received,
                    "notificationsSent": stats.notifications_sent,
                    "notificationsFailed": stats.notifications_failed,
                    "lastEventTime": (
                        stats.last_event_time.isoformat()
                        if stats.last_event_time
                        else None
                    ),
                    "trackedReviews": len(tracker) if tracker is not None else 0,
                },
                "registeredTokens": len(directory),
            }
        )

    # ── Devices ──────────────────────────────────────────

    @routes.post("/register")
    async def register(request: web.Request) -> web.Response:
        body = await _read_json(request)
        token = body.get("pushToken")
        for field in ("deviceName", "deviceModel", "platform"):
            if body.get(field) is not None and not isinstance(body[field], str):
                return _json_error(400, "invalid_device", f"{field} must be a string")
        try:
            device = directory.register(
                token,
                name=body.get("deviceName"),
                model=body.get("deviceModel"),
                platform=body.get("platform"),
            )
        except InvalidTokenError:
            return _json_error(400, "invalid_token", "Invalid push token format")
        return web.json_response(
            {
                "success": True,
                "message": "Device registered successfully",
                "totalDevices": len(directory),
                "device": _device_json(device),
            }
        )

    @routes.post("/unregister")
    async def unregister(request: web.Request) -> web.Response:
        body = await _read_json(request)
        token = body.get("pushToken")
        if not isinstance(token, str) or not directory.remove(token):
            return _json_error(404, "not_found", "Device not found")
        return web.json_response(
            {"success": True, "message": "Device unregistered successfully"}
        )

    @routes.get("/tokens")
    async def list_tokens(request: web.Request) -> web.Response:
        devices = directory.list_all()
        return web.json_response(
            {"count": len(devices), "tokens": [redact_token(d.token) for d in devices]}
        )

    @routes.get("/devices")
    async def list_devices(request: web.Request) -> web.Response:
        devices = directory.list_all()
        return web.json_response(
            {
                "count": len(devices),
                "devices": [_device_json(d, redact=True) for d in devices],
            }
        )

    @routes.delete("/devices/{token}")
    async def delete_device(request: web.Request) -> web.Response:
        device = directory.find(request.match_info["token"])
        if device is None or not directory.remove(device.token):
            return _json_error(404, "not_found", "Device not found")
        return web.json_response({"success": True, "message": "Device removed successfully"})

    @routes.put("/devices/{token}/preferences")
    async def update_preferences(request: web.Request) -> web.Response:
        token = request.match_info["token"]
        device = directory.get(token)
        if device is None:
            return _json_error(
                404, "not_found", "Device not found. Ensure you are registered first."
            )

        body = await _read_json(request)
        templates = body.get("templates")
        if templates:
            if not isinstance(templates, dict):
                return _json_error(400, "invalid_templates", "Templates must be an object")
            title, text = templates.get("title"), templates.get("body")
            if not title or not text:
                return _json_error(
                    400, "invalid_templates", "Templates must include both title and body"
                )
            if not isinstance(title, str) or not isinstance(text, str):
                return _json_error(
                    400, "invalid_templates", "Template title and body must be strings"
                )
            device = directory.update_templates(token, title.strip(), text.strip())

        return web.json_response(
            {
                "success": True,
                "message": "Preferences updated successfully",
                "templates": device.templates.model_dump(),
            }
        )

    # ── Configuration ────────────────────────────────────

    @routes.get("/config")
    async def get_config(request: web.Request) -> web.Response:
        frigate = runtime.frigate()
        return web.json_response(
            {
                "frigateJwtToken": "***configured***" if frigate.jwt_token else None,
                "externalFrigateUrl": frigate.media_base_url,
                "notifications": _notifications_json(runtime.snapshot()),
            }
        )

    @routes.get("/config/frigate-token")
    async def get_frigate_token(request: web.Request) -> web.Response:
        frigate = runtime.frigate()
        return web.json_response(
            {
                "configured": bool(frigate.jwt_token),
                "externalFrigateUrl": frigate.media_base_url,
            }
        )

    @routes.post("/config/frigate-token")
    async def set_frigate_token(request: web.Request) -> web.Response:
        body = await _read_json(request)
        token = body.get("token")
        if not isinstance(token, str) or len(token) < 20:
            return _json_error(400, "invalid_token", "Invalid JWT token format")
        external_url = body.get("externalUrl")
        if external_url is not None and not isinstance(external_url, str):
            return _json_error(400, "invalid_url", "externalUrl must be a string")
        runtime.set_frigate_token(token, external_url or None)
        return web.json_response(
            {
                "success": True,
                "message": "Frigate configuration updated successfully",
                "configured": True,
            }
        )

    @routes.get("/config/notifications")
    async def get_notifications(request: web.Request) -> web.Response:
        return web.json_response(_notifications_json(runtime.snapshot()))

    @routes.put("/config/notifications")
    async def update_notifications(request: web.Request) -> web.Response:
        body = await _read_json(request)
        changes: dict[str, Any] = {}

        if body.get("cooldown") is not None:
            try:
                changes["cooldown"] = int(body["cooldown"])
            except (TypeError, ValueError):
                return _json_error(400, "invalid_cooldown", "cooldown must be an integer")
        if "filterLabels" in body:
            changes["filter_labels"] = _string_list(body["filterLabels"]) or []
        if "filterCameras" in body:
            changes["filter_cameras"] = _string_list(body["filterCameras"]) or []
        if body.get("severityFilter") is not None:
            allowed = [s.value for s in SeverityFilter]
            if body["severityFilter"] not in allowed:
                return _json_error(
                    400,
                    "invalid_severity_filter",
                    f"severityFilter must be one of {', '.join(allowed)}",
                )
            changes["severity_filter"] = body["severityFilter"]

        try:
            updated = runtime.update_notifications(**changes)
        except ConfigError as e:
            return _json_error(400, "invalid_notifications", str(e))

        return web.json_response(
            {
                "success": True,
                "message": "Notification filters updated successfully",
                "notifications": _notifications_json(updated),
            }
        )

    # ── Auth middleware ─────────────────────────────────
    config = state.get("config")
    auth_token = (config.server.auth_token if config else "") or ""

    @web.middleware
    async def auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        """Optional bearer token authentication."""
        if not auth_token:
            return await handler(request)
        if request.method == "OPTIONS" or request.path in _PUBLIC_PATHS:
            return await handler(request)
        auth_header = request.headers.get("Authorization", "")
        if auth_header == f"Bearer {auth_token}":
            return await handler(request)
        return _json_error(401, "unauthorized", "Unauthorized")

    app = web.Application(middlewares=[auth_middleware])
    app.add_routes(routes)
    return app
