"""CLI entry point for Frigate Push Bridge."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

import click
import requests

from . import __version__
from .config import BridgeConfig
from .exceptions import ConfigError

logger = logging.getLogger("frigate-push-bridge")


# ── Helpers ──────────────────────────────────────────────


def _configure_logging(config: BridgeConfig) -> None:
    """Console logging plus a best-effort rotating file in the data dir."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(log_format, datefmt=date_format))

    handlers: list[logging.Handler] = [console]
    if config.logging.file_enabled:
        log_dir = config.data_path / "logs"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            from logging.handlers import RotatingFileHandler

            file_handler = RotatingFileHandler(
                log_dir / "bridge.log",
                maxBytes=5 * 1024 * 1024,
                backupCount=2,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
            handlers.append(file_handler)
        except OSError:
            pass

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for noisy in ("aiohttp.access", "asyncio", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _load(config_path: str | None) -> BridgeConfig:
    from .config import load_config

    try:
        return load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


async def _serve(config: BridgeConfig) -> None:
    """Run MQTT subscription, bridge, and control plane until signalled."""
    from aiohttp import web

    from .api import create_control_app
    from .bridge import PushBridge
    from .devices import DeviceDirectory
    from .mqtt import MQTTSubscriber
    from .notifications import DeliveryDispatcher
    from .runtime import RuntimeSettings
    from .stats import StatsTracker
    from .store import DeviceStore, RuntimeConfigStore

    data_dir = config.data_path
    directory = DeviceDirectory(DeviceStore(data_dir / "devices.yaml"))
    runtime = RuntimeSettings.from_config(
        config, RuntimeConfigStore(data_dir / "runtime.yaml")
    )
    stats = StatsTracker()
    bridge = PushBridge(runtime, directory, DeliveryDispatcher(config.delivery), stats)

    state: dict[str, Any] = {
        "config": config,
        "directory": directory,
        "runtime": runtime,
        "stats": stats,
        "tracker": bridge.tracker,
    }
    frigate = runtime.frigate()
    if frigate.jwt_token:
        logger.info(f"[Bridge] Frigate JWT token configured: {frigate.jwt_token[:20]}...")

    runner = web.AppRunner(create_control_app(state))
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()
    logger.info(f"[Bridge] HTTP server listening on port {config.server.port}")
    logger.info(f"[Bridge] Health check: http://localhost:{config.server.port}/health")

    loop = asyncio.get_running_loop()
    subscriber = MQTTSubscriber(config.mqtt, on_state_change=stats.set_mqtt_connected)
    subscriber.start(loop)

    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt ends asyncio.run instead

    tasks = [
        asyncio.create_task(bridge.run(subscriber.messages())),
        asyncio.create_task(
            bridge.prune_loop(
                config.reviews.stale_after_seconds,
                config.reviews.prune_interval_seconds,
            )
        ),
    ]
    logger.info("[Bridge] Frigate Push Bridge started")
    logger.info("[Bridge] Waiting for Frigate events...")

    try:
        await stop.wait()
    finally:
        logger.info("[Bridge] Shutting down gracefully...")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        subscriber.stop()
        await bridge.close()
        await runner.cleanup()


class BridgeClient:
    """Minimal synchronous client for a running bridge's control plane."""

    def __init__(self, url: str, auth_token: str = "", timeout: float = 10.0):
        self._url = url.rstrip("/")
        self._timeout = timeout
        self._headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}

    def request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            resp = requests.request(
                method,
                f"{self._url}{path}",
                headers=self._headers,
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise click.ClickException(f"Cannot reach bridge at {self._url}: {e}") from e
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise click.ClickException(
                f"Bridge returned HTTP {resp.status_code}: {message or resp.reason}"
            )
        return body if isinstance(body, dict) else {}


_url_option = click.option(
    "--url",
    envvar="BRIDGE_URL",
    default="http://localhost:3002",
    show_default=True,
    help="Bridge base URL",
)
_auth_option = click.option(
    "--auth-token", envvar="AUTH_TOKEN", default="", help="Control-plane bearer token"
)


# ── CLI Commands ─────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="frigate-push-bridge")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.pass_context
def main(ctx: click.Context, config_path: str | None) -> None:
    """Frigate Push Bridge — Frigate alerts on your phone."""
    if ctx.invoked_subcommand is not None:
        return
    ctx.invoke(serve, config_path=config_path)


@main.command()
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("--port", default=None, type=int, help="Override HTTP port")
def serve(config_path: str | None, port: int | None = None) -> None:
    """Run the bridge (MQTT subscriber + HTTP control plane)."""
    config = _load(config_path)
    if port:
        config.server.port = port
    _configure_logging(config)
    logger.info(f"[Bridge] Frigate Push Bridge v{__version__}")
    logger.info("[Bridge] Starting up...")
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass


@main.command()
@_url_option
@_auth_option
def status(url: str, auth_token: str) -> None:
    """Show health and statistics of a running bridge."""
    health = BridgeClient(url, auth_token).request("GET", "/health")
    stats = health.get("stats", {})
    click.echo("Frigate Push Bridge Status")
    click.echo("=" * 40)
    click.echo(f"Status:    {health.get('status', 'unknown')}")
    click.echo(f"Version:   {health.get('version', '?')}")
    click.echo(f"MQTT:      {health.get('mqtt', 'unknown')}")
    click.echo(f"Uptime:    {health.get('uptime', 0)}s")
    click.echo(f"Devices:   {health.get('registeredTokens', 0)}")
    click.echo(f"Events:    {stats.get('eventsReceived', 0)}")
    click.echo(f"Sent:      {stats.get('notificationsSent', 0)}")
    click.echo(f"Failed:    {stats.get('notificationsFailed', 0)}")
    click.echo(f"Reviews:   {stats.get('trackedReviews', 0)} tracked")
    click.echo(f"Last event: {stats.get('lastEventTime') or 'never'}")


@main.group()
@_url_option
@_auth_option
@click.pass_context
def devices(ctx: click.Context, url: str, auth_token: str) -> None:
    """Manage devices registered with a running bridge."""
    ctx.obj = BridgeClient(url, auth_token)


@devices.command("list")
@click.pass_obj
def list_devices(client: BridgeClient) -> None:
    """List all registered devices."""
    body = client.request("GET", "/devices")
    items = body.get("devices", [])
    if not items:
        click.echo("No devices registered.")
        return
    click.echo(f"Total devices: {body.get('count', len(items))}\n")
    click.echo("=" * 80)
    for i, device in enumerate(items, 1):
        click.echo(f"\nDevice {i}:")
        click.echo(f"   Name:       {device.get('name', 'Unknown')}")
        click.echo(f"   Model:      {device.get('model', 'Unknown')}")
        click.echo(f"   Platform:   {device.get('platform', 'Unknown')}")
        click.echo(f"   Token Type: {device.get('tokenType', 'Unknown')}")
        click.echo(f"   Token:      {device.get('token')}")
        click.echo(f"   Registered: {device.get('registeredAt', 'Unknown')}")
        click.echo(f"   Last Seen:  {device.get('lastSeen', 'Never')}")
    click.echo("\n" + "=" * 80)


@devices.command("delete")
@click.argument("token")
@click.pass_obj
def delete_device(client: BridgeClient, token: str) -> None:
    """Delete one device by full token or listed prefix."""
    client.request("DELETE", f"/devices/{requests.utils.quote(token, safe='')}")
    click.echo(f"Device removed: {token[:30]}...")


@devices.command("clean")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def clean_devices(client: BridgeClient, yes: bool) -> None:
    """Remove all registered devices (fresh start)."""
    items = client.request("GET", "/devices").get("devices", [])
    if not items:
        click.echo("No devices registered.")
        return
    if not yes and not click.confirm(f"Remove all {len(items)} device(s)?"):
        click.echo("Cancelled.")
        return
    removed = 0
    for device in items:
        token = device.get("token", "")
        try:
            client.request("DELETE", f"/devices/{requests.utils.quote(token, safe='')}")
            removed += 1
        except click.ClickException as e:
            click.echo(f"Failed to remove {token}: {e.message}", err=True)
    click.echo(f"Removed {removed} device(s).")


if __name__ == "__main__":
    main()
