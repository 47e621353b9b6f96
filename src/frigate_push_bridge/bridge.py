"""Bridge core — broker messages in, push notifications out.

    raw MQTT bytes → parse → review tracker / legacy cooldown → composer
                   → delivery dispatcher (background) → stats

Messages are handled one at a time in arrival order.  Delivery runs in
background tasks so a slow push provider never stalls the broker
stream; its outcome only feeds statistics.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator

from .composer import NotificationComposer
from .cooldown import CooldownGate
from .devices import DeviceDirectory
from .exceptions import MessageParseError
from .filters import FilterEvaluator
from .models import CameraEvent, EventSource, MessageType
from .notifications import DeliveryDispatcher, DeliveryResult
from .parsing import parse_message
from .review import Decision, ReviewTracker, TrackerResult
from .runtime import RuntimeSettings
from .stats import StatsTracker

logger = logging.getLogger("frigate-push-bridge")


class PushBridge:
    def __init__(
        self,
        runtime: RuntimeSettings,
        directory: DeviceDirectory,
        dispatcher: DeliveryDispatcher,
        stats: StatsTracker | None = None,
        tracker: ReviewTracker | None = None,
        cooldowns: CooldownGate | None = None,
        composer: NotificationComposer | None = None,
    ) -> None:
        self.runtime = runtime
        self.directory = directory
        self.dispatcher = dispatcher
        self.stats = stats or StatsTracker()
        self.tracker = tracker or ReviewTracker()
        self.cooldowns = cooldowns or CooldownGate()
        self.composer = composer or NotificationComposer()
        self._review_lock = asyncio.Lock()
        self._deliveries: set[asyncio.Task] = set()

    # ── Inbound ──────────────────────────────────────────

    async def handle_message(self, topic: str, raw: bytes | str) -> Decision | None:
        """Process one broker message.  Bad input is logged, never raised."""
        self.stats.record_event()
        try:
            event = parse_message(topic, raw)
        except MessageParseError as e:
            self.stats.record_parse_error()
            logger.error(f"[MQTT] Error processing message on {topic}: {e}")
            return None

        if event.source is EventSource.REVIEW:
            self.stats.record_review()
            result = await self.process_review(event)
            decision = result.decision
        else:
            self.stats.record_legacy_event()
            decision = self.process_legacy_event(event)
        self.stats.record_decision(decision.value)
        return decision

    async def process_review(self, event: CameraEvent) -> TrackerResult:
        evaluator = FilterEvaluator(self.runtime.snapshot())
        async with self._review_lock:
            result = self.tracker.apply(event, evaluator)

        if result.decision.dispatches:
            logger.info(
                f"[Review] {result.decision.value} for {event.id}: "
                f"{(event.severity.value if event.severity else '?').upper()} on "
                f"{event.camera}: {', '.join(event.labels)}"
            )
            image = result.review.image_reference if result.review else None
            self._schedule(result.decision, event, image)
        elif result.decision is Decision.CLEANUP:
            logger.debug(f"[Review] Review {event.id} ended, tracking released")
        return result

    def process_legacy_event(self, event: CameraEvent) -> Decision:
        """Flat per-object events: new only, filtered, then cooled down."""
        if event.type is not MessageType.NEW:
            return Decision.NO_CHANGE

        settings = self.runtime.snapshot()
        evaluator = FilterEvaluator(settings)
        if not evaluator.allows_event(event.camera, event.labels):
            logger.info(
                f"[Filter] Skipping event - camera '{event.camera}' / "
                f"label '{', '.join(event.labels)}' not in filter"
            )
            return Decision.SUPPRESSED

        label = event.labels[0] if event.labels else ""
        if not self.cooldowns.check_and_record(
            event.camera, label, time.time(), settings.cooldown
        ):
            logger.info(
                f"[Cooldown] Skipping notification for {event.camera}/{label} "
                "(cooldown active)"
            )
            return Decision.SUPPRESSED

        logger.info(f"[Event] {label or 'Object'} detected on {event.camera}")
        self._schedule(Decision.SEND_NEW, event, event.image_reference)
        return Decision.SEND_NEW

    async def run(self, messages: AsyncIterator[tuple[str, bytes]]) -> None:
        """Consume a (topic, payload) stream until it ends or is cancelled."""
        async for topic, payload in messages:
            try:
                await self.handle_message(topic, payload)
            except Exception:
                logger.exception(f"[MQTT] Unexpected error handling message on {topic}")

    # ── Outbound ─────────────────────────────────────────

    def _schedule(
        self, decision: Decision, event: CameraEvent, image_reference: str | None
    ) -> None:
        task = asyncio.create_task(self._deliver(decision, event, image_reference))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(
        self, decision: Decision, event: CameraEvent, image_reference: str | None
    ) -> list[DeliveryResult]:
        devices = self.directory.list_all()
        if not devices:
            logger.info("[Push] No registered devices, skipping notification")
            return []

        try:
            frigate = self.runtime.frigate()
            deliveries = []
            for device in devices:
                notification = self.composer.compose(
                    decision, event, device, frigate, image_reference=image_reference
                )
                if notification is not None:
                    deliveries.append((device, notification))

            logger.info(
                f"[Push] Sending {len(deliveries)} notification(s) for "
                f"{event.source.value} {event.id} ({decision.value})"
            )
            results = await self.dispatcher.deliver_all(deliveries)
        except Exception:
            logger.exception(
                f"[Push] Dispatch failed for {event.source.value} {event.id} "
                f"({decision.value})"
            )
            results = [
                DeliveryResult(device.token, ok=False, error="dispatch_error")
                for device in devices
            ]
        for r in results:
            self.stats.record_delivery(r.ok, skipped=r.skipped)
        sent = sum(1 for r in results if r.ok)
        if sent < len(results):
            logger.warning(f"[Push] Delivered {sent}/{len(results)} for {event.id}")
        return results

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    @property
    def pending_deliveries(self) -> int:
        return len(self._deliveries)

    # ── Housekeeping ─────────────────────────────────────

    def prune_stale_reviews(self, older_than_seconds: float) -> list[str]:
        stale = self.tracker.prune(older_than_seconds)
        if stale:
            logger.info(f"[Review] Dropped {len(stale)} stale review(s) without an end")
        return stale

    async def prune_loop(self, older_than_seconds: float, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.prune_stale_reviews(older_than_seconds)

    async def close(self) -> None:
        await self.drain()
        await self.dispatcher.close()
