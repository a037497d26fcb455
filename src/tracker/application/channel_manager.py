from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from src.tracker.application.backoff import (
    BASE_RECONNECT_DELAY_MS,
    MAX_RECONNECT_DELAY_MS,
    RECONNECT_JITTER_MS,
    reconnect_delay,
)
from src.tracker.application.poller import PollingFallbackEngine
from src.tracker.application.reconciler import EventReconciler
from src.tracker.application.registry import SubscriptionRegistry
from src.tracker.application.timers import ScheduledTask
from src.tracker.domain.events.task_event import TaskEvent
from src.tracker.domain.exceptions import ChannelConnectError
from src.tracker.domain.models.connection_state import ConnectionState
from src.tracker.domain.repositories import PushChannel

logger = logging.getLogger(__name__)

EVENT_SUBSCRIBE = "task:subscribe"
EVENT_SUBSCRIBE_BATCH = "task:subscribe:batch"
EVENT_UNSUBSCRIBE = "task:unsubscribe"


class PushChannelManager:
    """Owns the push connection and drives its reconnection.

    The channel's own reconnection is disabled; this class retries with
    exponential backoff and, once ``max_reconnect_attempts`` is exhausted, hands
    over to the polling fallback for the rest of its lifetime.
    """

    def __init__(
        self,
        channel: PushChannel,
        registry: SubscriptionRegistry,
        reconciler: EventReconciler,
        fallback: PollingFallbackEngine | None = None,
        *,
        auto_reconnect: bool = True,
        max_reconnect_attempts: int = 10,
        base_delay_ms: int = BASE_RECONNECT_DELAY_MS,
        max_delay_ms: int = MAX_RECONNECT_DELAY_MS,
        jitter_ms: int = RECONNECT_JITTER_MS,
        rng: random.Random | None = None,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._reconciler = reconciler
        self._fallback = fallback
        self._auto_reconnect = auto_reconnect
        self._max_reconnect_attempts = max_reconnect_attempts
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._jitter_ms = jitter_ms
        self._rng = rng
        self._attempts = 0
        self._state = ConnectionState.DISCONNECTED
        self._using_fallback = False
        self._closing = False
        self._timer = ScheduledTask("reconnect")
        self._channel.set_handlers(on_event=self._on_event, on_disconnect=self._on_disconnect)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._channel.connected

    @property
    def sid(self) -> str | None:
        return self._channel.sid if self.is_connected else None

    @property
    def is_using_fallback(self) -> bool:
        return self._using_fallback

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    async def start(self) -> None:
        self._closing = False
        await self._connect()

    async def close(self) -> None:
        self._closing = True
        self._timer.cancel()
        if self._fallback is not None:
            self._fallback.stop()
        self._using_fallback = False
        if self._channel.connected:
            await self._channel.disconnect()
        self._state = ConnectionState.DISCONNECTED

    async def subscribe(self, task_id: str) -> None:
        await self._emit(EVENT_SUBSCRIBE, {"taskId": task_id})

    async def subscribe_batch(self, task_ids: Iterable[str]) -> None:
        ids = list(task_ids)
        if ids:
            await self._emit(EVENT_SUBSCRIBE_BATCH, {"taskIds": ids})

    async def unsubscribe(self, task_id: str) -> None:
        await self._emit(EVENT_UNSUBSCRIBE, {"taskId": task_id})

    async def _emit(self, event: str, data: dict[str, Any]) -> None:
        # Offline emits are dropped; _on_connected re-issues every subscription.
        if not self.is_connected:
            return
        logger.debug("Emitting", extra={"event": event, "data": data})
        await self._channel.emit(event, data)

    async def _connect(self) -> None:
        if self._closing:
            return
        self._state = ConnectionState.CONNECTING
        try:
            await self._channel.connect()
        except ChannelConnectError as exc:
            logger.warning("Push channel connection error", extra={"error": str(exc)})
            await self._handle_failure()
            return
        await self._on_connected()

    async def _on_connected(self) -> None:
        logger.info("Connected to push channel", extra={"sid": self._channel.sid})
        self._attempts = 0
        self._state = ConnectionState.CONNECTED
        if self._using_fallback:
            logger.info("Push channel is back, stopping HTTP polling fallback")
            if self._fallback is not None:
                self._fallback.stop()
            self._using_fallback = False
        # Settled ids stay registered but are never subscribed on the transport.
        current = self._registry.current
        if current is not None and not self._registry.is_terminal(current):
            await self.subscribe(current)
        await self.subscribe_batch(
            [task_id for task_id in self._registry.batch if not self._registry.is_terminal(task_id)]
        )

    async def _on_disconnect(self, reason: str) -> None:
        if self._closing:
            return
        logger.info("Disconnected from push channel", extra={"reason": reason})
        await self._handle_failure()

    async def _handle_failure(self) -> None:
        if self._closing or self._using_fallback:
            return
        if self._auto_reconnect and self._attempts < self._max_reconnect_attempts:
            delay = reconnect_delay(
                self._attempts, self._base_delay_ms, self._max_delay_ms, self._jitter_ms, self._rng
            )
            self._attempts += 1
            logger.info(
                "Reconnecting to push channel",
                extra={
                    "delay_ms": delay,
                    "attempt": self._attempts,
                    "max_attempts": self._max_reconnect_attempts,
                },
            )
            self._state = ConnectionState.RECONNECTING
            self._timer.schedule(delay, self._reconnect)
            return
        self._enter_fallback()

    async def _reconnect(self) -> None:
        if self._channel.connected:
            await self._channel.disconnect()
        await self._connect()

    def _enter_fallback(self) -> None:
        self._timer.cancel()
        if self._fallback is None:
            logger.warning("Push channel unavailable and fallback disabled")
            self._state = ConnectionState.DISCONNECTED
            return
        logger.warning(
            "Max reconnect attempts reached, falling back to HTTP polling",
            extra={"attempts": self._attempts},
        )
        self._using_fallback = True
        self._state = ConnectionState.FALLBACK_POLLING
        self._fallback.start()

    async def _on_event(self, payload: dict[str, Any]) -> None:
        try:
            event = TaskEvent.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed task event", extra={"error": str(exc)})
            return
        await self._reconciler.apply(event)
