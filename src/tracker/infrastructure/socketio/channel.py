from __future__ import annotations

import logging
from typing import Any

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from src.tracker.domain.exceptions import ChannelConnectError
from src.tracker.domain.repositories import DisconnectHandler, RawEventHandler

logger = logging.getLogger(__name__)

EVENT_TASK = "task:event"


class SocketIOPushChannel:
    """socket.io connection to the task namespace.

    The library's reconnection is turned off; reconnect policy belongs to the
    caller. A fresh client is created for every connect attempt.
    """

    def __init__(
        self,
        url: str,
        *,
        namespace: str = "/tasks",
        transports: list[str] | None = None,
        wait_timeout: float = 10.0,
    ) -> None:
        self._url = url.rstrip("/")
        self._namespace = namespace
        self._transports = transports or ["polling", "websocket"]
        self._wait_timeout = wait_timeout
        self._client: socketio.AsyncClient | None = None
        self._closing = False
        self._on_event: RawEventHandler | None = None
        self._on_disconnect: DisconnectHandler | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.connected

    @property
    def sid(self) -> str | None:
        if not self.connected or self._client is None:
            return None
        return self._client.get_sid(namespace=self._namespace)

    def set_handlers(
        self,
        *,
        on_event: RawEventHandler,
        on_disconnect: DisconnectHandler,
    ) -> None:
        self._on_event = on_event
        self._on_disconnect = on_disconnect

    async def connect(self) -> None:
        self._closing = False
        client = self._new_client()
        self._client = client
        try:
            await client.connect(
                self._url,
                namespaces=[self._namespace],
                transports=self._transports,
                wait_timeout=self._wait_timeout,
            )
        except (SocketIOConnectionError, OSError) as exc:
            raise ChannelConnectError(str(exc) or type(exc).__name__) from exc

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        self._closing = True
        await client.disconnect()

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        if self._client is None:
            return
        await self._client.emit(event, data, namespace=self._namespace)

    def _new_client(self) -> socketio.AsyncClient:
        client = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        client.on("disconnect", self._handle_disconnect, namespace=self._namespace)
        client.on(EVENT_TASK, self._handle_event, namespace=self._namespace)
        return client

    async def _handle_disconnect(self, *args: Any) -> None:
        # Newer python-socketio releases pass a reason; older ones pass nothing.
        reason = str(args[0]) if args else "transport close"
        if self._closing:
            logger.debug("Push channel closed by client")
            return
        if self._on_disconnect is not None:
            await self._on_disconnect(reason)

    async def _handle_event(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            logger.warning("Ignoring non-object task event", extra={"payload": repr(payload)})
            return
        if self._on_event is not None:
            await self._on_event(payload)
