from __future__ import annotations

from typing import Any

import pytest
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from src.tracker.domain.exceptions import ChannelConnectError
from src.tracker.infrastructure.socketio import channel as channel_module
from src.tracker.infrastructure.socketio.channel import EVENT_TASK, SocketIOPushChannel

NAMESPACE = "/tasks"


class StubAsyncClient:
    """Records what the adapter asks of ``socketio.AsyncClient``."""

    refuse = False
    instances: list[StubAsyncClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.options = kwargs
        self.handlers: dict[tuple[str | None, str], Any] = {}
        self.connected = False
        self.connect_kwargs: dict[str, Any] = {}
        self.emitted: list[tuple[str, Any, str | None]] = []
        StubAsyncClient.instances.append(self)

    def on(self, event: str, handler: Any, namespace: str | None = None) -> None:
        self.handlers[(namespace, event)] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_kwargs = {"url": url, **kwargs}
        if self.refuse:
            raise SocketIOConnectionError("Connection refused by the server")
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False
        await self.fire("disconnect", "client disconnect")

    async def emit(self, event: str, data: Any, namespace: str | None = None) -> None:
        self.emitted.append((event, data, namespace))

    def get_sid(self, namespace: str | None = None) -> str:
        return f"sid{namespace}"

    async def fire(self, event: str, *args: Any) -> None:
        await self.handlers[(NAMESPACE, event)](*args)


class Recorder:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.disconnects: list[str] = []

    async def on_event(self, payload: dict[str, Any]) -> None:
        self.events.append(payload)

    async def on_disconnect(self, reason: str) -> None:
        self.disconnects.append(reason)


@pytest.fixture
def stub_client(monkeypatch: pytest.MonkeyPatch) -> type[StubAsyncClient]:
    monkeypatch.setattr(channel_module.socketio, "AsyncClient", StubAsyncClient)
    monkeypatch.setattr(StubAsyncClient, "refuse", False)
    monkeypatch.setattr(StubAsyncClient, "instances", [])
    return StubAsyncClient


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def push_channel(recorder: Recorder) -> SocketIOPushChannel:
    channel = SocketIOPushChannel("http://tasks.test/", transports=["websocket"], wait_timeout=3.0)
    channel.set_handlers(on_event=recorder.on_event, on_disconnect=recorder.on_disconnect)
    return channel


@pytest.mark.asyncio
async def test_connect_opens_task_namespace_without_library_reconnection(
    stub_client: type[StubAsyncClient], push_channel: SocketIOPushChannel
) -> None:
    await push_channel.connect()

    client = stub_client.instances[0]
    assert client.options["reconnection"] is False
    assert client.connect_kwargs == {
        "url": "http://tasks.test",
        "namespaces": [NAMESPACE],
        "transports": ["websocket"],
        "wait_timeout": 3.0,
    }
    assert push_channel.connected
    assert push_channel.sid == "sid/tasks"

    await push_channel.emit("task:subscribe", {"taskId": "t1"})
    assert client.emitted == [("task:subscribe", {"taskId": "t1"}, NAMESPACE)]


@pytest.mark.asyncio
async def test_refused_connection_raises_channel_error(
    stub_client: type[StubAsyncClient], push_channel: SocketIOPushChannel
) -> None:
    stub_client.refuse = True

    with pytest.raises(ChannelConnectError, match="refused"):
        await push_channel.connect()

    assert not push_channel.connected
    assert push_channel.sid is None


@pytest.mark.asyncio
async def test_server_disconnect_reports_reason(
    stub_client: type[StubAsyncClient], push_channel: SocketIOPushChannel, recorder: Recorder
) -> None:
    await push_channel.connect()
    client = stub_client.instances[0]

    await client.fire("disconnect", "io server disconnect")
    await client.fire("disconnect")

    assert recorder.disconnects == ["io server disconnect", "transport close"]


@pytest.mark.asyncio
async def test_client_disconnect_is_not_reported(
    stub_client: type[StubAsyncClient], push_channel: SocketIOPushChannel, recorder: Recorder
) -> None:
    await push_channel.connect()

    await push_channel.disconnect()

    assert recorder.disconnects == []
    assert not push_channel.connected

    await push_channel.connect()
    await stub_client.instances[1].fire("disconnect", "ping timeout")
    assert recorder.disconnects == ["ping timeout"]


@pytest.mark.asyncio
async def test_only_object_payloads_are_forwarded(
    stub_client: type[StubAsyncClient], push_channel: SocketIOPushChannel, recorder: Recorder
) -> None:
    await push_channel.connect()
    client = stub_client.instances[0]

    await client.fire(EVENT_TASK, "not an object")
    await client.fire(EVENT_TASK, ["t1"])
    await client.fire(EVENT_TASK, {"event": "PROGRESS", "task": {"id": "t1"}})

    assert recorder.events == [{"event": "PROGRESS", "task": {"id": "t1"}}]
