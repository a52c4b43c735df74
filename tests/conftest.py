"""Shared pytest fixtures: an in-memory websockets server and a Thunder stub."""

import asyncio
import json
from typing import Any, Callable, Optional

import pytest
import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from thunder_webkit import inspector

_CLOSE = object()
_ABORT = object()


async def flush(rounds: int = 10) -> None:
    """Let reader tasks drain whatever has been fed so far."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeWebSocket:
    """Stands in for a websockets client connection."""

    def __init__(self, url: str, subprotocols=None):
        self.url = url
        self.subprotocols = subprotocols
        self.sent: list[str] = []
        self.closed = False
        self.on_send: Optional[Callable[["FakeWebSocket", dict], None]] = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    @property
    def sent_json(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    async def send(self, data):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(data)
        if self.on_send is not None:
            self.on_send(self, json.loads(data))

    def feed(self, message: Any) -> None:
        """Queue an inbound frame; dicts are JSON-encoded."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self._incoming.put_nowait(message)

    def remote_close(self, abnormal: bool = False) -> None:
        self._incoming.put_nowait(_ABORT if abnormal else _CLOSE)

    async def close(self):
        self.closed = True
        self._incoming.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if item is _ABORT:
            raise ConnectionClosedError(None, None)
        return item


class FakeServer:
    """Replaces websockets.connect and records every socket it hands out."""

    def __init__(self):
        self.sockets: list[FakeWebSocket] = []
        self.hang = False
        self.failures: list[BaseException] = []
        self.on_connect: Optional[Callable[[FakeWebSocket], None]] = None

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def connect(self, url, subprotocols=None, **kwargs):
        if self.failures:
            raise self.failures.pop(0)
        if self.hang:
            await asyncio.sleep(3600)
        ws = FakeWebSocket(url, subprotocols)
        self.sockets.append(ws)
        if self.on_connect is not None:
            self.on_connect(ws)
        return ws


def controller_event(event: str, params: dict) -> dict:
    return {
        "jsonrpc": "2.0",
        "method": "client.Controller.events.all",
        "params": {"event": event, "params": params},
    }


class ThunderStub:
    """
    Answers Controller requests the way a Thunder device does.

    State changes are announced with a statechange notification after the
    response (or before it, with ``event_first``).
    """

    def __init__(self, callsign: str = "UX", state: str = "Deactivated"):
        self.callsign = callsign
        self.state = state
        self.calls: list[str] = []
        self.respond = True
        self.emit_events = True
        self.event_first = False
        self.errors: dict[str, dict] = {}

    def attach(self, ws: FakeWebSocket) -> None:
        ws.on_send = self.handle

    def handle(self, ws: FakeWebSocket, request: dict) -> None:
        method = request["method"]
        self.calls.append(method)
        if not self.respond:
            return

        result: Any = None
        event: Optional[dict] = None
        if method == "Controller.1.register":
            result = 0
        elif method == "Controller.1.status":
            result = [
                {"callsign": "Controller", "state": "Activated"},
                {"callsign": self.callsign, "state": self.state, "autostart": False},
            ]
        elif method == "Controller.1.activate":
            self.state = "Activated"
            event = controller_event("statechange", {"state": "activated", "suspended": False})
        elif method == "Controller.1.deactivate":
            self.state = "Deactivated"
            event = controller_event("statechange", {"state": "deactivated"})
        elif method == "Controller.1.resume":
            self.state = "Resumed"
            event = controller_event("statechange", {"state": "resumed", "suspended": False})
        elif method == f"{self.callsign}.1.url":
            event = controller_event("urlchange", {"url": request["params"], "loaded": True})

        if method in self.errors:
            response = {"jsonrpc": "2.0", "id": request["id"], "error": self.errors[method]}
            event = None
        else:
            response = {"jsonrpc": "2.0", "id": request["id"], "result": result}

        if event is not None and not self.emit_events:
            event = None
        if event is not None and self.event_first:
            ws.feed(event)
        ws.feed(response)
        if event is not None and not self.event_first:
            ws.feed(event)


@pytest.fixture
def server(monkeypatch):
    """Route websockets.connect to an in-memory FakeServer."""
    fake = FakeServer()
    monkeypatch.setattr(websockets, "connect", fake.connect)
    return fake


@pytest.fixture
def thunder(server):
    """A Thunder stub answering on every socket the FakeServer opens."""
    stub = ThunderStub()
    server.on_connect = stub.attach
    return stub


@pytest.fixture(autouse=True)
def release_inspector_hosts():
    """Inspector host claims are process-wide; reset them between tests."""
    inspector._active_hosts.clear()
    yield
    inspector._active_hosts.clear()
