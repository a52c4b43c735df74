"""
WebSocket transport with an internal event bus.

A WebSocketTransport owns at most one socket at a time. Consumers subscribe
to ``open``, ``message``, ``close`` and ``error`` through ``on``/``off``; a
single reader task per socket fans inbound frames out to every subscriber.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from thunder_webkit.config import DEFAULT_CONNECT_TIMEOUT
from thunder_webkit.errors import (
    ConnectionFailedError,
    ConnectionTimeoutError,
    TransportClosedError,
)
from thunder_webkit.logger import get_logger

logger = get_logger(__name__)

EVENTS = ("open", "message", "close", "error")

Handler = Callable[[Any], None]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class WebSocketTransport:
    """
    Duplex, message-oriented WebSocket connection.

    Each connect() bumps a generation counter. Reader output and failures
    belonging to an older generation are discarded, so a socket that was
    torn down can never emit into the bus again.
    """

    def __init__(self):
        self._ws = None
        self._url: Optional[str] = None
        self._state = ConnectionState.IDLE
        self._reader: Optional[asyncio.Task] = None
        self._generation = 0
        self._handlers: dict[str, list[Handler]] = {event: [] for event in EVENTS}

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def url(self) -> Optional[str]:
        return self._url

    def is_connected(self) -> bool:
        return self._ws is not None and self._state is ConnectionState.OPEN

    # ─── Event bus ───────────────────────────────────────────────────

    def on(self, event: str, handler: Handler) -> None:
        """Subscribe ``handler`` to a transport event."""
        self._check_event(event)
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        """Unsubscribe ``handler``; unknown handlers are ignored."""
        self._check_event(event)
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def _check_event(self, event: str) -> None:
        if event not in self._handlers:
            raise ValueError(
                f"Unknown transport event '{event}', expected one of {EVENTS}"
            )

    def _emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers[event]):
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Transport '{event}' handler failed: {e}")

    # ─── Connection ──────────────────────────────────────────────────

    async def connect(
        self,
        url: str,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,
        subprotocols: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Open a socket to ``url`` and start reading from it.

        Args:
            url: WebSocket URL.
            timeout: Seconds to wait for the socket to open.
            subprotocols: Optional WebSocket subprotocols to offer.

        Raises:
            ConnectionTimeoutError: The socket did not open within ``timeout``.
            ConnectionFailedError: The handshake failed, or a newer connect()
                superseded this one.
        """
        if self._ws is not None or self._state is ConnectionState.CONNECTING:
            logger.debug(f"Tearing down existing connection to {self._url}")
            await self._teardown()

        self._generation += 1
        generation = self._generation
        self._url = url
        self._state = ConnectionState.CONNECTING
        logger.debug(f"Connecting to {url} (timeout {timeout}s)")

        try:
            ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    subprotocols=list(subprotocols) if subprotocols else None,
                    open_timeout=None,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = ConnectionTimeoutError(
                f"WebSocket connection to {url} timed out after {timeout}s"
            )
            if generation == self._generation:
                self._state = ConnectionState.CLOSED
                self._emit("error", error)
            raise error from None
        except (OSError, WebSocketException) as e:
            if generation == self._generation:
                self._state = ConnectionState.CLOSED
                self._emit("error", e)
            raise ConnectionFailedError(
                f"WebSocket connection to {url} failed: {e}"
            ) from e

        if generation != self._generation:
            # A newer connect() or close() ran while this one was opening.
            await ws.close()
            raise ConnectionFailedError(
                f"WebSocket connection to {url} was superseded"
            )

        self._ws = ws
        self._state = ConnectionState.OPEN
        self._reader = asyncio.create_task(self._read_loop(ws, generation))
        logger.info(f"Connected to {url}")
        self._emit("open")

    async def _read_loop(self, ws, generation: int) -> None:
        try:
            async for message in ws:
                if generation != self._generation:
                    return
                self._emit("message", message)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            if generation == self._generation:
                logger.warning(f"Connection to {self._url} closed abnormally: {e}")
                self._emit("error", e)
        finally:
            if generation == self._generation:
                self._ws = None
                self._reader = None
                self._state = ConnectionState.CLOSED
                logger.info(f"Connection to {self._url} closed")
                self._emit("close")

    async def send(self, data: str | bytes) -> None:
        """
        Send one frame.

        Raises:
            TransportClosedError: The socket is not open.
        """
        if not self.is_connected():
            raise TransportClosedError("WebSocket is not open")
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise TransportClosedError(f"WebSocket closed during send: {e}") from e

    async def _teardown(self) -> None:
        """Drop the current socket without touching bus subscriptions."""
        self._generation += 1
        ws, reader = self._ws, self._reader
        self._ws = None
        self._reader = None
        if self._state is not ConnectionState.IDLE:
            self._state = ConnectionState.CLOSED

        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.debug(f"Ignoring error while closing socket: {e}")

    async def close(self) -> None:
        """Close the socket and detach every listener. Safe to call twice."""
        had_socket = self._ws is not None
        await self._teardown()
        for handlers in self._handlers.values():
            handlers.clear()
        if had_socket:
            logger.info(f"Closed connection to {self._url}")
