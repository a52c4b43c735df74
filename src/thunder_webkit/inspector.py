"""
WebKit Web Inspector console feed.

Connects to the inspector endpoint of a WebKit browser, enables the console
domain and forwards every console line to a callback. WebKit accepts only
one inspector connection per host, so a process never opens two.
"""

import json
from functools import partial
from typing import Any, Callable, Optional

from pydantic import ValidationError

from thunder_webkit.config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_WEBINSPECTOR_PORT
from thunder_webkit.errors import InspectorBusyError
from thunder_webkit.logger import get_logger
from thunder_webkit.protocol import (
    CONSOLE_MESSAGE_METHOD,
    INSPECTOR_ENABLE_SEQUENCE,
    ConsoleMessageAdded,
)
from thunder_webkit.transport import WebSocketTransport

logger = get_logger(__name__)

# (error, text): exactly one of the two is set.
ConsoleCallback = Callable[[Optional[BaseException], Optional[str]], None]

_active_hosts: set[str] = set()


class WebInspectorClient:
    """
    Console log client for WebKit's remote Web Inspector.

    Args:
        host: Inspector host name or IP.
        on_message: Called as ``on_message(None, text)`` for console lines
            and ``on_message(error, None)`` for transport errors.
        port: Inspector port.
        connect_timeout: Seconds to wait for the socket to open.
        transport_factory: Builds the transport for each connection.
    """

    def __init__(
        self,
        host: str,
        on_message: ConsoleCallback,
        port: int = DEFAULT_WEBINSPECTOR_PORT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        transport_factory: Callable[[], WebSocketTransport] = WebSocketTransport,
    ):
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self._on_message = on_message
        self._transport_factory = transport_factory
        self._transport: Optional[WebSocketTransport] = None

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}/socket/1/1/WebPage"

    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_connected()

    async def connect(self) -> None:
        """
        Open the inspector socket and enable console capture.

        Raises:
            InspectorBusyError: Another client in this process holds the host.
            TransportError: The socket could not be opened.
        """
        if self._transport is not None:
            await self.disconnect()

        if self.host in _active_hosts:
            raise InspectorBusyError(
                f"A Web Inspector connection to {self.host} is already open"
            )
        _active_hosts.add(self.host)

        transport = self._transport_factory()
        transport.on("message", self._handle_message)
        transport.on("error", self._handle_error)
        transport.on("close", partial(self._handle_close, transport))
        self._transport = transport

        try:
            await transport.connect(self.url, timeout=self.connect_timeout)
            for command in INSPECTOR_ENABLE_SEQUENCE:
                await transport.send(command.to_wire())
        except BaseException:
            await self.disconnect()
            raise

        logger.info(f"Web Inspector console enabled on {self.url}")

    async def disconnect(self) -> None:
        """Close the inspector socket. A no-op when not connected."""
        transport, self._transport = self._transport, None
        if transport is None:
            return
        _active_hosts.discard(self.host)
        logger.debug(f"Closing Web Inspector connection to {self.url}")
        await transport.close()

    def _handle_message(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.debug(f"Error parsing Web Inspector message: {e}")
            return

        if not isinstance(data, dict) or data.get("method") != CONSOLE_MESSAGE_METHOD:
            return

        try:
            message = ConsoleMessageAdded.model_validate(data)
        except ValidationError:
            logger.debug("Ignoring malformed Console.messageAdded")
            return

        text = message.params.message.text
        if text:
            self._on_message(None, text)

    def _handle_error(self, error: Any) -> None:
        logger.error(f"Web Inspector connection error: {error}")
        if isinstance(error, BaseException):
            self._on_message(error, None)

    def _handle_close(self, transport: WebSocketTransport, _payload: Any = None) -> None:
        logger.info("Web Inspector connection closed")
        # A replaced transport must not release the claim of its successor.
        if self._transport is not transport:
            return
        self._transport = None
        _active_hosts.discard(self.host)
