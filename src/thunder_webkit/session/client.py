"""
Thunder JSON-RPC session client.

Requests and controller notifications share one WebSocket. Every inbound
frame goes through a single handler that first resolves a pending request
by id, then offers notifications to the armed event waiters.

Protocol:
    Client -> Thunder (request):
        {"jsonrpc": "2.0", "id": 7, "method": "Controller.1.activate",
         "params": {"callsign": "WebKitBrowser"}}

    Thunder -> Client (response):
        {"jsonrpc": "2.0", "id": 7, "result": null}

    Thunder -> Client (notification, after Controller.1.register):
        {"jsonrpc": "2.0", "method": "client.Controller.events.all",
         "params": {"event": "statechange", "params": {"state": "activated"}}}
"""

import asyncio
import json
from typing import Any, Optional

from pydantic import ValidationError

from thunder_webkit.config import (
    DEFAULT_CALLSIGN,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_THUNDER_PORT,
)
from thunder_webkit.errors import (
    ConnectionFailedError,
    ConnectionTimeoutError,
    EventTimeoutError,
    PluginNotFoundError,
    RpcCallError,
    RpcParseError,
    RpcTimeoutError,
    TransportClosedError,
)
from thunder_webkit.logger import get_logger
from thunder_webkit.protocol import (
    EVENTS_CHANNEL,
    EVENTS_METHOD,
    ControllerEvent,
    ControllerNotification,
    PluginState,
    PluginStatus,
    RpcRequest,
    RpcResponse,
)
from thunder_webkit.transport import WebSocketTransport

logger = get_logger(__name__)

RECONNECT_DELAY = 2  # seconds between connect_with_retry attempts


def _same_value(expected: Any, actual: Any) -> bool:
    # JSON true must not match 1, nor false match 0.
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected is actual
    return expected == actual


class EventWaiter:
    """
    A registered predicate over controller notifications.

    Returned by ThunderClient.arm(). The waiter is live from the moment it is
    armed, so the request that triggers the event can be sent afterwards
    without racing the notification.
    """

    def __init__(
        self,
        client: "ThunderClient",
        event_type: str,
        match_params: Optional[dict[str, Any]] = None,
    ):
        self.event_type = event_type
        self.match_params = dict(match_params or {})
        self._client = client
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    def __repr__(self) -> str:
        return f"EventWaiter({self.event_type!r}, {self.match_params!r})"

    @property
    def done(self) -> bool:
        return self._future.done()

    def matches(self, event: ControllerEvent) -> bool:
        """True if ``event`` has our type and every expected param is equal."""
        if event.event != self.event_type:
            return False
        return all(
            key in event.params and _same_value(value, event.params[key])
            for key, value in self.match_params.items()
        )

    async def wait(self, timeout: Optional[float] = None) -> ControllerEvent:
        """
        Wait for the matching notification.

        Raises:
            EventTimeoutError: Nothing matched within ``timeout`` seconds.
            TransportClosedError: The connection closed first.
        """
        try:
            return await asyncio.wait_for(self._future, timeout)
        except asyncio.TimeoutError:
            raise EventTimeoutError(
                f"No '{self.event_type}' event matching {self.match_params} "
                f"within {timeout}s"
            ) from None
        finally:
            self._client._release_waiter(self)

    def cancel(self) -> None:
        """Deregister without waiting."""
        self._client._release_waiter(self)
        if not self._future.done():
            self._future.cancel()

    def _resolve(self, event: ControllerEvent) -> None:
        if not self._future.done():
            self._future.set_result(event)

    def _fail(self, exc: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(exc)
            # Mark retrieved so an unawaited waiter does not log a warning.
            self._future.exception()


class ThunderClient:
    """
    JSON-RPC client for a Thunder (WPEFramework) Controller.

    Args:
        host: Thunder host name or IP.
        callsign: Plugin callsign to track (e.g. "WebKitBrowser" or "UX").
        jsonrpc_id: First request id to issue.
        port: Thunder HTTP/WebSocket port.
        connect_timeout: Seconds to wait for the socket to open.
        rpc_timeout: Default per-call deadline in seconds, None to wait forever.
        transport: Transport to use; a new WebSocketTransport by default.
    """

    def __init__(
        self,
        host: str,
        callsign: str = DEFAULT_CALLSIGN,
        jsonrpc_id: int = 1,
        port: int = DEFAULT_THUNDER_PORT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        rpc_timeout: Optional[float] = None,
        transport: Optional[WebSocketTransport] = None,
    ):
        self.host = host
        self.callsign = callsign
        self.port = port
        self.connect_timeout = connect_timeout
        self.rpc_timeout = rpc_timeout
        self._transport = transport or WebSocketTransport()
        self._message_id = jsonrpc_id
        self._pending: dict[int, asyncio.Future] = {}
        self._waiters: list[EventWaiter] = []

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}/jsonrpc"

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    def is_connected(self) -> bool:
        return self._transport.is_connected()

    def _next_id(self) -> int:
        message_id = self._message_id
        self._message_id += 1
        return message_id

    # ─── Connection ──────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the socket and subscribe to all controller events."""
        if self._transport.is_connected():
            # The old socket is replaced silently, so settle its calls here.
            self._fail_all(TransportClosedError("Thunder connection replaced"))
        self._transport.off("message", self._handle_message)
        self._transport.off("close", self._handle_close)
        self._transport.on("message", self._handle_message)
        self._transport.on("close", self._handle_close)

        await self._transport.connect(self.url, timeout=self.connect_timeout)
        await self.send_rpc(
            "Controller.1.register", {"event": "all", "id": EVENTS_CHANNEL}
        )
        logger.info(f"Registered for controller events on {self.url}")

    async def connect_with_retry(
        self, attempts: int = 3, delay: float = RECONNECT_DELAY
    ) -> None:
        """connect(), retrying connection failures up to ``attempts`` times."""
        for attempt in range(1, attempts + 1):
            try:
                await self.connect()
                return
            except (ConnectionFailedError, ConnectionTimeoutError) as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Connect attempt {attempt}/{attempts} failed: {e}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)

    async def disconnect(self) -> None:
        """Close the socket and settle every outstanding call and waiter."""
        await self._transport.close()
        self._fail_all(TransportClosedError("Thunder connection closed"))

    def _handle_close(self, _payload: Any = None) -> None:
        self._fail_all(TransportClosedError("Thunder connection closed by peer"))

    def _fail_all(self, exc: TransportClosedError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            waiter._fail(exc)

    # ─── Requests ────────────────────────────────────────────────────

    async def send_rpc(
        self,
        method: str,
        params: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Call a JSON-RPC method and return its ``result``.

        Args:
            method: Dotted method name, e.g. "Controller.1.status".
            params: Method parameters; an empty object if omitted.
            timeout: Deadline in seconds; defaults to ``rpc_timeout``.

        Raises:
            TransportClosedError: Not connected, or closed before the answer.
            RpcTimeoutError: No answer before the deadline.
            RpcCallError: Thunder answered with an error.
            RpcParseError: The answer was not a valid response.
        """
        request = RpcRequest(
            id=self._next_id(),
            method=method,
            params={} if params is None else params,
        )
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        deadline = self.rpc_timeout if timeout is None else timeout

        try:
            logger.debug(f"→ {method} (id={request.id})")
            await self._transport.send(request.to_wire())
            response: RpcResponse = await asyncio.wait_for(future, deadline)
        except asyncio.TimeoutError:
            raise RpcTimeoutError(
                f"No response to {method} (id={request.id}) within {deadline}s"
            ) from None
        finally:
            self._pending.pop(request.id, None)

        if response.error is not None:
            raise RpcCallError(
                method,
                response.error.code,
                response.error.message,
                response.error.data,
            )
        return response.result

    def arm(
        self, event_type: str, match_params: Optional[dict[str, Any]] = None
    ) -> EventWaiter:
        """Register a waiter for a future notification and return its handle."""
        waiter = EventWaiter(self, event_type, match_params)
        self._waiters.append(waiter)
        return waiter

    async def wait_for_event(
        self,
        event_type: str,
        match_params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ControllerEvent:
        """Wait for the first notification matching ``event_type``/``match_params``."""
        return await self.arm(event_type, match_params).wait(timeout)

    def _release_waiter(self, waiter: EventWaiter) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    # ─── Inbound ─────────────────────────────────────────────────────

    def _handle_message(self, raw: Any) -> None:
        """Route one inbound frame. Noise is logged and dropped."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-JSON frame: {raw!r:.200}")
            return

        if not isinstance(data, dict):
            logger.debug("Ignoring non-object frame")
            return

        message_id = data.get("id")
        if (
            "method" not in data
            and isinstance(message_id, int)
            and not isinstance(message_id, bool)
        ):
            self._resolve_request(message_id, data)
            return

        if data.get("method") == EVENTS_METHOD:
            try:
                notification = ControllerNotification.model_validate(data)
            except ValidationError:
                logger.debug("Ignoring malformed controller notification")
                return
            self._dispatch_event(notification.params)
            return

        logger.debug(f"Unhandled frame: method={data.get('method')}")

    def _resolve_request(self, message_id: int, data: dict[str, Any]) -> None:
        future = self._pending.get(message_id)
        if future is None:
            logger.debug(f"Received response for unknown id: {message_id}")
            return
        if future.done():
            return

        try:
            response = RpcResponse.model_validate(data)
        except ValidationError as e:
            future.set_exception(
                RpcParseError(f"Malformed response for id {message_id}: {e}")
            )
            return
        future.set_result(response)

    def _dispatch_event(self, event: ControllerEvent) -> None:
        logger.debug(f"Event '{event.event}': {event.params}")
        for waiter in list(self._waiters):
            if waiter.matches(event):
                self._release_waiter(waiter)
                waiter._resolve(event)

    # ─── Controller ──────────────────────────────────────────────────

    async def _raw_status(self) -> list:
        result = await self.send_rpc("Controller.1.status")
        if not isinstance(result, list):
            raise RpcParseError("Controller.1.status did not return a list")
        return result

    async def status(self) -> list[PluginStatus]:
        """Return every plugin entry of Controller.1.status that parses."""
        entries = []
        for raw in await self._raw_status():
            try:
                entries.append(PluginStatus.model_validate(raw))
            except ValidationError as e:
                logger.debug(f"Skipping unparsable status entry {raw!r:.200}: {e}")
        return entries

    async def get_state(self) -> PluginState:
        """
        Return the reported state of our callsign.

        Only our own entry is validated; other plugins may report anything.

        Raises:
            PluginNotFoundError: The callsign is not in the status response.
            RpcParseError: Our entry is present but malformed.
        """
        for raw in await self._raw_status():
            if isinstance(raw, dict) and raw.get("callsign") == self.callsign:
                try:
                    return PluginStatus.model_validate(raw).state
                except ValidationError as e:
                    raise RpcParseError(
                        f"Malformed Controller.1.status entry for '{self.callsign}': {e}"
                    ) from e
        raise PluginNotFoundError(self.callsign)
