"""
Exceptions raised by thunder_webkit.

Transport failures also subclass the matching builtin (``ConnectionError``,
``TimeoutError``, ``LookupError``) so callers can catch either.
"""

from typing import Any


class ThunderError(Exception):
    """Base class for every error raised by this package."""


# ─── Transport ───────────────────────────────────────────────────────


class TransportError(ThunderError, ConnectionError):
    """A WebSocket transport failed."""


class ConnectionFailedError(TransportError):
    """The socket reported an error before it opened."""


class ConnectionTimeoutError(TransportError, TimeoutError):
    """The socket did not open within the connect timeout."""


class TransportClosedError(TransportError):
    """The socket is not open, or closed while a call was outstanding."""


# ─── JSON-RPC ────────────────────────────────────────────────────────


class RpcError(ThunderError):
    """A JSON-RPC call failed."""


class RpcParseError(RpcError):
    """A response carrying our request id was not a valid response body."""


class RpcCallError(RpcError):
    """Thunder answered with an error-shaped response."""

    def __init__(self, method: str, code: int, message: str, data: Any = None):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class RpcTimeoutError(RpcError, TimeoutError):
    """No response arrived before the call deadline."""


class EventTimeoutError(ThunderError, TimeoutError):
    """No matching notification arrived before the wait deadline."""


# ─── Lifecycle ───────────────────────────────────────────────────────


class PluginNotFoundError(ThunderError, LookupError):
    """The configured callsign is absent from a Controller status response."""

    def __init__(self, callsign: str):
        super().__init__(f"Callsign '{callsign}' not found in controller status")
        self.callsign = callsign


class NotConnectedError(ThunderError):
    """A transition was requested before a connection exists."""


class NavigationError(ThunderError):
    """Setting the browser URL failed."""


class InspectorBusyError(ThunderError):
    """Another Web Inspector connection already holds this host."""
