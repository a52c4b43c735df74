"""
Remote control for a WebKit browser hosted by Thunder (WPEFramework).

- ThunderClient: JSON-RPC session with request correlation and event waiters
- LifecycleController: activate / deactivate / resume / navigate
- WebInspectorClient: console output from WebKit's Web Inspector
- ThunderWebkitAPI: the three combined behind one event callback
"""

from thunder_webkit.api import SessionEvent, ThunderWebkitAPI
from thunder_webkit.config import ThunderConfig
from thunder_webkit.inspector import WebInspectorClient
from thunder_webkit.protocol import PluginState
from thunder_webkit.session import EventWaiter, LifecycleController, ThunderClient
from thunder_webkit.transport import ConnectionState, WebSocketTransport

__version__ = "0.1.0"

__all__ = [
    "ConnectionState",
    "EventWaiter",
    "LifecycleController",
    "PluginState",
    "SessionEvent",
    "ThunderClient",
    "ThunderConfig",
    "ThunderWebkitAPI",
    "WebInspectorClient",
    "WebSocketTransport",
]
