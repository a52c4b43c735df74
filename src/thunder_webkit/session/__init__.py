"""
Thunder session layer.

- client: JSON-RPC request/response correlation and event waiters
- lifecycle: activate / deactivate / resume / navigate transitions
"""

from thunder_webkit.session.client import EventWaiter, ThunderClient
from thunder_webkit.session.lifecycle import LifecycleController

__all__ = ["EventWaiter", "LifecycleController", "ThunderClient"]
