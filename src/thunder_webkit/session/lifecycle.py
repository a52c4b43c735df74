"""
Plugin lifecycle control.

Each transition follows the same sequence, serialised per controller:

1. Ask Thunder for the plugin's current state (never cached locally).
2. Return early if the plugin is already where we want it.
3. Arm the confirmation waiter, then send the request.
4. Return once the confirmation notification arrives.
"""

import asyncio
from typing import Literal, Optional

import httpx

from thunder_webkit.config import DEFAULT_HTTP_TIMEOUT
from thunder_webkit.errors import (
    EventTimeoutError,
    NavigationError,
    NotConnectedError,
    TransportClosedError,
)
from thunder_webkit.logger import get_logger
from thunder_webkit.protocol import PluginState
from thunder_webkit.session.client import ThunderClient

logger = get_logger(__name__)

RUNNING_STATES = frozenset({PluginState.ACTIVATED, PluginState.RESUMED})
STOPPED_STATES = frozenset({PluginState.DEACTIVATED})

NAVIGATION_CONFIRM_TIMEOUT = 10.0  # seconds, for best-effort urlchange waits

NavigationMode = Literal["http", "jsonrpc"]


class LifecycleController:
    """
    Drives a Thunder plugin through activate / deactivate / resume / navigate.

    Args:
        client: Connected ThunderClient for the plugin's callsign.
        confirm_timeout: Seconds to wait for each confirmation event,
            None to wait forever.
        navigation: "http" posts to the plugin's URL service (default);
            "jsonrpc" calls <callsign>.1.url over the socket.
        confirm_navigation: With "http" navigation, also wait (best effort)
            for the urlchange notification.
        http_client: Client for the HTTP navigation path; one is created
            and owned by the controller if omitted.
        http_timeout: Seconds for the HTTP navigation request.
    """

    def __init__(
        self,
        client: ThunderClient,
        confirm_timeout: Optional[float] = None,
        navigation: NavigationMode = "http",
        confirm_navigation: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        if navigation not in ("http", "jsonrpc"):
            raise ValueError(f"Unknown navigation mode: {navigation}")
        self.client = client
        self.confirm_timeout = confirm_timeout
        self.navigation = navigation
        self.confirm_navigation = confirm_navigation
        self.http_timeout = http_timeout
        self._http = http_client
        self._owns_http = http_client is None
        self._lock = asyncio.Lock()

    @property
    def callsign(self) -> str:
        return self.client.callsign

    @property
    def url_endpoint(self) -> str:
        return f"http://{self.client.host}:{self.client.port}/Service/{self.callsign}/URL"

    def _ensure_connected(self, operation: str) -> None:
        if not self.client.is_connected():
            raise NotConnectedError(
                f"Cannot {operation} '{self.callsign}': not connected to Thunder"
            )

    async def _transition(
        self,
        operation: str,
        done_states: frozenset,
        method: str,
        event_type: str,
        match_params: dict,
    ) -> None:
        self._ensure_connected(operation)
        async with self._lock:
            state = await self.client.get_state()
            if state in done_states:
                logger.debug(f"{operation}: '{self.callsign}' already {state.value}")
                return

            logger.info(f"{operation}: '{self.callsign}' is {state.value}, sending {method}")
            waiter = self.client.arm(event_type, match_params)
            try:
                await self.client.send_rpc(method, {"callsign": self.callsign})
            except BaseException:
                waiter.cancel()
                raise

            await waiter.wait(self.confirm_timeout)
            logger.info(f"{operation}: '{self.callsign}' confirmed")

    async def start(self) -> None:
        """Activate the plugin and wait for it to report activated."""
        await self._transition(
            "start",
            RUNNING_STATES,
            "Controller.1.activate",
            "statechange",
            {"state": "activated"},
        )

    async def stop(self) -> None:
        """Deactivate the plugin and wait for it to report deactivated."""
        await self._transition(
            "stop",
            STOPPED_STATES,
            "Controller.1.deactivate",
            "statechange",
            {"state": "deactivated"},
        )

    async def resume(self) -> None:
        """Resume a suspended plugin and wait for it to report unsuspended."""
        await self._transition(
            "resume",
            RUNNING_STATES,
            "Controller.1.resume",
            "statechange",
            {"suspended": False},
        )

    async def set_url(self, url: str) -> None:
        """
        Point the browser at ``url``.

        Raises:
            NavigationError: The HTTP request failed or was rejected.
            NotConnectedError: jsonrpc navigation without a connection.
        """
        async with self._lock:
            if self.navigation == "jsonrpc":
                await self._set_url_rpc(url)
            else:
                await self._set_url_http(url)

    async def _set_url_rpc(self, url: str) -> None:
        self._ensure_connected("set URL on")
        waiter = self.client.arm("urlchange", {"url": url, "loaded": True})
        try:
            await self.client.send_rpc(f"{self.callsign}.1.url", url)
        except BaseException:
            waiter.cancel()
            raise
        await waiter.wait(self.confirm_timeout)
        logger.info(f"'{self.callsign}' loaded {url}")

    async def _set_url_http(self, url: str) -> None:
        waiter = None
        if self.confirm_navigation and self.client.is_connected():
            waiter = self.client.arm("urlchange", {"url": url, "loaded": True})

        try:
            response = await self._http_client().post(
                self.url_endpoint, json={"url": url}, timeout=self.http_timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            if waiter is not None:
                waiter.cancel()
            logger.error(f"Failed to set URL: {e}")
            raise NavigationError(f"Failed to set URL to {url}: {e}") from e
        except BaseException:
            if waiter is not None:
                waiter.cancel()
            raise

        logger.info(f"'{self.callsign}' navigating to {url}")
        if waiter is None:
            return
        timeout = self.confirm_timeout
        if timeout is None:
            timeout = NAVIGATION_CONFIRM_TIMEOUT
        try:
            await waiter.wait(timeout)
        except (EventTimeoutError, TransportClosedError) as e:
            logger.warning(f"No urlchange confirmation for {url}: {e}")

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def aclose(self) -> None:
        """Close the HTTP client if this controller created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
