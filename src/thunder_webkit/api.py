"""
High-level API combining the Thunder session and the Web Inspector feed.

Callers get a single notification surface: ``on_event(SessionEvent)`` for
connection, navigation, closure, console output and errors.
"""

from dataclasses import asdict, dataclass
from typing import Callable, Optional

from thunder_webkit.config import ThunderConfig
from thunder_webkit.errors import ThunderError
from thunder_webkit.inspector import WebInspectorClient
from thunder_webkit.logger import get_logger
from thunder_webkit.session import LifecycleController, ThunderClient

logger = get_logger(__name__)


@dataclass
class SessionEvent:
    """Something that happened in the session, as reported to callers."""

    type: str
    source: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


EventCallback = Callable[[SessionEvent], None]


class ThunderWebkitAPI:
    """
    Start a session, launch URLs, close the browser and quit.

    Args:
        config: Connection settings.
        on_event: Receives every SessionEvent.
    """

    def __init__(self, config: ThunderConfig, on_event: EventCallback):
        self.config = config
        self._on_event = on_event
        self.client: Optional[ThunderClient] = None
        self.lifecycle: Optional[LifecycleController] = None
        self.inspector: Optional[WebInspectorClient] = None

    @property
    def started(self) -> bool:
        return self.client is not None

    def _emit(self, type: str, source: str, message: str) -> None:
        self._on_event(SessionEvent(type=type, source=source, message=message))

    def _handle_console_message(
        self, error: Optional[BaseException], message: Optional[str]
    ) -> None:
        if error is not None:
            self._emit("error", "WebInspector", str(error))
        else:
            self._emit("console", "WebInspector", message or "")

    def _build(self) -> None:
        config = self.config
        self.client = ThunderClient(
            host=config.host,
            callsign=config.callsign,
            jsonrpc_id=config.jsonrpc_id,
            port=config.port,
            connect_timeout=config.connect_timeout,
            rpc_timeout=config.rpc_timeout,
        )
        self.lifecycle = LifecycleController(
            self.client, http_timeout=config.http_timeout
        )
        self.inspector = WebInspectorClient(
            host=config.inspector_host,
            on_message=self._handle_console_message,
            port=config.webinspector_port,
            connect_timeout=config.connect_timeout,
        )

    async def start(self) -> None:
        """Connect to Thunder."""
        if self.started:
            self._emit("error", "Thunder", "Session already started")
            return

        self._build()
        try:
            await self.client.connect()
        except (ThunderError, OSError) as e:
            logger.error(f"Failed to start Thunder session: {e}")
            await self.client.disconnect()
            await self.lifecycle.aclose()
            self.client = self.lifecycle = self.inspector = None
            self._emit("error", "Thunder", "Failed to start Thunder session")
            return

        self._emit("connected", "Thunder", "Session connected")

    async def launch(self, url: str) -> None:
        """Restart the browser plugin with a fresh console feed and load ``url``."""
        if not self.started:
            self._emit("error", "Thunder", "Session not started")
            return

        try:
            await self.inspector.disconnect()
            await self.lifecycle.stop()
            await self.lifecycle.start()
            await self.inspector.connect()
            await self.lifecycle.resume()
            await self.lifecycle.set_url(url)
        except (ThunderError, OSError) as e:
            logger.error(f"Failed to launch {url}: {e}")
            self._emit("error", "Thunder", "Failed to launch URL")
            return

        self._emit("url-launch", "Thunder", f"URL launched: {url}")

    async def close(self) -> None:
        """Stop the browser plugin."""
        if not self.started:
            self._emit("error", "Thunder", "Session not started")
            return

        try:
            await self.inspector.disconnect()
            await self.lifecycle.stop()
        except (ThunderError, OSError) as e:
            logger.error(f"Failed to close instance: {e}")
            self._emit("error", "Thunder", "Failed to close instance")
            return

        self._emit("closed", "Thunder", "Browser instance closed")

    async def quit(self) -> None:
        """Tear down every connection owned by this API."""
        if self.inspector is not None:
            await self.inspector.disconnect()
            self.inspector = None

        if self.lifecycle is not None:
            await self.lifecycle.aclose()
            self.lifecycle = None

        if self.client is not None:
            try:
                await self.client.disconnect()
            except (ThunderError, OSError) as e:
                logger.error(f"Failed to disconnect: {e}")
                self._emit("error", "Thunder", "Failed to stop instance")
            self.client = None

        self._emit("quit", "UnifiedAPI", "Session fully stopped")
