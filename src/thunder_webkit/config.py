"""
Runtime configuration.

Values come from the environment, optionally seeded from a ``.env`` file in
the working directory.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_HOST = "localhost"
DEFAULT_CALLSIGN = "WebKitBrowser"
DEFAULT_THUNDER_PORT = 80
DEFAULT_WEBINSPECTOR_PORT = 9998
DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds
DEFAULT_RPC_TIMEOUT = 10.0  # seconds
DEFAULT_HTTP_TIMEOUT = 10.0  # seconds


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass
class ThunderConfig:
    """Connection settings for a Thunder device and its Web Inspector."""

    host: str = DEFAULT_HOST
    callsign: str = DEFAULT_CALLSIGN
    port: int = DEFAULT_THUNDER_PORT
    jsonrpc_id: int = 1
    webinspector_host: Optional[str] = None  # None = same as host
    webinspector_port: int = DEFAULT_WEBINSPECTOR_PORT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    rpc_timeout: Optional[float] = DEFAULT_RPC_TIMEOUT  # None = wait forever
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @property
    def inspector_host(self) -> str:
        return self.webinspector_host or self.host

    @classmethod
    def from_env(
        cls,
        load_env_file: bool = True,
        env_file: Optional[Path] = None,
    ) -> "ThunderConfig":
        """
        Build a config from ``THUNDER_*`` / ``WEBINSPECTOR_*`` variables.

        Variables already set in the environment win over the ``.env`` file.
        """
        if load_env_file:
            load_dotenv(env_file or Path.cwd() / ".env")

        rpc_timeout: Optional[float] = _env_float(
            "THUNDER_RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT
        )
        if rpc_timeout is not None and rpc_timeout <= 0:
            rpc_timeout = None

        return cls(
            host=os.getenv("THUNDER_HOST", DEFAULT_HOST),
            callsign=os.getenv("THUNDER_CALLSIGN", DEFAULT_CALLSIGN),
            port=_env_int("THUNDER_PORT", DEFAULT_THUNDER_PORT),
            jsonrpc_id=_env_int("THUNDER_JSONRPC_ID", 1),
            webinspector_host=os.getenv("WEBINSPECTOR_HOST") or None,
            webinspector_port=_env_int(
                "WEBINSPECTOR_PORT", DEFAULT_WEBINSPECTOR_PORT
            ),
            connect_timeout=_env_float(
                "THUNDER_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT
            ),
            rpc_timeout=rpc_timeout,
            http_timeout=_env_float("THUNDER_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        )
