"""
Pydantic models for the wire protocols.

Covers:
- Thunder JSON-RPC frames (request, response, error)
- Controller event notifications and plugin status entries
- WebKit Web Inspector commands and console notifications
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JSONRPC_VERSION = "2.0"

# Channel that Controller.1.register subscribes us to; notifications arrive
# as "<id>.<event>", i.e. "client.Controller.events.all".
EVENTS_CHANNEL = "client.Controller.events"
EVENTS_METHOD = f"{EVENTS_CHANNEL}.all"


class PluginState(str, Enum):
    """Plugin state as reported by the Thunder Controller."""

    UNAVAILABLE = "Unavailable"
    DEACTIVATED = "Deactivated"
    DEACTIVATION = "Deactivation"
    ACTIVATED = "Activated"
    ACTIVATION = "Activation"
    PRECONDITION = "Precondition"
    SUSPENDED = "Suspended"
    RESUMED = "Resumed"
    HIBERNATED = "Hibernated"
    DESTROYED = "Destroyed"

    @classmethod
    def _missing_(cls, value):
        # Status responses say "Activated", statechange events say "activated".
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


# ─── Thunder JSON-RPC ────────────────────────────────────────────────


class RpcRequest(BaseModel):
    """Client → Thunder: a JSON-RPC call."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: str = Field(default=JSONRPC_VERSION, alias="jsonrpc")
    id: int
    method: str
    params: Any = Field(default_factory=dict)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class RpcErrorBody(BaseModel):
    code: int
    message: str = ""
    data: Any = None


class RpcResponse(BaseModel):
    """Thunder → Client: the answer to one request id."""

    id: int
    result: Any = None
    error: Optional[RpcErrorBody] = None

    @model_validator(mode="after")
    def _result_or_error(self) -> "RpcResponse":
        if "result" not in self.model_fields_set and self.error is None:
            raise ValueError("response carries neither 'result' nor 'error'")
        return self


class ControllerEvent(BaseModel):
    """Payload of a controller notification."""

    event: str
    params: dict[str, Any] = Field(default_factory=dict)


class ControllerNotification(BaseModel):
    """Thunder → Client: unsolicited event on the registered channel."""

    method: str = EVENTS_METHOD
    params: ControllerEvent


class PluginStatus(BaseModel):
    """One entry of a Controller.1.status response."""

    model_config = ConfigDict(extra="allow")

    callsign: str
    state: PluginState

    @field_validator("state", mode="before")
    @classmethod
    def _normalise_state(cls, value: Any) -> Any:
        if isinstance(value, str):
            return PluginState(value)
        return value


# ─── Web Inspector ───────────────────────────────────────────────────


class InspectorCommand(BaseModel):
    """Client → Web Inspector: a protocol command."""

    id: int
    method: str

    def to_wire(self) -> str:
        return self.model_dump_json()


# Console.enable must come before Inspector.initialized.
INSPECTOR_ENABLE_SEQUENCE = (
    InspectorCommand(id=1, method="Inspector.enable"),
    InspectorCommand(id=22, method="Console.enable"),
    InspectorCommand(id=23, method="Inspector.initialized"),
)

CONSOLE_MESSAGE_METHOD = "Console.messageAdded"


class ConsoleMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    level: Optional[str] = None


class ConsoleMessageParams(BaseModel):
    message: ConsoleMessage


class ConsoleMessageAdded(BaseModel):
    """Web Inspector → Client: a console line."""

    method: str = CONSOLE_MESSAGE_METHOD
    params: ConsoleMessageParams
