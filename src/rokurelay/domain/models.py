"""Core domain models for the rokurelay system.

These models describe what flows over the controller's WebSocket
session: key commands going towards the Roku, target updates, and the
config/error events the relay sends back.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Action(str, enum.Enum):
    """ECP key action. The value is the path segment sent to the device."""

    KEYDOWN = "keydown"
    KEYUP = "keyup"
    KEYPRESS = "keypress"


# Hyphenated spellings name the same ECP actions
ACTION_ALIASES = {
    "key-down": Action.KEYDOWN.value,
    "key-up": Action.KEYUP.value,
    "key-press": Action.KEYPRESS.value,
}


class Key(str, enum.Enum):
    """Closed set of control symbols the relay will forward."""

    LEFT = "Left"
    RIGHT = "Right"
    UP = "Up"
    DOWN = "Down"
    SELECT = "Select"
    BACK = "Back"
    HOME = "Home"
    REV = "Rev"
    FWD = "Fwd"
    PLAY = "Play"
    INSTANT_REPLAY = "InstantReplay"
    INFO = "Info"


class ConnectionStatus(str, enum.Enum):
    """Client-side state of the logical session to the relay."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


# ---------------------------------------------------------------------------
# Client -> relay messages
# ---------------------------------------------------------------------------


class Command(BaseModel):
    """A single key event to forward to the device."""

    model_config = ConfigDict(frozen=True)

    action: Action
    key: Key

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ACTION_ALIASES.get(value, value)
        return value

    @property
    def path(self) -> str:
        """ECP request path for this command."""
        return f"/{self.action.value}/{self.key.value}"

    def to_wire(self) -> str:
        return json.dumps({"action": self.action.value, "key": self.key.value})


class SetTargetMessage(BaseModel):
    """Retarget request: ``{"type": "set-roku-ip", "ip": ...}``."""

    type: Literal["set-roku-ip"] = "set-roku-ip"
    ip: str

    def to_wire(self) -> str:
        return self.model_dump_json()


InboundMessage = Union[Command, SetTargetMessage]


def parse_inbound(raw: str | bytes) -> InboundMessage | None:
    """Decode one frame received from a controller.

    Returns None for anything that is not a valid retarget or command;
    such frames are logged and dropped without a reply.
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Invalid JSON received: %r", raw)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring non-object message: %r", raw)
        return None

    if data.get("type") == "set-roku-ip" and isinstance(data.get("ip"), str) and data["ip"].strip():
        return SetTargetMessage(ip=data["ip"].strip())

    try:
        return Command.model_validate(
            {"action": data.get("action"), "key": data.get("key")}
        )
    except ValidationError:
        logger.warning(
            "Invalid command: action=%r key=%r", data.get("action"), data.get("key")
        )
        return None


# ---------------------------------------------------------------------------
# Relay -> client events
# ---------------------------------------------------------------------------


class ConfigEvent(BaseModel):
    """Current relay configuration, sent on connect and on retarget."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["config"] = "config"
    roku_ip: str = Field(default="", alias="rokuIp")
    server_time: int | None = Field(default=None, alias="serverTime")


class ErrorEvent(BaseModel):
    """A one-line diagnostic for a command that could not be delivered."""

    type: Literal["error"] = "error"
    message: str


ServerEvent = Union[ConfigEvent, ErrorEvent]


def encode_event(event: ServerEvent) -> str:
    return event.model_dump_json(by_alias=True, exclude_none=True)


def parse_event(raw: str | bytes) -> ServerEvent | None:
    """Decode a frame sent by the relay; unknown frames yield None."""
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    try:
        if data.get("type") == "config":
            return ConfigEvent.model_validate(data)
        if data.get("type") == "error":
            return ErrorEvent.model_validate(data)
    except ValidationError:
        logger.debug("Malformed relay event: %r", raw)
    return None
