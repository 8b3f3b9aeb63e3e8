"""Domain models shared by the relay server and the controller session."""

from rokurelay.domain.models import (
    Action,
    Command,
    ConfigEvent,
    ConnectionStatus,
    ErrorEvent,
    Key,
    SetTargetMessage,
    encode_event,
    parse_event,
    parse_inbound,
)

__all__ = [
    "Action",
    "Command",
    "ConfigEvent",
    "ConnectionStatus",
    "ErrorEvent",
    "Key",
    "SetTargetMessage",
    "encode_event",
    "parse_event",
    "parse_inbound",
]
