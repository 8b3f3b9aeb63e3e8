"""Relay server side of rokurelay.

Public API:
    TargetAddress -- Lock-guarded downstream target
    ConnectionRegistry -- One live connection per client identity
    EcpForwarder -- HTTP forwarder with a strict deadline
    RelayHub -- Message handling and fire-and-forget dispatch
    create_app -- FastAPI application factory
"""

from rokurelay.relay.forwarder import EcpForwarder, ForwardError, ForwardResult
from rokurelay.relay.hub import RelayConnection, RelayHub
from rokurelay.relay.registry import ConnectionRegistry
from rokurelay.relay.target import TargetAddress

__all__ = [
    "ConnectionRegistry",
    "EcpForwarder",
    "ForwardError",
    "ForwardResult",
    "RelayConnection",
    "RelayHub",
    "TargetAddress",
    "create_app",
]


def __getattr__(name: str) -> object:
    """Lazy import for the web application, which pulls in FastAPI."""
    if name == "create_app":
        from rokurelay.relay.server import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
