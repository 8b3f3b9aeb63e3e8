"""Relay hub: per-connection message handling.

The hub owns the connection registry and shares the target address with
the forwarder. Every controller socket gets a ``RelayConnection``; every
valid command becomes its own forwarding task so that a slow device
never stalls the socket that sent it or any other socket.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

from rokurelay.domain.models import (
    Command,
    ConfigEvent,
    ErrorEvent,
    ServerEvent,
    SetTargetMessage,
    encode_event,
    parse_inbound,
)
from rokurelay.relay.forwarder import EcpForwarder, ForwardError
from rokurelay.relay.registry import ConnectionRegistry
from rokurelay.relay.target import TargetAddress

logger = logging.getLogger(__name__)


class SocketLike(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class RelayConnection:
    """One accepted controller socket.

    Sends are serialized with a lock because forwarding tasks report
    errors concurrently with the handler's own replies.
    """

    def __init__(self, socket: SocketLike, identity: str) -> None:
        self.socket = socket
        self.identity = identity
        self.closed = False
        self._send_lock = asyncio.Lock()

    async def send_event(self, event: ServerEvent) -> bool:
        if self.closed:
            logger.debug("Dropping %s event for closed connection %s", event.type, self.identity)
            return False
        async with self._send_lock:
            try:
                await self.socket.send_text(encode_event(event))
            except Exception as exc:
                # The peer may vanish between the check and the write.
                logger.info("Could not send %s event to %s: %s", event.type, self.identity, exc)
                self.closed = True
                return False
        return True

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.socket.close()
        except Exception as exc:
            logger.debug("Close of %s failed: %s", self.identity, exc)

    def __repr__(self) -> str:
        return f"RelayConnection(identity={self.identity!r}, closed={self.closed})"


class RelayHub:
    """Coordinates controller connections and command forwarding."""

    def __init__(
        self,
        target: TargetAddress,
        forwarder: EcpForwarder,
        registry: ConnectionRegistry[RelayConnection] | None = None,
    ) -> None:
        self.target = target
        self.forwarder = forwarder
        self.registry: ConnectionRegistry[RelayConnection] = (
            registry if registry is not None else ConnectionRegistry()
        )
        self._inflight: set[asyncio.Task[Any]] = set()
        self.started_at = time.monotonic()

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    # -------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------

    async def accept(self, socket: SocketLike, identity: str) -> RelayConnection:
        """Register a new socket and send it the current config."""
        connection = RelayConnection(socket, identity)
        stale = self.registry.register(identity, connection)
        if stale is not None:
            logger.info("Closing stale connection from %s", identity)
            await stale.close()

        logger.info("Controller connected from %s (%d active)", identity, len(self.registry))
        logger.info("Roku IP is currently: %s", self.target.get() or "(NOT SET)")
        await connection.send_event(
            ConfigEvent(roku_ip=self.target.get(), server_time=int(time.time() * 1000))
        )
        return connection

    def release(self, connection: RelayConnection) -> None:
        """Forget a closed socket unless a newer one already replaced it."""
        connection.closed = True
        self.registry.unregister(connection.identity, connection)
        logger.info("Controller disconnected (%d remaining)", len(self.registry))

    # -------------------------------------------------------------------
    # Inbound messages
    # -------------------------------------------------------------------

    async def handle_message(self, connection: RelayConnection, raw: str | bytes) -> None:
        logger.debug("WS message received from %s: %r", connection.identity, raw)
        message = parse_inbound(raw)
        if message is None:
            return

        if isinstance(message, SetTargetMessage):
            address = self.target.set(message.ip)
            await connection.send_event(ConfigEvent(roku_ip=address))
            return

        self.dispatch(connection, message)

    def dispatch(self, connection: RelayConnection, command: Command) -> asyncio.Task[None]:
        """Start forwarding ``command`` without waiting for the result."""
        logger.debug(
            "Forwarding %s -> %s", command.path, self.target.get() or "(NO IP!)"
        )
        task = asyncio.create_task(self._forward(connection, command))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _forward(self, connection: RelayConnection, command: Command) -> None:
        try:
            await self.forwarder.send(command)
        except ForwardError as exc:
            logger.error("%s failed: %s", command.path, exc)
            await connection.send_event(ErrorEvent(message=f"Roku unreachable: {exc}"))
        except Exception as exc:
            logger.exception("Unexpected error forwarding %s", command.path)
            await connection.send_event(ErrorEvent(message=f"Roku unreachable: {exc}"))

    async def drain(self) -> None:
        """Wait for every in-flight forward to finish."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._inflight):
            task.cancel()
        await self.drain()
        await self.forwarder.aclose()
