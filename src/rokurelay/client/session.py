"""Controller-side session to the relay.

Keeps one logical WebSocket session alive across network drops:

    idle -> connecting -> connected -> disconnected -> connecting -> ...

Reconnects are paced by ``ReconnectBackoff`` and only one connection
attempt, one live socket and one pending reconnect timer exist at any
time. Sending is fire-and-forget: commands are handed to a sender task
and dropped outright when the session is not connected.

Example usage::

    async with SessionManager("ws://192.168.1.50:3002", roku_ip="192.168.1.40") as session:
        await session.wait_connected(timeout=5)
        session.press("Left")
        session.release("Left")
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

import websockets

from rokurelay.client.backoff import ReconnectBackoff
from rokurelay.domain.models import (
    Action,
    ConfigEvent,
    ConnectionStatus,
    ErrorEvent,
    Key,
    SetTargetMessage,
    parse_event,
)

logger = logging.getLogger(__name__)


class RelaySocket(Protocol):
    """The subset of a websockets client connection the session uses."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> Any: ...


ConnectFactory = Callable[[str], Awaitable[RelaySocket]]


async def _websockets_connect(url: str) -> RelaySocket:
    return await websockets.connect(url)


def _wire_value(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


class SessionManager:
    """One logical, self-healing connection to a relay server."""

    def __init__(
        self,
        server_url: str = "",
        roku_ip: str = "",
        backoff: ReconnectBackoff | None = None,
        connect_factory: ConnectFactory | None = None,
        on_status_change: Callable[[ConnectionStatus], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        on_config: Callable[[ConfigEvent], None] | None = None,
    ) -> None:
        self._server_url = server_url
        self._roku_ip = roku_ip.strip()
        self._backoff = backoff or ReconnectBackoff()
        self._connect_factory = connect_factory or _websockets_connect
        self.on_status_change = on_status_change
        self.on_error = on_error
        self.on_config = on_config

        self._status = ConnectionStatus.IDLE
        self._socket: RelaySocket | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._generation = 0
        self._intentional_close = False
        self._connected = asyncio.Event()

    # -------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED and self._outbox is not None

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def roku_ip(self) -> str:
        return self._roku_ip

    @property
    def reconnect_delay(self) -> float:
        """Delay that the next scheduled reconnect will wait."""
        return self._backoff.current

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    def connect(self, server_url: str | None = None) -> bool:
        """Start a connection attempt to the relay.

        Must be called from within a running event loop. Returns False
        when nothing was started: an attempt is already in flight, or
        there is no server address.
        """
        if self._status is ConnectionStatus.CONNECTING:
            logger.debug("Connect ignored: an attempt is already in flight")
            return False

        self._cancel_reconnect()
        previous = self._discard_connection()

        if server_url is not None:
            self._server_url = server_url
        if not self._server_url:
            logger.warning("No relay address configured, not connecting")
            return False

        self._intentional_close = False
        self._generation += 1
        self._set_status(ConnectionStatus.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation, self._server_url, previous)
        )
        return True

    def reconnect(self) -> bool:
        """Reconnect now with the backoff reset to its floor."""
        self._backoff.reset()
        self._cancel_reconnect()
        return self.connect()

    async def shutdown(self) -> None:
        """Close the session for good; no reconnect will follow."""
        self._intentional_close = True
        self._cancel_reconnect()
        task = self._task
        self._discard_connection()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        self._set_status(ConnectionStatus.IDLE)
        logger.info("Session to %s closed", self._server_url or "(no relay)")

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def __aenter__(self) -> SessionManager:
        self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.shutdown()

    # -------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------

    def send_command(self, key: Key | str, action: Action | str) -> bool:
        """Hand one key event to the sender; never waits on the network.

        Returns False when the command was dropped because the session
        is not connected. Dropped commands are not queued or retried.
        """
        payload = json.dumps({"action": _wire_value(action), "key": _wire_value(key)})
        if not self.is_connected:
            logger.warning(
                "Not connected (status=%s), dropping: %s %s",
                self._status.value,
                _wire_value(action),
                _wire_value(key),
            )
            return False
        logger.debug("Sending: %s", payload)
        return self._enqueue(payload)

    def press(self, key: Key | str) -> bool:
        """Finger down on a control: always a ``keydown``."""
        return self.send_command(key, Action.KEYDOWN)

    def release(self, key: Key | str) -> bool:
        """Finger up on a control: always a ``keyup``."""
        return self.send_command(key, Action.KEYUP)

    def tap(self, key: Key | str) -> bool:
        """A discrete button press: a single ``keypress``."""
        return self.send_command(key, Action.KEYPRESS)

    def set_target(self, address: str) -> None:
        """Set the Roku the relay should forward to.

        Sent immediately when connected, otherwise on the next connect.
        """
        self._roku_ip = address.strip()
        if self._roku_ip and self.is_connected:
            self._enqueue(SetTargetMessage(ip=self._roku_ip).to_wire())

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    async def _run(
        self,
        generation: int,
        url: str,
        previous: asyncio.Task[None] | None = None,
    ) -> None:
        socket: RelaySocket | None = None
        sender: asyncio.Task[None] | None = None
        try:
            if previous is not None:
                # The superseded socket must be fully closed before dialing.
                # wait() leaves the old task alone if this one is cancelled.
                await asyncio.wait({previous})
            try:
                socket = await self._connect_factory(url)
            except Exception as exc:
                logger.warning("Connection to relay %s failed: %s", url, exc)
                return

            outbox: asyncio.Queue[str] = asyncio.Queue()
            sender = asyncio.create_task(self._send_loop(socket, outbox))
            self._socket = socket
            self._outbox = outbox
            self._backoff.reset()
            self._set_status(ConnectionStatus.CONNECTED)
            logger.info("Connected to relay server %s", url)

            if self._roku_ip:
                outbox.put_nowait(SetTargetMessage(ip=self._roku_ip).to_wire())

            try:
                async for raw in socket:
                    self._handle_event(raw)
            except Exception as exc:
                logger.info("Relay connection lost: %s", exc)
        finally:
            if sender is not None:
                sender.cancel()
            if socket is not None:
                try:
                    await socket.close()
                except Exception as exc:
                    logger.debug("Closing relay socket failed: %s", exc)
            if generation == self._generation:
                self._socket = None
                self._outbox = None
                self._task = None
                self._handle_close()

    async def _send_loop(self, socket: RelaySocket, outbox: asyncio.Queue[str]) -> None:
        while True:
            message = await outbox.get()
            try:
                await socket.send(message)
            except Exception as exc:
                logger.warning("Send to relay failed: %s", exc)
                return

    def _enqueue(self, message: str) -> bool:
        outbox = self._outbox
        if outbox is None:
            return False
        outbox.put_nowait(message)
        return True

    def _handle_event(self, raw: str | bytes) -> None:
        event = parse_event(raw)
        if isinstance(event, ErrorEvent):
            logger.warning("Relay error: %s", event.message)
            self._notify(self.on_error, event.message)
        elif isinstance(event, ConfigEvent):
            logger.info("Relay config: rokuIp=%s", event.roku_ip or "(not set)")
            self._notify(self.on_config, event)

    def _handle_close(self) -> None:
        self._set_status(ConnectionStatus.DISCONNECTED)
        if self._intentional_close:
            return
        delay = self._backoff.next_delay()
        logger.info("Reconnecting in %.2fs...", delay)
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            delay, self._reconnect_due
        )

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _discard_connection(self) -> asyncio.Task[None] | None:
        """Detach the current attempt or socket; its task closes the socket.

        Returns the cancelled task so callers can wait for the close.
        """
        task = self._task
        if task is None:
            return None
        # The superseded task must not schedule a reconnect of its own
        self._generation += 1
        self._task = None
        self._socket = None
        self._outbox = None
        self._connected.clear()
        task.cancel()
        return task

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        if status is ConnectionStatus.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()
        logger.debug("Session status: %s", status.value)
        self._notify(self.on_status_change, status)

    def _notify(self, callback: Callable[[Any], None] | None, value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Session callback %r failed", callback)
