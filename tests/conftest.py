"""Shared test fixtures for the rokurelay test suite.

Provides fake sockets for the relay hub and the controller session, so
both sides can be exercised without a network.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from rokurelay.relay.forwarder import EcpForwarder
from rokurelay.relay.hub import RelayHub
from rokurelay.relay.target import TargetAddress


# ---------------------------------------------------------------------------
# Relay-side fakes
# ---------------------------------------------------------------------------


class FakeServerSocket:
    """Stands in for a starlette WebSocket on the relay side."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True

    @property
    def events(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


# ---------------------------------------------------------------------------
# Client-side fakes
# ---------------------------------------------------------------------------


class FakeClientSocket:
    """Stands in for a websockets client connection.

    Incoming frames are pushed with ``feed``; ``drop`` ends the stream
    the way a lost connection would.
    """

    def __init__(self, close_delay: float = 0.0) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.close_delay = close_delay
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        # A real client waits for the closing handshake
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True
        self._incoming.put_nowait(None)

    def feed(self, message: str) -> None:
        self._incoming.put_nowait(message)

    def drop(self) -> None:
        self._incoming.put_nowait(None)

    def __aiter__(self) -> FakeClientSocket:
        return self

    async def __anext__(self) -> str:
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    @property
    def messages(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


class FakeConnector:
    """Connect factory that records every socket it hands out.

    ``fail`` makes the next attempts raise; ``hold`` blocks attempts
    until ``release`` is called. ``peak_open`` is the most sockets that
    were ever open at the same time.
    """

    def __init__(self, close_delay: float = 0.0) -> None:
        self.sockets: list[FakeClientSocket] = []
        self.attempts = 0
        self.failures_left = 0
        self.close_delay = close_delay
        self.peak_open = 0
        self._gate: asyncio.Event | None = None

    def fail(self, times: int) -> None:
        self.failures_left = times

    def hold(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def __call__(self, url: str) -> FakeClientSocket:
        self.attempts += 1
        if self._gate is not None:
            await self._gate.wait()
        if self.failures_left > 0:
            self.failures_left -= 1
            raise ConnectionRefusedError(f"connection to {url} refused")
        socket = FakeClientSocket(close_delay=self.close_delay)
        self.sockets.append(socket)
        self.peak_open = max(self.peak_open, len(self.open_sockets))
        return socket

    @property
    def open_sockets(self) -> list[FakeClientSocket]:
        return [s for s in self.sockets if not s.closed]


async def settle(rounds: int = 5) -> None:
    """Let pending tasks run a few scheduling ticks."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def target() -> TargetAddress:
    return TargetAddress()


@pytest.fixture
def hub(target: TargetAddress) -> RelayHub:
    """A hub whose forwarder is real but has no target yet."""
    return RelayHub(target=target, forwarder=EcpForwarder(target))


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def slow_closing_connector() -> FakeConnector:
    """Connector whose sockets take a while to finish closing."""
    return FakeConnector(close_delay=0.05)


@pytest.fixture
def make_socket() -> type[FakeServerSocket]:
    return FakeServerSocket


@pytest.fixture
def settle_tasks():
    return settle


@pytest.fixture
def wait_until():
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass."""

    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met within timeout")
            await asyncio.sleep(0.001)

    return _wait
