"""Tests for the relay hub: connection lifecycle and message handling."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from rokurelay.domain.models import Command, ErrorEvent
from rokurelay.relay.forwarder import EcpForwarder
from rokurelay.relay.hub import RelayConnection, RelayHub
from rokurelay.relay.target import TargetAddress


def hub_with_transport(
    handler, roku_ip: str = "192.168.1.40", timeout: float = 0.5
) -> RelayHub:
    target = TargetAddress(roku_ip)
    forwarder = EcpForwarder(target, timeout=timeout, transport=httpx.MockTransport(handler))
    return RelayHub(target=target, forwarder=forwarder)


class TestAccept:
    @pytest.mark.asyncio
    async def test_sends_config_snapshot(self, hub: RelayHub, make_socket) -> None:
        hub.target.set("10.0.0.5")
        socket = make_socket()
        await hub.accept(socket, "10.0.0.7")
        assert len(socket.events) == 1
        event = socket.events[0]
        assert event["type"] == "config"
        assert event["rokuIp"] == "10.0.0.5"
        assert isinstance(event["serverTime"], int)

    @pytest.mark.asyncio
    async def test_snapshot_with_no_target(self, hub: RelayHub, make_socket) -> None:
        socket = make_socket()
        await hub.accept(socket, "10.0.0.7")
        assert socket.events[0]["rokuIp"] == ""

    @pytest.mark.asyncio
    async def test_second_connection_from_same_identity_evicts_first(
        self, hub: RelayHub, make_socket
    ) -> None:
        first_socket, second_socket = make_socket(), make_socket()
        first = await hub.accept(first_socket, "10.0.0.7")
        second = await hub.accept(second_socket, "10.0.0.7")

        assert first_socket.closed
        assert first.closed
        assert not second_socket.closed
        assert hub.registry.get("10.0.0.7") is second
        assert len(hub.registry) == 1

    @pytest.mark.asyncio
    async def test_stale_release_keeps_newer_connection(
        self, hub: RelayHub, make_socket
    ) -> None:
        first = await hub.accept(make_socket(), "10.0.0.7")
        second = await hub.accept(make_socket(), "10.0.0.7")
        hub.release(first)
        assert hub.registry.get("10.0.0.7") is second
        hub.release(second)
        assert len(hub.registry) == 0

    @pytest.mark.asyncio
    async def test_other_identities_untouched(self, hub: RelayHub, make_socket) -> None:
        a_socket = make_socket()
        await hub.accept(a_socket, "10.0.0.7")
        await hub.accept(make_socket(), "10.0.0.8")
        assert not a_socket.closed
        assert len(hub.registry) == 2


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_set_target_echoes_config(self, hub: RelayHub, make_socket) -> None:
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        await hub.handle_message(conn, '{"type": "set-roku-ip", "ip": "192.168.1.99"}')
        assert hub.target.get() == "192.168.1.99"
        assert socket.events[-1] == {"type": "config", "rokuIp": "192.168.1.99"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            '{"action": "keydown", "key": "Power"}',
            '{"action": "press", "key": "Left"}',
            '{"action": "k-e-y-d-o-w-n", "key": "Left"}',
            '{"action": "-keyup-", "key": "Left"}',
            '{"action": "keypr-ess", "key": "Left"}',
            '{"type": "set-roku-ip", "ip": ""}',
        ],
    )
    async def test_invalid_input_is_dropped_silently(
        self, make_socket, settle_tasks, raw: str
    ) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        hub = hub_with_transport(handler)
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        await hub.handle_message(conn, raw)
        await settle_tasks()
        await hub.drain()

        assert requests == []
        assert len(socket.sent) == 1  # only the config snapshot
        assert hub.target.get() == "192.168.1.40"
        assert not socket.closed

    @pytest.mark.asyncio
    async def test_connection_survives_malformed_frame(self, make_socket) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        hub = hub_with_transport(handler)
        conn = await hub.accept(make_socket(), "10.0.0.7")
        await hub.handle_message(conn, "garbage")
        await hub.handle_message(conn, '{"action": "keydown", "key": "Left"}')
        await hub.drain()
        assert [r.url.path for r in requests] == ["/keydown/Left"]

    @pytest.mark.asyncio
    async def test_successful_forward_sends_nothing_back(self, make_socket) -> None:
        hub = hub_with_transport(lambda request: httpx.Response(200))
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        await hub.handle_message(conn, '{"action": "key-press", "key": "Home"}')
        await hub.drain()
        assert len(socket.sent) == 1

    @pytest.mark.asyncio
    async def test_no_target_reported_within_one_tick(
        self, hub: RelayHub, make_socket
    ) -> None:
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        await hub.handle_message(conn, '{"action": "keydown", "key": "Left"}')
        await asyncio.sleep(0)
        assert socket.events[-1] == {
            "type": "error",
            "message": "Roku unreachable: No Roku IP configured",
        }

    @pytest.mark.asyncio
    async def test_timeout_reported_and_registry_consistent(self, make_socket) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        hub = hub_with_transport(handler, timeout=0.05)
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        await hub.handle_message(conn, '{"action": "keydown", "key": "Left"}')
        await hub.drain()

        assert "timed out" in socket.events[-1]["message"]
        assert hub.registry.get("10.0.0.7") is conn
        assert hub.inflight == 0

    @pytest.mark.asyncio
    async def test_unexpected_forwarder_failure_reported(self, make_socket) -> None:
        class BrokenForwarder(EcpForwarder):
            async def send(self, command):
                raise RuntimeError("client closed")

        target = TargetAddress("192.168.1.40")
        hub = RelayHub(target=target, forwarder=BrokenForwarder(target))
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        task = hub.dispatch(conn, Command(action="keydown", key="Left"))
        await hub.drain()

        assert task.done() and task.exception() is None
        assert socket.events[-1] == {
            "type": "error",
            "message": "Roku unreachable: client closed",
        }
        assert hub.inflight == 0

    @pytest.mark.asyncio
    async def test_forwards_run_concurrently(self, make_socket, wait_until) -> None:
        arrived: list[str] = []
        gate = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            arrived.append(request.url.path)
            await gate.wait()
            return httpx.Response(200)

        hub = hub_with_transport(handler)
        a = await hub.accept(make_socket(), "10.0.0.7")
        b = await hub.accept(make_socket(), "10.0.0.8")
        await hub.handle_message(a, '{"action": "keydown", "key": "Left"}')
        await hub.handle_message(a, '{"action": "keydown", "key": "Right"}')
        await hub.handle_message(b, '{"action": "keydown", "key": "Up"}')

        await wait_until(lambda: len(arrived) == 3)
        assert hub.inflight == 3
        gate.set()
        await hub.drain()
        assert hub.inflight == 0

    @pytest.mark.asyncio
    async def test_error_for_closed_connection_is_discarded(
        self, hub: RelayHub, make_socket
    ) -> None:
        socket = make_socket()
        conn = await hub.accept(socket, "10.0.0.7")
        await hub.handle_message(conn, '{"action": "keydown", "key": "Left"}')
        hub.release(conn)
        await hub.drain()
        assert len(socket.sent) == 1


class TestRelayConnection:
    @pytest.mark.asyncio
    async def test_send_failure_marks_closed(self, make_socket) -> None:
        socket = make_socket()
        conn = RelayConnection(socket, "10.0.0.7")
        socket.closed = True
        assert await conn.send_event(ErrorEvent(message="x")) is False
        assert conn.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_socket) -> None:
        socket = make_socket()
        conn = RelayConnection(socket, "10.0.0.7")
        await conn.close()
        await conn.close()
        assert socket.closed
        assert "closed=True" in repr(conn)
