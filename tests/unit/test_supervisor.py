"""Unit tests for the connection supervisor.

Covers the connect/retry state machine, queue flushing on connect,
inbound routing to the dispatcher, reconnection and shutdown.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from cycletls import (
    ChannelClosedError,
    ChannelState,
    ConnectionSupervisor,
    MockConnector,
    ResponseDispatcher,
)


def make_supervisor(connector: MockConnector, **kwargs) -> tuple[ConnectionSupervisor, ResponseDispatcher]:
    dispatcher = ResponseDispatcher()
    supervisor = ConnectionSupervisor(
        "127.0.0.1",
        9119,
        dispatcher,
        connector,
        reconnect_delay=kwargs.pop("reconnect_delay", 0.01),
        flush_interval=kwargs.pop("flush_interval", 0.01),
    )
    return supervisor, dispatcher


class TestConnect:
    """Tests for establishing the channel."""

    def test_initial_state(self) -> None:
        supervisor, _ = make_supervisor(MockConnector())

        assert supervisor.state == ChannelState.DISCONNECTED
        assert supervisor.is_connected is False
        assert supervisor.is_ready is False

    @pytest.mark.asyncio
    async def test_connects_and_signals_ready(self) -> None:
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector)

        supervisor.start()
        await asyncio.wait_for(supervisor.wait_ready(), timeout=1.0)

        assert supervisor.state == ChannelState.CONNECTED
        assert connector.attempts == [("127.0.0.1", 9119)]
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_retries_until_connected(self) -> None:
        """Three refused connections, then success; nothing is failed."""
        connector = MockConnector(fail_times=3)
        supervisor, dispatcher = make_supervisor(connector)
        pending = dispatcher.register("req_1")

        supervisor.start()
        await asyncio.wait_for(supervisor.wait_ready(), timeout=1.0)

        assert supervisor.state == ChannelState.CONNECTED
        assert supervisor.connect_attempts == 4
        assert len(connector.attempts) == 4
        assert not pending.done()
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector)

        supervisor.start()
        supervisor.start()
        await asyncio.wait_for(supervisor.wait_ready(), timeout=1.0)

        assert len(connector.attempts) == 1
        await supervisor.shutdown()


class TestSend:
    """Tests for sending and queueing frames."""

    @pytest.mark.asyncio
    async def test_send_when_connected_writes_immediately(self) -> None:
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector)
        supervisor.start()
        await supervisor.wait_ready()

        await supervisor.send('{"requestId": "a"}')

        assert connector.transport.sent == ['{"requestId": "a"}']
        assert len(supervisor.queue) == 0
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_send_before_connect_is_queued(self) -> None:
        supervisor, _ = make_supervisor(MockConnector())

        await supervisor.send("a")

        assert supervisor.queue.snapshot() == ["a"]
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_queued_frames_flushed_in_order(self) -> None:
        """Frames sent while disconnected go out FIFO once connected."""
        connector = MockConnector(fail_times=2)
        supervisor, _ = make_supervisor(connector)
        frames = [json.dumps({"requestId": str(i)}) for i in range(5)]
        for frame in frames:
            await supervisor.send(frame)

        supervisor.start()
        await asyncio.wait_for(supervisor.wait_ready(), timeout=1.0)

        assert connector.transport.sent == frames
        assert len(supervisor.queue) == 0
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_send_during_outage_is_queued(self, eventually) -> None:
        """A dropped connection queues new frames instead of failing them."""
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector, reconnect_delay=0.05)
        supervisor.start()
        await supervisor.wait_ready()
        first = connector.transport

        first.drop()
        await eventually(lambda: supervisor.state != ChannelState.CONNECTED)
        await supervisor.send("during-outage")

        await eventually(lambda: len(connector.transports) == 2)
        await eventually(lambda: connector.transport.sent == ["during-outage"])
        assert first.sent == []
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_send_after_shutdown_raises(self) -> None:
        supervisor, _ = make_supervisor(MockConnector())
        await supervisor.shutdown()

        with pytest.raises(ChannelClosedError):
            await supervisor.send("a")


class TestInbound:
    """Tests for routing inbound frames."""

    @pytest.mark.asyncio
    async def test_frames_dispatched_by_request_id(self) -> None:
        connector = MockConnector()
        supervisor, dispatcher = make_supervisor(connector)
        future = dispatcher.register("req_1")
        supervisor.start()
        await supervisor.wait_ready()

        connector.transport.inject({"RequestID": "req_1", "Status": 200})
        message = await asyncio.wait_for(future, timeout=1.0)

        assert message["Status"] == 200
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_malformed_frames_dropped(self) -> None:
        """Non-JSON and non-object frames do not break the channel."""
        connector = MockConnector()
        supervisor, dispatcher = make_supervisor(connector)
        future = dispatcher.register("req_1")
        supervisor.start()
        await supervisor.wait_ready()

        connector.transport.inject("not json")
        connector.transport.inject("[1, 2, 3]")
        connector.transport.inject({"RequestID": "orphan", "Status": 200})
        connector.transport.inject({"RequestID": "req_1", "Status": 200})
        await asyncio.wait_for(future, timeout=1.0)

        assert supervisor.state == ChannelState.CONNECTED
        assert len(connector.transports) == 1
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_binary_frames(self) -> None:
        """Undecodable binary frames are dropped; UTF-8 ones are dispatched."""
        connector = MockConnector()
        supervisor, dispatcher = make_supervisor(connector)
        future = dispatcher.register("req_1")
        supervisor.start()
        await supervisor.wait_ready()

        connector.transport.inject(b"\xff\xfe garbage")
        connector.transport.inject(json.dumps({"RequestID": "req_1", "Status": 201}).encode())
        message = await asyncio.wait_for(future, timeout=1.0)

        assert message["Status"] == 201
        assert supervisor.state == ChannelState.CONNECTED
        assert len(connector.transports) == 1
        await supervisor.shutdown()


class TestReconnect:
    """Tests for recovery after connection loss."""

    @pytest.mark.asyncio
    async def test_reconnects_after_drop(self, eventually) -> None:
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector)
        supervisor.start()
        await supervisor.wait_ready()

        connector.transport.drop()
        await eventually(lambda: len(connector.transports) == 2)
        await eventually(lambda: supervisor.state == ChannelState.CONNECTED)

        assert not connector.transports[0].is_open
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_reconnects_after_peer_close(self, eventually) -> None:
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector)
        supervisor.start()
        await supervisor.wait_ready()

        await connector.transport.close()
        await eventually(lambda: len(connector.transports) == 2)
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_pending_requests_survive_reconnect(self, eventually) -> None:
        connector = MockConnector()
        supervisor, dispatcher = make_supervisor(connector)
        future = dispatcher.register("req_1")
        supervisor.start()
        await supervisor.wait_ready()

        connector.transport.drop()
        await eventually(lambda: len(connector.transports) == 2)
        connector.transport.inject({"RequestID": "req_1", "Status": 200})

        assert (await asyncio.wait_for(future, timeout=1.0))["Status"] == 200
        await supervisor.shutdown()


class TestShutdown:
    """Tests for shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_closes_transport(self) -> None:
        connector = MockConnector()
        supervisor, _ = make_supervisor(connector)
        supervisor.start()
        await supervisor.wait_ready()

        await supervisor.shutdown()

        assert supervisor.state == ChannelState.CLOSED
        assert not connector.transport.is_open

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_backoff(self) -> None:
        """A long reconnect delay does not hold up shutdown."""
        connector = MockConnector(fail_times=1000)
        supervisor, _ = make_supervisor(connector, reconnect_delay=60)
        supervisor.start()
        await asyncio.sleep(0.01)

        await asyncio.wait_for(supervisor.shutdown(), timeout=1.0)

        assert supervisor.state == ChannelState.CLOSED
        assert len(connector.attempts) == 1

    @pytest.mark.asyncio
    async def test_no_dispatch_after_shutdown(self) -> None:
        connector = MockConnector()
        supervisor, dispatcher = make_supervisor(connector)
        future = dispatcher.register("req_1")
        supervisor.start()
        await supervisor.wait_ready()
        transport = connector.transport

        await supervisor.shutdown()
        transport.inject({"RequestID": "req_1", "Status": 200})
        await asyncio.sleep(0.02)

        assert not future.done()

    @pytest.mark.asyncio
    async def test_shutdown_returns_unsent(self) -> None:
        supervisor, _ = make_supervisor(MockConnector())
        await supervisor.send("a")

        assert await supervisor.shutdown() == ["a"]
        assert await supervisor.shutdown() == []

    @pytest.mark.asyncio
    async def test_start_after_shutdown_raises(self) -> None:
        supervisor, _ = make_supervisor(MockConnector())
        await supervisor.shutdown()

        with pytest.raises(ChannelClosedError):
            supervisor.start()
