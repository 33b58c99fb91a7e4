import asyncio

import pytest

from core import ConnectionManager, ConnectionState
from core.exceptions import LedgerConnectionError
from events import EventBus, EventTypes
from fakes import FakeConnection, settle


def test_concurrent_callers_share_one_connect():
    async def scenario():
        connection = FakeConnection(delay=0.01)
        manager = ConnectionManager(connection)

        await asyncio.gather(*[manager.ensure_connected() for _ in range(10)])

        assert connection.connect_calls == 1
        assert manager.state == ConnectionState.CONNECTED
        assert manager.get_stats()["connect_attempts"] == 1

    asyncio.run(scenario())


def test_connected_handle_returns_without_connecting():
    async def scenario():
        connection = FakeConnection()
        connection.connected = True
        manager = ConnectionManager(connection)

        await manager.ensure_connected()

        assert connection.connect_calls == 0
        assert manager.is_connected

    asyncio.run(scenario())


def test_failure_reaches_every_waiter_and_later_call_retries():
    async def scenario():
        connection = FakeConnection(delay=0.01, fail_times=1)
        manager = ConnectionManager(connection)

        results = await asyncio.gather(*[manager.ensure_connected() for _ in range(5)],
                                       return_exceptions=True)

        assert all(isinstance(r, LedgerConnectionError) for r in results)
        assert connection.connect_calls == 1
        assert manager.state == ConnectionState.IDLE
        assert manager.last_error == "connection refused"

        await manager.ensure_connected()

        assert connection.connect_calls == 2
        assert manager.state == ConnectionState.CONNECTED
        assert manager.get_stats()["connect_failures"] == 1

    asyncio.run(scenario())


def test_cancelled_waiter_does_not_cancel_shared_attempt():
    async def scenario():
        connection = FakeConnection(delay=0.02)
        manager = ConnectionManager(connection)

        first = asyncio.ensure_future(manager.ensure_connected())
        second = asyncio.ensure_future(manager.ensure_connected())
        await settle()

        first.cancel()
        await second

        assert first.cancelled()
        assert connection.connected
        assert connection.connect_calls == 1

    asyncio.run(scenario())


def test_connect_timeout_raises_connection_error():
    async def scenario():
        connection = FakeConnection(delay=1.0)
        manager = ConnectionManager(connection, connect_timeout=0.01)

        with pytest.raises(LedgerConnectionError, match="timed out"):
            await manager.ensure_connected()

        assert manager.state == ConnectionState.IDLE

    asyncio.run(scenario())


def test_state_changes_are_broadcast():
    async def scenario():
        bus = EventBus()
        seen = []
        bus.on(EventTypes.CONNECTION_STATE_CHANGED, lambda event: seen.append(event.data["to_state"]))
        callback_states = []

        manager = ConnectionManager(FakeConnection(), bus=bus, on_state_change=callback_states.append)
        await manager.ensure_connected()
        await manager.disconnect()

        assert seen == ["connecting", "connected", "idle"]
        assert callback_states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.IDLE]

    asyncio.run(scenario())


def test_dropped_connection_is_noticed_without_reads_changing_state():
    async def scenario():
        bus = EventBus()
        seen = []
        bus.on(EventTypes.CONNECTION_STATE_CHANGED, lambda event: seen.append(event.data["to_state"]))
        connection = FakeConnection()
        manager = ConnectionManager(connection, bus=bus)
        await manager.ensure_connected()

        connection.connected = False

        assert not manager.is_connected
        assert manager.state == ConnectionState.CONNECTED
        assert seen == ["connecting", "connected"]

        assert manager.get_stats()["state"] == "idle"
        assert seen[-1] == "idle"

        await manager.ensure_connected()
        assert connection.connect_calls == 2
        assert manager.state == ConnectionState.CONNECTED

    asyncio.run(scenario())


def test_disconnect_closes_handle():
    async def scenario():
        connection = FakeConnection()
        manager = ConnectionManager(connection)
        await manager.ensure_connected()

        await manager.disconnect()

        assert connection.close_calls == 1
        assert not manager.is_connected

    asyncio.run(scenario())


def test_reconnect_during_disconnect_keeps_one_attempt_in_flight():
    async def scenario():
        connection = FakeConnection(delay=0.05, cancel_delay=0.01)
        manager = ConnectionManager(connection)

        first = asyncio.ensure_future(manager.ensure_connected())
        await settle()
        closing = asyncio.ensure_future(manager.disconnect())
        await settle()

        second = asyncio.ensure_future(manager.ensure_connected())
        await asyncio.sleep(0.02)
        third = asyncio.ensure_future(manager.ensure_connected())

        await asyncio.gather(first, closing, second, third, return_exceptions=True)

        assert connection.max_in_flight == 1
        assert connection.connect_calls == 2
        assert manager.is_connected
        assert manager.state == ConnectionState.CONNECTED
        assert not manager.get_stats()["attempt_in_flight"]

    asyncio.run(scenario())
