"""Tests for the Receiver state mapping and reconnect handling."""

import asyncio

import pytest

from pyiscp import ISCPConnectionError, Message, NotConnectedError, Receiver


class FakeConnection:
    """Stands in for pyiscp.Connection, records commands instead of sending."""

    def __init__(self, host, port, loop, update_callback, disconnect_callback, error_callback):
        self.host = host
        self.port = port
        self.update_callback = update_callback
        self.disconnect_callback = disconnect_callback
        self.error_callback = error_callback
        self.connected = False
        self.closed = False
        self.fail = False
        self.attempts = 0
        self.sent = []
        self.gate = None

    async def connect(self):
        self.attempts += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ISCPConnectionError("refused")
        self.connected = True

    def send_command(self, command):
        if not self.connected:
            raise NotConnectedError("not connected")
        self.sent.append(command)

    def close(self):
        self.connected = False
        self.closed = True


def make_receiver(host="10.0.0.5", **kwargs):
    created = []

    def factory(**params):
        conn = FakeConnection(**params)
        created.append(conn)
        return conn

    updates = []
    receiver = Receiver(
        host,
        update_callback=lambda name, value: updates.append((name, value)),
        connection_class=factory,
        **kwargs
    )
    return receiver, created, updates


def run(scenario):
    return asyncio.run(scenario())


def test_start_connects():
    async def scenario():
        receiver, created, _ = make_receiver()
        await receiver.start()
        assert receiver.available
        assert receiver.connected
        assert created[0].host == "10.0.0.5"
        assert created[0].port == 60128
        receiver.close()

    run(scenario)


def test_message_mapping():
    receiver, created, updates = make_receiver()
    notify = created[0].update_callback

    notify(Message("PWR", "01"), "10.0.0.5")
    notify(Message("MVL", "45\r"), "10.0.0.5")
    notify(Message("AMT", "00"), "10.0.0.5")
    notify(Message("SLT", "2B"), "10.0.0.5")

    assert receiver.state == {"power": True, "volume": 45, "mute": False, "input": "2B"}
    assert updates == [("power", True), ("volume", 45), ("mute", False), ("input", "2B")]


def test_unknown_and_unparsable_messages_are_ignored():
    receiver, created, updates = make_receiver()
    notify = created[0].update_callback

    notify(Message("XYZ", "01"), "10.0.0.5")
    notify(Message("MVL", "N/A"), "10.0.0.5")

    assert receiver.state == {}
    assert updates == []


@pytest.mark.parametrize(
    "call, expected",
    [
        (lambda r: r.set_power(True), "PWR01"),
        (lambda r: r.set_power(False), "PWR00"),
        (lambda r: r.set_mute(True), "AMT01"),
        (lambda r: r.set_mute(False), "AMT00"),
        (lambda r: r.set_volume(7), "MVL07"),
        (lambda r: r.set_volume(150), "MVL100"),
        (lambda r: r.set_volume(-5), "MVL00"),
        (lambda r: r.set_input("2B"), "SLT2B"),
        (lambda r: r.send("PWRQSTN"), "PWRQSTN"),
    ],
)
def test_setters_send_one_command(call, expected):
    async def scenario():
        receiver, created, _ = make_receiver()
        await receiver.start()
        await call(receiver)
        assert created[0].sent == [expected]
        receiver.close()

    run(scenario)


def test_setter_connects_lazily():
    async def scenario():
        receiver, created, _ = make_receiver()
        await receiver.set_power(True)
        assert created[0].attempts == 1
        assert created[0].sent == ["PWR01"]
        receiver.close()

    run(scenario)


def test_setter_raises_when_connect_fails():
    async def scenario():
        receiver, created, _ = make_receiver(reconnect_interval=60)
        created[0].fail = True
        with pytest.raises(NotConnectedError):
            await receiver.set_volume(20)
        assert created[0].sent == []
        receiver.close()

    run(scenario)


def test_connect_failure_retries():
    async def scenario():
        receiver, created, _ = make_receiver(reconnect_interval=0.01)
        created[0].fail = True
        await receiver.start()
        assert not receiver.available
        assert receiver.unavailable_reason == "refused"

        created[0].fail = False
        for _ in range(100):
            if receiver.available:
                break
            await asyncio.sleep(0.01)
        assert receiver.available
        assert created[0].attempts >= 2
        receiver.close()

    run(scenario)


def test_disconnect_schedules_reconnect():
    async def scenario():
        receiver, created, _ = make_receiver(reconnect_interval=0.01)
        await receiver.start()

        created[0].connected = False
        created[0].disconnect_callback("10.0.0.5")
        assert not receiver.available
        assert receiver.unavailable_reason == "connection_closed"

        for _ in range(100):
            if receiver.available:
                break
            await asyncio.sleep(0.01)
        assert receiver.available
        assert created[0].attempts == 2
        receiver.close()

    run(scenario)


def test_error_marks_unavailable():
    receiver, created, _ = make_receiver()
    created[0].error_callback(ConnectionResetError("reset by peer"), "10.0.0.5")
    assert not receiver.available
    assert receiver.unavailable_reason == "reset by peer"


def test_close_stops_reconnecting():
    async def scenario():
        receiver, created, _ = make_receiver(reconnect_interval=0.01)
        created[0].fail = True
        await receiver.start()
        receiver.close()
        attempts = created[0].attempts
        await asyncio.sleep(0.05)
        assert created[0].attempts == attempts
        assert created[0].closed

    run(scenario)


def test_no_host_is_unavailable():
    async def scenario():
        receiver, created, _ = make_receiver(host="")
        await receiver.start()
        assert not receiver.available
        assert receiver.unavailable_reason == "no_host"
        assert created[0].attempts == 0

    run(scenario)


def test_set_host_replaces_connection():
    async def scenario():
        receiver, created, _ = make_receiver(reconnect_interval=0.01)
        await receiver.start()
        await receiver.set_host("10.0.0.6")

        assert len(created) == 2
        assert created[0].closed
        assert created[1].host == "10.0.0.6"
        assert receiver.available

        # events from the old connection no longer count
        created[0].disconnect_callback("10.0.0.5")
        created[0].update_callback(Message("PWR", "01"), "10.0.0.5")
        assert receiver.available
        assert receiver.state == {}

        await receiver.set_host("10.0.0.6")
        assert len(created) == 2
        receiver.close()

    run(scenario)


def test_close_cancels_reconnect_in_progress():
    async def scenario():
        receiver, created, _ = make_receiver(reconnect_interval=0.01)
        created[0].fail = True
        await receiver.start()
        created[0].fail = False
        created[0].gate = asyncio.Event()

        for _ in range(100):
            if receiver._reconnect_task is not None:
                break
            await asyncio.sleep(0.01)
        task = receiver._reconnect_task
        assert task is not None

        receiver.close()
        for _ in range(10):
            if task.done():
                break
            await asyncio.sleep(0)
        assert task.cancelled()
        await asyncio.sleep(0)
        assert receiver._reconnect_task is None
        assert not receiver.available

    run(scenario)
