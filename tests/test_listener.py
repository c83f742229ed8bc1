import pytest

from device_relay import texts
from device_relay.core.registry import DeviceRegistry
from device_relay.transport.listener import LIVENESS_TOKEN, TransportListener

from conftest import FakeAgent


class _Notes:
    def __init__(self):
        self.items = []

    async def __call__(self, text):
        self.items.append(text)


@pytest.fixture
def notes():
    return _Notes()


@pytest.fixture
def listener(notes):
    return TransportListener(DeviceRegistry(), notes, heartbeat_interval_s=3600)


@pytest.mark.asyncio
async def test_connect_registers_and_notifies(listener, notes):
    agent = FakeAgent()
    device_id = await listener.on_connect(agent, {"model": "Pixel 7", "battery": "80"})

    assert agent.device_id == device_id
    assert listener.open_channels() == [agent]
    assert listener._registry.get(device_id).metadata["battery"] == "80"
    assert notes.items == [texts.device_connected(listener._registry.get(device_id).metadata)]


@pytest.mark.asyncio
async def test_close_uses_connect_time_snapshot(listener, notes):
    agent = FakeAgent()
    device_id = await listener.on_connect(agent, {"model": "Pixel 7"})
    snapshot = dict(listener._registry.get(device_id).metadata)

    await listener.on_close(agent, snapshot)

    assert listener._registry.get(device_id) is None
    assert listener.open_channels() == []
    assert notes.items[-1] == texts.device_disconnected(snapshot)


@pytest.mark.asyncio
async def test_close_without_registration_is_silent(listener, notes):
    await listener.on_close(FakeAgent(), {})
    assert notes.items == []


@pytest.mark.asyncio
async def test_broadcast_failure_keeps_device_registered(listener):
    healthy, broken = FakeAgent(), FakeAgent(fail=True)
    await listener.on_connect(healthy, {"model": "a"})
    broken_id = await listener.on_connect(broken, {"model": "b"})

    await listener.broadcast_liveness()

    assert healthy.sent == [LIVENESS_TOKEN]
    assert listener._registry.get(broken_id) is not None
    assert len(listener.open_channels()) == 2


@pytest.mark.asyncio
async def test_start_stop_heartbeat(listener):
    listener.start()
    assert listener._heartbeat_task is not None
    await listener.stop()
    assert listener._heartbeat_task is None


@pytest.mark.asyncio
async def test_second_close_is_a_noop(listener, notes):
    agent = FakeAgent()
    await listener.on_connect(agent, {"model": "Pixel 7"})

    await listener.on_close(agent, {"model": "Pixel 7"})
    await listener.on_close(agent, {"model": "Pixel 7"})

    assert agent.device_id is None
    assert [n for n in notes.items if n.startswith("°• Device disconnected")] == [
        texts.device_disconnected({"model": "Pixel 7"})
    ]
