import pytest

from device_relay import texts
from device_relay.core.dispatcher import DeliveryResult, Dispatcher

from conftest import OPERATOR, FakeAgent, RecordingChannel


def _dispatcher(agents, channel):
    return Dispatcher(lambda: list(agents), channel)


def _agents(*ids):
    out = []
    for device_id in ids:
        agent = FakeAgent()
        agent.device_id = device_id
        out.append(agent)
    return out


@pytest.mark.asyncio
async def test_delivers_to_exactly_one_channel():
    channel = RecordingChannel()
    a, b, c = _agents("d1", "d2", "d3")
    result = await _dispatcher([a, b, c], channel).deliver("d2", "vibrate", OPERATOR)

    assert result is DeliveryResult.DELIVERED
    assert (a.sent, b.sent, c.sent) == ([], ["vibrate"], [])
    assert channel.texts() == [texts.STATUS_PROCESSING]


@pytest.mark.asyncio
async def test_absent_device_reports_not_found():
    channel = RecordingChannel()
    (a,) = _agents("d1")
    result = await _dispatcher([a], channel).deliver("missing", "vibrate", OPERATOR)

    assert result is DeliveryResult.NOT_FOUND
    assert a.sent == []
    assert channel.texts() == [texts.STATUS_NOT_FOUND]


@pytest.mark.asyncio
async def test_prior_message_is_deleted_before_status():
    channel = RecordingChannel()
    (a,) = _agents("d1")
    await _dispatcher([a], channel).deliver("d1", "torch_on", OPERATOR, message_id="menu-7")

    assert [name for name, _ in channel.calls] == ["delete_message", "send_text"]
    assert channel.of("delete_message")[0]["message_id"] == "menu-7"


@pytest.mark.asyncio
async def test_send_failure_is_swallowed():
    channel = RecordingChannel()
    broken = FakeAgent(fail=True)
    broken.device_id = "d1"
    result = await _dispatcher([broken], channel).deliver("d1", "vibrate", OPERATOR)

    assert result is DeliveryResult.DELIVERED
    assert channel.texts() == [texts.STATUS_PROCESSING]
