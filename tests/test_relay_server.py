import asyncio
import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from device_relay import texts
from device_relay.relay_server import create_app

from conftest import OPERATOR


@pytest.fixture
def client(settings, channel):
    with TestClient(create_app(settings, channel)) as c:
        yield c


def _card(token, chat_id=OPERATOR, message_id="om_card"):
    return {"open_chat_id": chat_id, "open_message_id": message_id, "action": {"value": {"token": token}}}


def _message(text, message_id="om_1", parent_id=None):
    message = {
        "chat_id": OPERATOR,
        "message_id": message_id,
        "message_type": "text",
        "content": json.dumps({"text": text}),
    }
    if parent_id:
        message["parent_id"] = parent_id
    return {"header": {"event_type": "im.message.receive_v1"}, "event": {"message": message}}


def _flush(client):
    # 卡片回调会等待自己的事件处理完，之前排队的事件此时也已处理完
    client.post("/feishu/card", json=_card("noop"))


def test_health_and_challenge(client):
    assert client.get("/health").json() == {"status": "healthy", "devices": 0}
    resp = client.post("/feishu/event", json={"type": "url_verification", "challenge": "c-1"})
    assert resp.json() == {"challenge": "c-1"}


def test_card_action_reaches_connected_agent(client, channel):
    broker = client.app.state.broker
    with client.websocket_connect("/ws", headers={"model": "Pixel 7", "battery": "42"}) as ws:
        ((device_id, device),) = broker.registry.list()
        assert device.metadata["battery"] == "42"

        resp = client.post("/feishu/card", json=_card(f"device_info:{device_id}"))
        assert resp.status_code == 200
        assert ws.receive_text() == "device_info"

    assert texts.STATUS_PROCESSING in channel.texts()


def test_unauthorized_card_gets_toast(client):
    resp = client.post("/feishu/card", json=_card("device:x", chat_id="oc_stranger"))
    assert resp.json() == {"toast": {"type": "info", "content": texts.TOAST_UNAUTHORIZED}}


def test_operator_messages_are_deduplicated(client, channel):
    client.post("/feishu/event", json=_message("/start"))
    client.post("/feishu/event", json=_message("/start"))
    _flush(client)

    assert channel.texts().count(texts.WELCOME) == 1


def test_upload_text_is_relayed_in_order(client, channel):
    resp = client.post("/uploadText", json={"text": "hello operator"}, headers={"model": "Pixel 7"})
    assert resp.json() == {"resultCode": 0, "resultMsg": "OK"}
    _flush(client)

    assert channel.texts()[-1] == f"{texts.message_from('Pixel 7')}\n\nhello operator"


def test_upload_file_is_stored_and_forwarded(client, channel, settings):
    resp = client.post(
        "/uploadFile",
        files={"file": ("notes 1.txt", b"content")},
        headers={"model": "Pixel 7"},
    )
    assert resp.status_code == 200
    stored = Path(settings.upload_dir) / "notes%201.txt"
    assert stored.read_bytes() == b"content"

    _flush(client)
    assert channel.of("send_document")[0]["file_path"] == str(stored)


def test_upload_location(client, channel):
    client.post("/uploadLocation", json={"lat": 48.85, "lon": 2.35}, headers={"model": "Pixel 7"})
    _flush(client)

    sent = channel.of("send_location")[0]
    assert (sent["lat"], sent["lon"]) == (48.85, 2.35)


def test_list_files_for_unknown_device(client):
    resp = client.post("/listFiles", json={"device_id": "nope", "path": "/", "entries": []})
    assert resp.status_code == 404


def test_list_files_renders_browser(client, channel):
    broker = client.app.state.broker
    with client.websocket_connect("/ws", headers={"model": "Pixel 7"}):
        ((device_id, _),) = broker.registry.list()
        resp = client.post(
            "/listFiles",
            json={"device_id": device_id, "path": "/sdcard", "entries": [{"name": "DCIM", "is_dir": True}]},
        )
        assert resp.status_code == 200
        _flush(client)

    (listing,) = [kw for kw in channel.of("send_text") if kw["keyboard"]]
    assert listing["keyboard"][0][0].token == f"dir:{device_id}:DCIM"


def test_upload_file_is_written_off_the_event_loop(client, settings, monkeypatch):
    offloaded = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
    resp = client.post("/uploadFile", files={"file": ("log.txt", b"abc")}, headers={"model": "Pixel 7"})

    assert resp.status_code == 200
    stored = Path(settings.upload_dir) / "log.txt"
    assert stored.read_bytes() == b"abc"
    assert any(getattr(f, "__name__", "") == "write_bytes" for f in offloaded)
