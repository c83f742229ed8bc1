from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from device_relay.broker import Broker
from device_relay.channel.base import ControlChannel
from device_relay.core.config import Settings

OPERATOR = "oc_operator"


class RecordingChannel(ControlChannel):
    """记录所有调用的控制通道替身；fail_on 中的方法会抛异常。"""

    def __init__(self, fail_on: Set[str] | None = None) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_on = fail_on or set()
        self._seq = 0

    def _record(self, name: str, **kwargs: Any) -> Optional[str]:
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")
        self._seq += 1
        return f"m{self._seq}"

    @property
    def last_id(self) -> str:
        return f"m{self._seq}"

    def of(self, name: str) -> List[Dict[str, Any]]:
        return [kw for n, kw in self.calls if n == name]

    def texts(self) -> List[str]:
        return [kw["text"] for kw in self.of("send_text")]

    async def send_text(self, chat_id, text, *, keyboard=None, force_reply=False, menu=False):
        return self._record(
            "send_text", chat_id=chat_id, text=text, keyboard=keyboard, force_reply=force_reply, menu=menu
        )

    async def edit_text(self, chat_id, message_id, text, *, keyboard=None):
        self._record("edit_text", chat_id=chat_id, message_id=message_id, text=text, keyboard=keyboard)

    async def delete_message(self, chat_id, message_id):
        self._record("delete_message", chat_id=chat_id, message_id=message_id)

    async def send_document(self, chat_id, file_path, *, caption=None):
        return self._record("send_document", chat_id=chat_id, file_path=file_path, caption=caption)

    async def send_location(self, chat_id, lat, lon, *, caption=None):
        return self._record("send_location", chat_id=chat_id, lat=lat, lon=lon, caption=caption)


class FakeAgent:
    """设备连接替身：记录收到的指令。"""

    def __init__(self, fail: bool = False) -> None:
        self.device_id: Optional[str] = None
        self.sent: List[str] = []
        self.fail = fail

    async def send(self, text: str) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(text)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        operator_chat_id=OPERATOR,
        heartbeat_interval_s=3600,
        upload_dir=str(tmp_path / "uploads"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def broker(settings, channel) -> Broker:
    return Broker(settings, channel)


async def connect(broker: Broker, model: str = "Pixel 7", **headers: str) -> Tuple[str, FakeAgent]:
    agent = FakeAgent()
    device_id = await broker.listener.on_connect(agent, {"model": model, **headers})
    return device_id, agent
