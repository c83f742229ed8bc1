"""
指令投递。

at-most-once、fire-and-forget：找到设备当前的连接就原样发送，不等待设备确认。
每次投递都会给操作员一条状态消息（处理中 / 设备不存在）；若给了上一条界面消息的ID，先尝试删除它。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable

from .. import texts
from ..channel.base import ControlChannel
from .context import request_context

logger = logging.getLogger(__name__)


class DeliveryResult(str, Enum):
    DELIVERED = "delivered"
    NOT_FOUND = "not_found"


class Dispatcher:
    def __init__(self, channels: Callable[[], Iterable[Any]], control: ControlChannel) -> None:
        # channels() 返回当前所有存活连接，每个连接带 device_id 与 async send()
        self._channels = channels
        self._control = control

    async def send(self, device_id: str | None, command: str) -> DeliveryResult:
        """只做投递，不发状态消息。"""
        if not device_id:
            return DeliveryResult.NOT_FOUND
        for channel in self._channels():
            if channel.device_id != device_id:
                continue
            try:
                await channel.send(command)
            except Exception as e:
                # 发送失败不注销设备，由连接关闭事件负责
                logger.warning(f"⚠️ 指令发送失败 ({type(e).__name__}): {e}")
            else:
                logger.info(f"📤 指令已下发: {command[:80]}")
            return DeliveryResult.DELIVERED
        logger.info(f"❓ 目标设备不在线，指令未下发: {command[:80]}")
        return DeliveryResult.NOT_FOUND

    async def deliver(
        self,
        device_id: str | None,
        command: str,
        chat_id: str,
        message_id: str | None = None,
    ) -> DeliveryResult:
        with request_context(chat_id=chat_id, device_id=device_id):
            result = await self.send(device_id, command)
            if message_id:
                await self._control.delete_message(chat_id, message_id)
            await self._control.send_text(
                chat_id,
                texts.STATUS_PROCESSING if result is DeliveryResult.DELIVERED else texts.STATUS_NOT_FOUND,
            )
            return result
