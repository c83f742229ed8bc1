"""
控制通道（操作员聊天界面）抽象。

核心逻辑只依赖 ControlChannel 接口；具体的 IM 平台（飞书）在 feishu_channel.py 中实现。
SafeChannel 包装任意通道：所有调用失败只记录日志、返回 None，不影响状态机继续推进。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Button:
    text: str
    token: str


Keyboard = Sequence[Sequence[Button]]


class ControlChannel:
    """
    所有控制通道的基类。
    """

    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        keyboard: Keyboard | None = None,
        force_reply: bool = False,
        menu: bool = False,
    ) -> Optional[str]:
        """发送消息，返回消息ID。force_reply 表示希望操作员“回复”这条消息。"""
        raise NotImplementedError

    async def edit_text(
        self,
        chat_id: str,
        message_id: str,
        text: str,
        *,
        keyboard: Keyboard | None = None,
    ) -> None:
        raise NotImplementedError

    async def delete_message(self, chat_id: str, message_id: str) -> None:
        raise NotImplementedError

    async def send_document(self, chat_id: str, file_path: str, *, caption: str | None = None) -> Optional[str]:
        raise NotImplementedError

    async def send_location(
        self, chat_id: str, lat: float, lon: float, *, caption: str | None = None
    ) -> Optional[str]:
        raise NotImplementedError


class SafeChannel(ControlChannel):
    """失败不外抛的通道包装。"""

    def __init__(self, inner: ControlChannel) -> None:
        self.inner = inner

    async def send_text(self, chat_id, text, *, keyboard=None, force_reply=False, menu=False):
        try:
            return await self.inner.send_text(
                chat_id, text, keyboard=keyboard, force_reply=force_reply, menu=menu
            )
        except Exception as e:
            logger.warning(f"⚠️ 控制通道发送消息失败 ({type(e).__name__}): {e}")
            return None

    async def edit_text(self, chat_id, message_id, text, *, keyboard=None):
        try:
            await self.inner.edit_text(chat_id, message_id, text, keyboard=keyboard)
        except Exception as e:
            logger.warning(f"⚠️ 控制通道编辑消息失败 ({type(e).__name__}): {e}")

    async def delete_message(self, chat_id, message_id):
        try:
            await self.inner.delete_message(chat_id, message_id)
        except Exception as e:
            logger.warning(f"⚠️ 控制通道删除消息失败 ({type(e).__name__}): {e}")

    async def send_document(self, chat_id, file_path, *, caption=None):
        try:
            return await self.inner.send_document(chat_id, file_path, caption=caption)
        except Exception as e:
            logger.warning(f"⚠️ 控制通道发送文件失败 ({type(e).__name__}): {e}")
            return None

    async def send_location(self, chat_id, lat, lon, *, caption=None):
        try:
            return await self.inner.send_location(chat_id, lat, lon, caption=caption)
        except Exception as e:
            logger.warning(f"⚠️ 控制通道发送位置失败 ({type(e).__name__}): {e}")
            return None


class LoggingChannel(ControlChannel):
    """未配置飞书凭据时的兜底通道：只把消息写进日志。"""

    def __init__(self) -> None:
        self._seq = 0

    def _next_id(self) -> str:
        self._seq += 1
        return f"log-{self._seq}"

    async def send_text(self, chat_id, text, *, keyboard=None, force_reply=False, menu=False):
        labels: List[str] = [b.text for row in (keyboard or ()) for b in row]
        logger.info(f"💬 [{chat_id}] {text} {labels if labels else ''}")
        return self._next_id()

    async def edit_text(self, chat_id, message_id, text, *, keyboard=None):
        logger.info(f"✏️ [{chat_id}#{message_id}] {text}")

    async def delete_message(self, chat_id, message_id):
        logger.info(f"🗑️ [{chat_id}#{message_id}]")

    async def send_document(self, chat_id, file_path, *, caption=None):
        logger.info(f"📎 [{chat_id}] {file_path} {caption or ''}")
        return self._next_id()

    async def send_location(self, chat_id, lat, lon, *, caption=None):
        logger.info(f"📍 [{chat_id}] {lat},{lon} {caption or ''}")
        return self._next_id()
