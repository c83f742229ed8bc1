"""
飞书事件回调解析。

支持三类载荷：
- url_verification：返回 challenge
- im.message.receive_v1：操作员发来的消息（parent_id 非空即为“回复”）
- card.action.trigger / 旧版卡片回调：按钮点击，按钮 value 里带 {"token": "..."}
"""

from __future__ import annotations

import json
import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Set, Union

logger = logging.getLogger(__name__)

# 群聊里 @机器人 会被替换成 @_user_1 这样的占位符
_MENTION_RE = re.compile(r"@_user_\d+\s*")


@dataclass(frozen=True)
class Challenge:
    challenge: str


@dataclass(frozen=True)
class InboundMessage:
    chat_id: str
    message_id: str
    text: str
    reply_to: Optional[str] = None


@dataclass(frozen=True)
class InboundAction:
    chat_id: str
    message_id: Optional[str]
    token: Optional[str]


FeishuEvent = Union[Challenge, InboundMessage, InboundAction]


def event_token(payload: Dict[str, Any]) -> Optional[str]:
    header = payload.get("header") or {}
    return header.get("token") or payload.get("token")


def _message_text(message: Dict[str, Any]) -> str:
    if message.get("message_type") != "text":
        return ""
    try:
        content = json.loads(message.get("content") or "{}")
    except json.JSONDecodeError:
        return ""
    return _MENTION_RE.sub("", content.get("text") or "").strip()


def _action_token(action: Dict[str, Any]) -> Optional[str]:
    value = action.get("value")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return value
    if isinstance(value, dict):
        return value.get("token")
    return None


def parse_event(payload: Dict[str, Any]) -> Optional[FeishuEvent]:
    if payload.get("type") == "url_verification" or ("challenge" in payload and "header" not in payload):
        return Challenge(challenge=payload.get("challenge", ""))

    header = payload.get("header") or {}
    event_type = header.get("event_type")
    event = payload.get("event") or {}

    if event_type == "im.message.receive_v1":
        message = event.get("message") or {}
        return InboundMessage(
            chat_id=message.get("chat_id", ""),
            message_id=message.get("message_id", ""),
            text=_message_text(message),
            reply_to=message.get("parent_id") or None,
        )

    if event_type == "card.action.trigger":
        context = event.get("context") or {}
        return InboundAction(
            chat_id=context.get("open_chat_id", ""),
            message_id=context.get("open_message_id"),
            token=_action_token(event.get("action") or {}),
        )

    # 旧版卡片回调（无 schema）
    if "action" in payload and "open_chat_id" in payload:
        return InboundAction(
            chat_id=payload.get("open_chat_id", ""),
            message_id=payload.get("open_message_id"),
            token=_action_token(payload.get("action") or {}),
        )

    logger.info(f"收到未知类型的事件，忽略: {event_type}")
    return None


class RecentIds:
    """去重：飞书在超时未响应时会重推同一条消息。"""

    def __init__(self, maxlen: int = 1000) -> None:
        self._order: Deque[str] = deque()
        self._seen: Set[str] = set()
        self._maxlen = maxlen

    def check_and_add(self, message_id: str) -> bool:
        """首次出现返回 True。"""
        if not message_id:
            return True
        if message_id in self._seen:
            return False
        self._order.append(message_id)
        self._seen.add(message_id)
        if len(self._order) > self._maxlen:
            self._seen.discard(self._order.popleft())
        return True
