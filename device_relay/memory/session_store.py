"""
控制会话存储（内存版）。

每个操作员聊天至多一个 ControlSession，首次交互时惰性创建，进程内一直复用：
- state：参数收集状态机的当前状态
- pending_device / scratch：从 state 派生，方便查看
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict

from ..conversation.state_machine import IDLE, AwaitingArg1, AwaitingArg2, Idle, State

logger = logging.getLogger(__name__)


@dataclass
class ControlSession:
    chat_id: str
    state: State = IDLE
    created_ts: float = field(default_factory=lambda: time.time())

    @property
    def pending_device(self) -> str:
        if isinstance(self.state, (AwaitingArg1, AwaitingArg2)):
            return self.state.target
        return ""

    @property
    def scratch(self) -> Dict[str, str]:
        if isinstance(self.state, AwaitingArg2):
            return {self.state.field: self.state.arg1}
        return {}

    def is_pending(self) -> bool:
        return not isinstance(self.state, Idle)

    def reset(self) -> None:
        if self.is_pending():
            logger.info(f"🔄 会话 {self.chat_id} 放弃未完成的指令: {self.state}")
        self.state = IDLE


class SessionStore:
    def __init__(self) -> None:
        self._sessions: Dict[str, ControlSession] = {}

    def get_or_create(self, chat_id: str) -> ControlSession:
        s = self._sessions.get(chat_id)
        if s is None:
            s = ControlSession(chat_id=chat_id)
            self._sessions[chat_id] = s
        return s

    def get(self, chat_id: str) -> ControlSession | None:
        return self._sessions.get(chat_id)

    def __len__(self) -> int:
        return len(self._sessions)
