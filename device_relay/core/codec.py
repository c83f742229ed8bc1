"""
指令信封编解码。

两类字符串：
- 下发给设备的指令：verb:argument，argument 内多个字段用 / 连接（delimited 格式），
  或者 {"verb": ..., "args": [...]} 的 JSON 格式
- 卡片按钮上携带的动作标识：action:device_id[:extra...]

解码动作标识永远不抛异常，段数不够时 target 为 None，由调用方按“设备不存在”处理。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import UnknownVerb

logger = logging.getLogger(__name__)

ACTION_DELIMITER = ":"
FIELD_DELIMITER = "/"

WIRE_DELIMITED = "delimited"
WIRE_JSON = "json"

# 无需参数，点击即下发
IMMEDIATE_VERBS = frozenset({
    "device_info",
    "apps",
    "location",
    "vibrate",
    "stop_audio",
    "torch_on",
    "torch_off",
})

# 需要操作员回复一个参数
SINGLE_ARG_VERBS = frozenset({
    "open_target_link",
    "text_to_speech",
    "get_file",
    "delete_file",
    "toast",
    "play_audio",
})

# 需要操作员依次回复两个参数
TWO_ARG_VERBS = frozenset({
    "send_message",
    "show_notification",
})

# 文件浏览器专用
BROWSER_VERBS = frozenset({"list_files", "get_file"})

HARDWARE_KEYS = ("recent", "home", "back", "vol_up", "vol_down", "power")
KEY_VERBS = frozenset(f"btn_{k}" for k in HARDWARE_KEYS)

VERBS = IMMEDIATE_VERBS | SINGLE_ARG_VERBS | TWO_ARG_VERBS | BROWSER_VERBS | KEY_VERBS


class ActionKind:
    DEVICE = "device"      # 打开某台设备的指令菜单
    KEYS = "keys"          # 打开实体按键面板
    KEY = "key"            # 按下某个实体按键（extra[0] 为按键名或 exit）
    BROWSE = "browse"      # 打开文件浏览器
    DIR = "dir"            # 进入目录（extra 为条目名）
    FILE = "file"          # 取回文件（extra 为条目名）
    UP = "up"
    REFRESH = "refresh"
    CANCEL = "cancel"


NAVIGATION_KINDS = frozenset({
    ActionKind.DEVICE,
    ActionKind.KEYS,
    ActionKind.KEY,
    ActionKind.BROWSE,
    ActionKind.DIR,
    ActionKind.FILE,
    ActionKind.UP,
    ActionKind.REFRESH,
    ActionKind.CANCEL,
})

# 指令类按钮直接以 verb 作为动作类型
ACTION_KINDS = NAVIGATION_KINDS | IMMEDIATE_VERBS | SINGLE_ARG_VERBS | TWO_ARG_VERBS


def is_known_verb(verb: str) -> bool:
    return verb in VERBS


def join_fields(*fields: str) -> str:
    """用次级分隔符拼接复合参数。操作员输入不做转义，歧义时只记录告警。"""
    for f in fields[:-1]:
        if FIELD_DELIMITER in f:
            logger.warning(f"⚠️ 复合参数字段内含分隔符 '{FIELD_DELIMITER}'，设备端可能解析错位: {f!r}")
    return FIELD_DELIMITER.join(fields)


def encode(verb: str, argument: str | None = None) -> str:
    if not is_known_verb(verb):
        raise UnknownVerb(verb)
    if argument is None or argument == "":
        return verb
    return f"{verb}{ACTION_DELIMITER}{argument}"


@dataclass(frozen=True)
class CommandEnvelope:
    verb: str
    target_device: str
    args: Tuple[str, ...] = ()

    @property
    def argument(self) -> str:
        return join_fields(*self.args) if self.args else ""

    def to_wire(self, fmt: str = WIRE_DELIMITED) -> str:
        if fmt == WIRE_JSON:
            if not is_known_verb(self.verb):
                raise UnknownVerb(self.verb)
            return json.dumps({"verb": self.verb, "args": list(self.args)}, ensure_ascii=False)
        return encode(self.verb, self.argument)


@dataclass(frozen=True)
class ActionToken:
    action: str
    target: Optional[str] = None
    extra: Tuple[str, ...] = ()

    @property
    def is_known(self) -> bool:
        return self.action in ACTION_KINDS


def encode_action(action: str, target: str, *extras: str) -> str:
    return ACTION_DELIMITER.join((action, target) + tuple(extras))


def decode_action(token: str | None) -> ActionToken:
    if not token:
        return ActionToken(action="")
    parts = token.split(ACTION_DELIMITER)
    action = parts[0]
    target = parts[1] if len(parts) > 1 and parts[1] else None
    return ActionToken(action=action, target=target, extra=tuple(parts[2:]))
