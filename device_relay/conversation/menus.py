"""
卡片按钮布局：设备选择、指令菜单、实体按键面板。
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from ..channel.base import Button
from ..core.codec import ActionKind, encode_action
from ..core.registry import Device

# (按钮文字, 动作类型)，两两一行
COMMAND_MENU: Sequence[Tuple[Tuple[str, str], ...]] = (
    (("Apps", "apps"), ("Device info", "device_info")),
    (("Get file", "get_file"), ("Delete file", "delete_file")),
    (("Browse files", ActionKind.BROWSE), ("Location", "location")),
    (("Toast", "toast"), ("Show notification", "show_notification")),
    (("Vibrate", "vibrate"), ("Send message", "send_message")),
    (("Play audio", "play_audio"), ("Stop audio", "stop_audio")),
    (("Torch On", "torch_on"), ("Torch Off", "torch_off")),
    (("Open Target Link", "open_target_link"), ("Text To Speech", "text_to_speech")),
    (("Device Buttons", ActionKind.KEYS),),
)

KEYS_PANEL: Sequence[Tuple[Tuple[str, str], ...]] = (
    (("|||", "recent"), ("■", "home"), ("<", "back")),
    (("Vol +", "vol_up"), ("Vol -", "vol_down"), ("⊙", "power")),
    (("Exit 🔙", "exit"),),
)


def device_picker(devices: Iterable[Tuple[str, Device]], action: str) -> List[List[Button]]:
    return [[Button(device.label, encode_action(action, device_id))] for device_id, device in devices]


def command_menu(device_id: str) -> List[List[Button]]:
    return [[Button(text, encode_action(action, device_id)) for text, action in row] for row in COMMAND_MENU]


def keys_panel(device_id: str) -> List[List[Button]]:
    return [
        [Button(text, encode_action(ActionKind.KEY, device_id, key)) for text, key in row]
        for row in KEYS_PANEL
    ]
