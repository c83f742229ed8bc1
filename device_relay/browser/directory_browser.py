"""
远程文件浏览器。

- 请求列目录：下发 list_files:<path>，结果由设备通过 HTTP 回调 /listFiles 送回，再由 render() 渲染
- 渲染：每个条目一个按钮（📁 目录 / 📄 文件），两个一行；末尾导航行：上一级（根目录不显示）/ 刷新 / 取消
- 点目录：更新 cursor_path 并重新列目录；点文件：下发 get_file:<path>，不改变 cursor_path

条目顺序保持设备回传的顺序，这一层不排序。
"""

from __future__ import annotations

import logging
import posixpath
from collections import OrderedDict
from typing import Iterator, List, Optional, Sequence

from .. import texts
from ..channel.base import Button, ControlChannel
from ..core.codec import ACTION_DELIMITER, WIRE_DELIMITED, ActionKind, ActionToken, CommandEnvelope, encode_action
from ..core.dispatcher import DeliveryResult, Dispatcher
from ..core.models import FileEntry
from ..core.registry import DeviceRegistry

logger = logging.getLogger(__name__)

ROOT = "/"
MAX_TRACKED_CARDS = 500
LABEL_UP = "⬆️ Up"
LABEL_REFRESH = "🔄 Refresh"
LABEL_CANCEL = "✖️ Cancel"


def normalize_path(path: str | None) -> str:
    if not path:
        return ROOT
    norm = posixpath.normpath(path if path.startswith("/") else "/" + path)
    # normpath 会保留开头的 //
    return "/" + norm.lstrip("/")


def parent_path(path: str) -> str:
    return posixpath.dirname(normalize_path(path)) or ROOT


def join_path(base: str, name: str) -> str:
    return normalize_path(posixpath.join(normalize_path(base), name))


class EntryRows:
    """条目按钮的行序列：惰性生成，可重复迭代。"""

    def __init__(self, device_id: str, entries: Sequence[FileEntry], per_row: int = 2) -> None:
        self.device_id = device_id
        self.entries = entries
        self.per_row = per_row

    def _button(self, entry: FileEntry) -> Button:
        if entry.is_dir:
            return Button(f"📁 {entry.name}", encode_action(ActionKind.DIR, self.device_id, entry.name))
        return Button(f"📄 {entry.name}", encode_action(ActionKind.FILE, self.device_id, entry.name))

    def __iter__(self) -> Iterator[List[Button]]:
        row: List[Button] = []
        for entry in self.entries:
            row.append(self._button(entry))
            if len(row) == self.per_row:
                yield row
                row = []
        if row:
            yield row


def navigation_row(device_id: str, path: str) -> List[Button]:
    row = []
    if normalize_path(path) != ROOT:
        row.append(Button(LABEL_UP, encode_action(ActionKind.UP, device_id)))
    row.append(Button(LABEL_REFRESH, encode_action(ActionKind.REFRESH, device_id)))
    row.append(Button(LABEL_CANCEL, encode_action(ActionKind.CANCEL, device_id)))
    return row


def build_keyboard(device_id: str, path: str, entries: Sequence[FileEntry]) -> List[List[Button]]:
    return list(EntryRows(device_id, entries)) + [navigation_row(device_id, path)]


class DirectoryBrowser:
    def __init__(
        self,
        registry: DeviceRegistry,
        dispatcher: Dispatcher,
        control: ControlChannel,
        *,
        wire_format: str = WIRE_DELIMITED,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._control = control
        self._wire_format = wire_format
        # 列表消息ID -> 该卡片渲染时的目录；按钮按卡片自己的目录解析，不受之后 cursor 变化影响
        self._card_paths: OrderedDict[str, str] = OrderedDict()

    def _remember_card(self, message_id: str | None, path: str) -> None:
        if not message_id:
            return
        self._card_paths[message_id] = path
        self._card_paths.move_to_end(message_id)
        while len(self._card_paths) > MAX_TRACKED_CARDS:
            self._card_paths.popitem(last=False)

    def card_path(self, message_id: str | None) -> Optional[str]:
        if not message_id:
            return None
        return self._card_paths.get(message_id)

    def _command(self, verb: str, device_id: str, path: str) -> str:
        return CommandEnvelope(verb, device_id, (path,)).to_wire(self._wire_format)

    async def request_listing(
        self, chat_id: str, device_id: str, path: str, message_id: str | None = None
    ) -> DeliveryResult:
        path = normalize_path(path)
        self._registry.update_cursor(device_id, path)
        return await self._dispatcher.deliver(
            device_id, self._command("list_files", device_id, path), chat_id, message_id
        )

    async def render(
        self, chat_id: str, device_id: str, path: str, entries: Sequence[FileEntry]
    ) -> Optional[str]:
        device = self._registry.get(device_id)
        if device is None:
            logger.info(f"❓ 目录结果对应的设备已下线: {device_id}")
            return None
        path = normalize_path(path)
        self._registry.update_cursor(device_id, path)
        message_id = await self._control.send_text(
            chat_id,
            texts.listing_title(device.label, path),
            keyboard=build_keyboard(device_id, path, entries),
        )
        self._remember_card(message_id, path)
        return message_id

    async def handle(self, chat_id: str, message_id: str | None, token: ActionToken) -> None:
        if token.action == ActionKind.CANCEL:
            if message_id:
                self._card_paths.pop(message_id, None)
                await self._control.delete_message(chat_id, message_id)
            return

        device = self._registry.get(token.target)
        if device is None:
            await self._control.send_text(chat_id, texts.STATUS_NOT_FOUND)
            return

        # 列表卡片上的按钮以卡片自己的目录为准；其他入口（设备菜单的 Browse）用 cursor
        base = self.card_path(message_id) if token.action != ActionKind.BROWSE else None
        cursor = base or device.cursor_path
        # 条目名里可能带冒号，按原样拼回
        name = ACTION_DELIMITER.join(token.extra)

        if token.action == ActionKind.BROWSE:
            await self.request_listing(chat_id, device.id, cursor, message_id)
        elif token.action == ActionKind.REFRESH:
            self._card_paths.pop(message_id, None)
            await self.request_listing(chat_id, device.id, cursor, message_id)
        elif token.action == ActionKind.UP:
            self._card_paths.pop(message_id, None)
            await self.request_listing(chat_id, device.id, parent_path(cursor), message_id)
        elif token.action == ActionKind.DIR:
            if not name:
                return
            self._card_paths.pop(message_id, None)
            await self.request_listing(chat_id, device.id, join_path(cursor, name), message_id)
        elif token.action == ActionKind.FILE:
            if not name:
                return
            # 取文件不改变当前目录，也保留列表消息
            await self._dispatcher.deliver(
                device.id, self._command("get_file", device.id, join_path(cursor, name)), chat_id
            )
