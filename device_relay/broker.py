from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from . import texts
from .browser.directory_browser import DirectoryBrowser
from .channel.base import ControlChannel, SafeChannel
from .conversation import menus
from .conversation.catalog import CommandCatalog
from .conversation.state_machine import ConversationMachine, Transition, accepts_reply, with_prompt_id
from .core.codec import (
    IMMEDIATE_VERBS,
    KEY_VERBS,
    ActionKind,
    CommandEnvelope,
    decode_action,
)
from .core.config import Settings
from .core.context import request_context
from .core.dispatcher import DeliveryResult, Dispatcher
from .core.errors import DeviceNotFound, UnknownVerb
from .core.event_pump import EventPump
from .core.models import FileEntry
from .core.registry import Device, DeviceRegistry
from .memory.session_store import ControlSession, SessionStore
from .transport.listener import TransportListener


logger = logging.getLogger(__name__)

BROWSER_KINDS = frozenset({
    ActionKind.BROWSE,
    ActionKind.DIR,
    ActionKind.FILE,
    ActionKind.UP,
    ActionKind.REFRESH,
    ActionKind.CANCEL,
})


class OperatorAuthorizer:
    """只放行配置中的那一个操作员会话。"""

    def __init__(self, operator_chat_id: str) -> None:
        self.operator_chat_id = str(operator_chat_id or "")

    def __call__(self, chat_id: str | None) -> bool:
        return bool(self.operator_chat_id) and str(chat_id) == self.operator_chat_id


class Broker:
    def __init__(
        self,
        settings: Settings,
        control: ControlChannel,
        *,
        authorize: Callable[[str | None], bool] | None = None,
    ) -> None:
        self.settings = settings
        self.control = SafeChannel(control)
        self.authorize = authorize or OperatorAuthorizer(settings.operator_chat_id)

        self.registry = DeviceRegistry()
        self.sessions = SessionStore()
        self.pump = EventPump()

        self.catalog = CommandCatalog(tts_url_template=settings.tts_url_template)
        self.machine = ConversationMachine(self.catalog)

        self.listener = TransportListener(
            self.registry,
            self._queue_notify,
            heartbeat_interval_s=settings.heartbeat_interval_s,
            keepalive_url=settings.keepalive_url,
            keepalive_timeout_s=settings.keepalive_timeout_s,
        )
        self.dispatcher = Dispatcher(self.listener.open_channels, self.control)
        self.browser = DirectoryBrowser(
            self.registry, self.dispatcher, self.control, wire_format=settings.wire_format
        )

        if not settings.operator_chat_id:
            logger.warning("未配置 OPERATOR_CHAT_ID：所有操作员消息都会被拒绝，设备通知也无处发送。")

    @property
    def operator_chat_id(self) -> str:
        return self.settings.operator_chat_id

    async def start(self) -> None:
        self.pump.start()
        self.listener.start()

    async def stop(self) -> None:
        await self.listener.stop()
        await self.pump.stop()

    # ---------- 通知操作员 ----------
    async def notify_operator(self, text: str, *, menu: bool = False) -> Optional[str]:
        if not self.operator_chat_id:
            logger.info(f"📢 [无操作员] {text}")
            return None
        return await self.control.send_text(self.operator_chat_id, text, menu=menu)

    async def _queue_notify(self, text: str) -> None:
        # 设备上下线通知也走事件泵，保证与操作员事件的先后顺序
        self.pump.submit("notify", self.notify_operator, text)

    # ---------- 操作员消息 ----------
    async def handle_message(
        self,
        chat_id: str,
        text: str | None,
        *,
        message_id: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        with request_context(chat_id=chat_id):
            if not self.authorize(chat_id):
                logger.warning(f"🚫 非授权会话的消息: {chat_id}")
                await self.control.send_text(chat_id, texts.STATUS_PERMISSION_DENIED)
                return

            session = self.sessions.get_or_create(chat_id)
            text = (text or "").strip()

            if reply_to and accepts_reply(session.state, reply_to):
                if not text:
                    logger.info("空回复，忽略")
                    return
                await self._advance(session, text)
                return

            if text in (texts.CMD_START, texts.CMD_HELP):
                session.reset()
                await self.control.send_text(chat_id, texts.WELCOME, menu=True)
            elif text == texts.LABEL_DEVICES:
                session.reset()
                await self._show_devices(chat_id)
            elif text == texts.LABEL_EXECUTE:
                session.reset()
                await self._show_picker(chat_id, ActionKind.DEVICE, texts.PICK_DEVICE_EXECUTE)
            elif text == texts.LABEL_BROWSE:
                session.reset()
                await self._show_picker(chat_id, ActionKind.BROWSE, texts.PICK_DEVICE_BROWSE)
            else:
                logger.debug(f"未识别的消息，忽略: {text[:40]!r}")

    async def _show_devices(self, chat_id: str) -> None:
        devices = self.registry.list()
        if not devices:
            await self.control.send_text(chat_id, texts.STATUS_NO_DEVICES)
            return
        body = "\n\n".join(texts.describe_device(d.metadata) for _, d in devices)
        await self.control.send_text(chat_id, f"{texts.DEVICE_LIST_HEADER}\n\n{body}")

    async def _show_picker(self, chat_id: str, action: str, title: str) -> None:
        devices = self.registry.list()
        if not devices:
            await self.control.send_text(chat_id, texts.STATUS_NO_DEVICES)
            return
        await self.control.send_text(chat_id, title, keyboard=menus.device_picker(devices, action))

    async def _apply(self, session: ControlSession, transition: Transition) -> None:
        session.state = transition.state
        if transition.prompt:
            prompt_id = await self.control.send_text(session.chat_id, transition.prompt, force_reply=True)
            session.state = with_prompt_id(session.state, prompt_id)
        if transition.envelope is not None:
            await self._dispatch(session.chat_id, transition.envelope)

    async def _advance(self, session: ControlSession, reply: str) -> None:
        await self._apply(session, self.machine.advance(session.state, reply))

    async def _dispatch(
        self, chat_id: str, envelope: CommandEnvelope, message_id: str | None = None
    ) -> DeliveryResult | None:
        try:
            wire = envelope.to_wire(self.settings.wire_format)
        except UnknownVerb as e:
            logger.error(f"❌ 拒绝下发未知指令: {e}")
            return None
        return await self.dispatcher.deliver(envelope.target_device, wire, chat_id, message_id)

    # ---------- 卡片按钮 ----------
    async def handle_action(self, chat_id: str, message_id: str | None, token: str | None) -> Optional[str]:
        """处理一次按钮点击，返回给操作员的 toast 文案（可为空）。"""
        with request_context(chat_id=chat_id):
            if not self.authorize(chat_id):
                logger.warning(f"🚫 非授权会话的按钮: {chat_id}")
                return texts.TOAST_UNAUTHORIZED

            session = self.sessions.get_or_create(chat_id)
            action = decode_action(token)
            if not action.is_known:
                logger.warning(f"⚠️ 未知的按钮动作，忽略: {token!r}")
                return None

            # 任何按钮都是新的顶层动作，丢弃未完成的参数收集
            session.reset()

            if action.target is None:
                await self.control.send_text(chat_id, texts.STATUS_NOT_FOUND)
                return None

            with request_context(device_id=action.target):
                return await self._route_action(session, message_id, action)

    async def _route_action(self, session: ControlSession, message_id, action) -> Optional[str]:
        chat_id = session.chat_id
        kind = action.action

        if kind == ActionKind.DEVICE:
            device = self.registry.get(action.target)
            if device is None:
                return texts.TOAST_DISCONNECTED
            await self.control.edit_text(
                chat_id, message_id, texts.command_menu_title(device.label), keyboard=menus.command_menu(device.id)
            )
            return None

        if kind == ActionKind.KEYS:
            device = self.registry.get(action.target)
            if device is None:
                return texts.TOAST_DISCONNECTED
            await self.control.edit_text(
                chat_id, message_id, texts.keys_panel_title(device.label), keyboard=menus.keys_panel(device.id)
            )
            return None

        if kind == ActionKind.KEY:
            key = action.extra[0] if action.extra else ""
            if key == "exit":
                if message_id:
                    await self.control.delete_message(chat_id, message_id)
                return None
            verb = f"btn_{key}"
            if verb not in KEY_VERBS:
                logger.warning(f"⚠️ 未知的实体按键: {key!r}")
                return None
            await self._dispatch(chat_id, CommandEnvelope(verb, action.target), message_id)
            return None

        if kind in BROWSER_KINDS:
            await self.browser.handle(chat_id, message_id, action)
            return None

        if kind in IMMEDIATE_VERBS:
            await self._dispatch(chat_id, CommandEnvelope(kind, action.target), message_id)
            return None

        if kind in self.catalog:
            if message_id:
                await self.control.delete_message(chat_id, message_id)
            await self._apply(session, self.machine.begin(kind, action.target))
            return None

        return None

    # ---------- 设备回调 ----------
    def resolve_device(self, device_id: str | None, label: str | None) -> Device:
        """按 device_id 查找，缺省时按 model 头匹配；都找不到抛 DeviceNotFound。"""
        device = self.registry.get(device_id) or self.registry.find_by_label(label)
        if device is None:
            raise DeviceNotFound(device_id or label)
        return device

    async def on_file_uploaded(self, label: str, file_path: str) -> None:
        if not self.operator_chat_id:
            return
        await self.control.send_document(self.operator_chat_id, file_path, caption=texts.message_from(label))

    async def on_text(self, label: str, text: str) -> None:
        await self.notify_operator(f"{texts.message_from(label)}\n\n{text}", menu=True)

    async def on_location(self, label: str, lat: float, lon: float) -> None:
        if not self.operator_chat_id:
            return
        await self.control.send_location(self.operator_chat_id, lat, lon, caption=texts.location_from(label))

    async def on_listing(self, device_id: str, path: str, entries: Sequence[FileEntry]) -> Optional[str]:
        if not self.operator_chat_id:
            return None
        with request_context(device_id=device_id):
            return await self.browser.render(self.operator_chat_id, device_id, path, entries)
