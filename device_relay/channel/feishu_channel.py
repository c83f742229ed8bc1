import json
import logging
import os
from typing import Optional

import lark_oapi as lark
from lark_oapi.api.im.v1 import *

from .base import ControlChannel, Keyboard

logger = logging.getLogger(__name__)

# 飞书没有 force_reply，提示操作员用“引用回复”作答
REPLY_HINT = "↩️ Reply to this message"


def build_card(text: str, keyboard: Keyboard | None = None, *, note: str | None = None) -> dict:
    """把文本 + 按钮行渲染成飞书消息卡片（每一行按钮对应一个 action 元素）。"""
    elements = [{"tag": "div", "text": {"tag": "lark_md", "content": text}}]
    for row in keyboard or ():
        elements.append({
            "tag": "action",
            "actions": [
                {
                    "tag": "button",
                    "text": {"tag": "plain_text", "content": b.text},
                    "type": "default",
                    "value": {"token": b.token},
                }
                for b in row
            ],
        })
    if note:
        elements.append({"tag": "note", "elements": [{"tag": "plain_text", "content": note}]})
    return {"config": {"wide_screen_mode": True, "update_multi": True}, "elements": elements}


class FeishuChannel(ControlChannel):
    def __init__(self, app_id, app_secret, *, menu_hint: str = ""):
        self.app_id = app_id
        self.app_secret = app_secret
        self.menu_hint = menu_hint
        self.client = lark.Client.builder().app_id(self.app_id).app_secret(
            self.app_secret).log_level(log_level=lark.LogLevel.INFO).build()

    async def _create(self, chat_id, msg_type, content) -> Optional[str]:
        # 构造请求对象
        request: CreateMessageRequest = CreateMessageRequest.builder() \
            .receive_id_type("chat_id") \
            .request_body(CreateMessageRequestBody.builder()
                          .receive_id(chat_id)
                          .msg_type(msg_type)
                          .content(json.dumps(content, ensure_ascii=False))
                          .build()) \
            .build()
        # 发起请求
        response: CreateMessageResponse = await self.client.im.v1.message.acreate(request)
        # 处理失败返回
        if not response.success():
            lark.logger.error(
                f"client.im.v1.message.create failed, code: {response.code}, msg: {response.msg}, log_id: {response.get_log_id()}")
            return None
        return response.data.message_id

    async def send_text(self, chat_id, text, *, keyboard=None, force_reply=False, menu=False):
        if force_reply:
            text = f"{text}\n\n{REPLY_HINT}"
        if keyboard or menu:
            card = build_card(text, keyboard, note=self.menu_hint if menu else None)
            return await self._create(chat_id, "interactive", card)
        return await self._create(chat_id, "text", {"text": text})

    async def edit_text(self, chat_id, message_id, text, *, keyboard=None):
        request: PatchMessageRequest = PatchMessageRequest.builder() \
            .message_id(message_id) \
            .request_body(PatchMessageRequestBody.builder()
                          .content(json.dumps(build_card(text, keyboard), ensure_ascii=False))
                          .build()) \
            .build()
        response: PatchMessageResponse = await self.client.im.v1.message.apatch(request)
        if not response.success():
            lark.logger.error(
                f"client.im.v1.message.patch failed, code: {response.code}, msg: {response.msg}, log_id: {response.get_log_id()}")

    async def delete_message(self, chat_id, message_id):
        request: DeleteMessageRequest = DeleteMessageRequest.builder() \
            .message_id(message_id) \
            .build()
        response: DeleteMessageResponse = await self.client.im.v1.message.adelete(request)
        if not response.success():
            lark.logger.error(
                f"client.im.v1.message.delete failed, code: {response.code}, msg: {response.msg}, log_id: {response.get_log_id()}")

    async def send_document(self, chat_id, file_path, *, caption=None):
        # 先上传文件拿 file_key，再以 file 消息发出
        with open(file_path, "rb") as f:
            request: CreateFileRequest = CreateFileRequest.builder() \
                .request_body(CreateFileRequestBody.builder()
                              .file_type("stream")
                              .file_name(os.path.basename(file_path))
                              .file(f)
                              .build()) \
                .build()
            response: CreateFileResponse = await self.client.im.v1.file.acreate(request)
        if not response.success():
            lark.logger.error(
                f"client.im.v1.file.create failed, code: {response.code}, msg: {response.msg}, log_id: {response.get_log_id()}")
            return None
        message_id = await self._create(chat_id, "file", {"file_key": response.data.file_key})
        if caption:
            await self._create(chat_id, "text", {"text": caption})
        return message_id

    async def send_location(self, chat_id, lat, lon, *, caption=None):
        text = f"📍 {lat}, {lon}\nhttps://maps.google.com/?q={lat},{lon}"
        if caption:
            text = f"{caption}\n\n{text}"
        return await self._create(chat_id, "text", {"text": text})
