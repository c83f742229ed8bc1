#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
设备中继服务端（FastAPI）

- WS   /ws              设备长连接（握手头：model / battery / version / brightness / provider）
- POST /uploadFile      设备回传文件（multipart: file）
- POST /uploadText      设备回传文本 { "text": "..." }
- POST /uploadLocation  设备回传位置 { "lat": ..., "lon": ... }
- POST /listFiles       设备回传目录列表 { "device_id": "...", "path": "...", "entries": [...] }
- POST /feishu/event    飞书事件订阅（消息、卡片回调）
- POST /feishu/card     飞书卡片回调
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import uvicorn
from fastapi import FastAPI, File, Header, HTTPException, Request, UploadFile, WebSocket
from fastapi.responses import JSONResponse

from .broker import Broker
from .channel.base import ControlChannel, LoggingChannel
from .channel.feishu_channel import FeishuChannel
from .channel.feishu_events import Challenge, InboundAction, InboundMessage, RecentIds, event_token, parse_event
from .core.config import Settings, load_settings
from .core.errors import DeviceNotFound
from .core.models import FileListingRequest, RelayResponse, UploadLocationRequest, UploadTextRequest
from .log_config import setup_logging
from . import texts

logger = logging.getLogger(__name__)

# 飞书要求 3 秒内响应卡片回调，留一点余量
CARD_ANSWER_TIMEOUT_S = 2.5


def build_control_channel(settings: Settings) -> ControlChannel:
    if settings.feishu_app_id and settings.feishu_app_secret:
        return FeishuChannel(settings.feishu_app_id, settings.feishu_app_secret, menu_hint=texts.MENU_HINT)
    logger.warning("未检测到 FEISHU_APP_ID / FEISHU_APP_SECRET：操作员消息只写日志。")
    return LoggingChannel()


def create_app(settings: Settings | None = None, control: ControlChannel | None = None) -> FastAPI:
    settings = settings or load_settings()
    broker = Broker(settings, control or build_control_channel(settings))
    seen_messages = RecentIds()

    app = FastAPI(title="设备中继服务", description="单操作员 -> 多设备指令中继", version="1.0.0")
    app.state.broker = broker
    app.state.settings = settings

    @app.on_event("startup")
    async def startup_event():
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        await broker.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await broker.stop()

    @app.get("/")
    async def root():
        return {"message": "设备中继服务正在运行", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        return {"status": "healthy", "devices": len(broker.registry)}

    # ---------- 设备长连接 ----------
    @app.websocket("/ws")
    async def agent_socket(websocket: WebSocket):
        await broker.listener.serve(websocket)

    # ---------- 设备回调 ----------
    @app.post("/uploadFile")
    async def upload_file(file: UploadFile = File(...), model: Optional[str] = Header(default=None)):
        safe_name = quote(file.filename or "file", safe="")
        final_path = Path(settings.upload_dir) / safe_name
        final_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            data = await file.read()
            await asyncio.to_thread(final_path.write_bytes, data)
        except OSError as e:
            logger.error(f"❌ 保存上传文件失败: {e}")
            raise HTTPException(status_code=500, detail="failed to store file")
        logger.info(f"📥 收到设备文件: {final_path}")
        broker.pump.submit("upload_file", broker.on_file_uploaded, model or "unknown", str(final_path))
        return RelayResponse()

    @app.post("/uploadText")
    async def upload_text(req: UploadTextRequest, model: Optional[str] = Header(default=None)):
        broker.pump.submit("upload_text", broker.on_text, model or "unknown", req.text)
        return RelayResponse()

    @app.post("/uploadLocation")
    async def upload_location(req: UploadLocationRequest, model: Optional[str] = Header(default=None)):
        broker.pump.submit("upload_location", broker.on_location, model or "unknown", req.lat, req.lon)
        return RelayResponse()

    @app.post("/listFiles")
    async def list_files(req: FileListingRequest, model: Optional[str] = Header(default=None)):
        try:
            device = broker.resolve_device(req.device_id, model)
        except DeviceNotFound as e:
            logger.info(f"❓ 目录结果找不到对应设备: {e}")
            raise HTTPException(status_code=404, detail="device not found")
        broker.pump.submit("list_files", broker.on_listing, device.id, req.path, req.entries)
        return RelayResponse()

    # ---------- 飞书 ----------
    async def _handle_feishu(payload: dict) -> JSONResponse:
        expected = settings.feishu_verification_token
        if expected and event_token(payload) != expected:
            logger.warning("⚠️ 飞书事件校验 token 不匹配，忽略")
            return JSONResponse(status_code=200, content={"code": 0, "msg": "ignored"})

        event = parse_event(payload)
        if isinstance(event, Challenge):
            return JSONResponse(status_code=200, content={"challenge": event.challenge})

        if isinstance(event, InboundMessage):
            if not seen_messages.check_and_add(event.message_id):
                logger.info(f"消息为重复消息已处理，message_id: {event.message_id}")
                return JSONResponse(status_code=200, content={"code": 0, "msg": "ok"})
            # 立即返回 200，防止飞书重试
            broker.pump.submit(
                "operator_message",
                broker.handle_message,
                event.chat_id,
                event.text,
                message_id=event.message_id,
                reply_to=event.reply_to,
            )
            return JSONResponse(status_code=200, content={"code": 0, "msg": "ok"})

        if isinstance(event, InboundAction):
            toast = await broker.pump.call(
                "operator_action",
                broker.handle_action,
                event.chat_id,
                event.message_id,
                event.token,
                timeout_s=CARD_ANSWER_TIMEOUT_S,
            )
            if toast:
                return JSONResponse(status_code=200, content={"toast": {"type": "info", "content": toast}})
            return JSONResponse(status_code=200, content={})

        return JSONResponse(status_code=200, content={"code": 0, "msg": "unknown event"})

    @app.post("/feishu/event")
    async def feishu_event(request: Request):
        return await _handle_feishu(await request.json())

    @app.post("/feishu/card")
    async def feishu_card(request: Request):
        return await _handle_feishu(await request.json())

    return app


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_dir)
    logger.info(f"🚀 启动设备中继服务: {settings.server_host}:{settings.server_port}")
    uvicorn.run(create_app(settings), host=settings.server_host, port=settings.server_port, reload=False, log_level="info")


if __name__ == "__main__":
    main()
