"""
设备连接监听（WebSocket）。

- 连接建立：从握手头读取设备信息 -> 注册表登记 -> 通知操作员“设备上线”
- 连接关闭：注册表注销 -> 用连接时的快照通知“设备下线”
- 心跳：每隔固定间隔向所有连接广播 ping；发送失败只记日志，不注销设备（只有连接关闭才注销）

设备上行的应用消息不做处理，读循环只用于感知连接关闭。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

import requests
from fastapi import WebSocket

from .. import texts
from ..core.context import request_context
from ..core.registry import METADATA_FIELDS, DeviceRegistry, normalize_metadata

logger = logging.getLogger(__name__)

LIVENESS_TOKEN = "ping"

Notifier = Callable[[str], Awaitable[None]]


class AgentChannel:
    """一条设备连接的发送端。注册表只持有它的弱引用。"""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.device_id: Optional[str] = None

    async def send(self, text: str) -> None:
        await self.websocket.send_text(text)


class TransportListener:
    def __init__(
        self,
        registry: DeviceRegistry,
        notify: Notifier,
        *,
        heartbeat_interval_s: float = 5.0,
        keepalive_url: str | None = None,
        keepalive_timeout_s: int = 5,
    ) -> None:
        self._registry = registry
        self._notify = notify
        self._heartbeat_interval_s = heartbeat_interval_s
        self._keepalive_url = keepalive_url
        self._keepalive_timeout_s = keepalive_timeout_s
        # 存活连接（强引用），device_id -> channel
        self._channels: Dict[str, AgentChannel] = {}
        self._heartbeat_task: asyncio.Task | None = None

    def open_channels(self) -> List[AgentChannel]:
        return list(self._channels.values())

    async def on_connect(self, channel: AgentChannel, headers: Mapping[str, str]) -> str:
        metadata = normalize_metadata({k: headers.get(k) for k in METADATA_FIELDS})
        device_id = self._registry.register(metadata, channel)
        channel.device_id = device_id
        self._channels[device_id] = channel
        with request_context(device_id=device_id):
            logger.info(f"🔌 设备上线: {metadata['model']} ({device_id})")
        await self._notify(texts.device_connected(metadata))
        return device_id

    async def on_close(self, channel: AgentChannel, metadata: Mapping[str, str]) -> None:
        device_id = channel.device_id
        if device_id is None:
            return
        self._channels.pop(device_id, None)
        self._registry.unregister(device_id)
        channel.device_id = None
        with request_context(device_id=device_id):
            logger.info(f"🔌 设备下线: {metadata.get('model')} ({device_id})")
        await self._notify(texts.device_disconnected(metadata))

    async def serve(self, websocket: WebSocket) -> None:
        """单条 WebSocket 连接的完整生命周期。"""
        channel = AgentChannel(websocket)
        # 握手头在 accept 之前即可读取，先登记再完成握手
        device_id = await self.on_connect(channel, websocket.headers)
        # 下线通知使用连接时的快照
        device = self._registry.get(device_id)
        snapshot = dict(device.metadata) if device else {}
        try:
            await websocket.accept()
            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
        finally:
            await self.on_close(channel, snapshot)

    async def broadcast_liveness(self) -> None:
        for channel in self.open_channels():
            try:
                await channel.send(LIVENESS_TOKEN)
            except Exception as e:
                logger.warning(f"⚠️ 心跳发送失败 ({channel.device_id}, {type(e).__name__}): {e}")

    async def _probe_keepalive(self) -> None:
        if not self._keepalive_url:
            return
        try:
            await asyncio.to_thread(requests.get, self._keepalive_url, timeout=self._keepalive_timeout_s)
        except Exception as e:
            logger.warning(f"⚠️ 保活请求失败 ({type(e).__name__}): {e}")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval_s)
            await self.broadcast_liveness()
            await self._probe_keepalive()

    def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="agent-heartbeat")
            logger.info(f"✅ 设备心跳已启动: interval={self._heartbeat_interval_s}s")

    async def stop(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
