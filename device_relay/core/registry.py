"""
设备注册表（内存版）。

每条记录对应一条存活的设备连接：
- metadata：握手时上报的设备信息（只在连接时读取一次）
- cursor_path：文件浏览器当前所在目录
- channel：指向连接句柄的弱引用，注册表不持有连接本身

注册表只在事件循环线程内访问，因此不加锁。
"""

from __future__ import annotations

import logging
import uuid
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("model", "battery", "version", "brightness", "provider")
UNKNOWN = "unknown"


def normalize_metadata(raw: Mapping[str, Any] | None) -> Dict[str, str]:
    """只保留固定字段，缺失或为空的字段统一填 unknown。"""
    raw = raw or {}
    out: Dict[str, str] = {}
    for key in METADATA_FIELDS:
        value = raw.get(key)
        out[key] = str(value) if value not in (None, "") else UNKNOWN
    return out


@dataclass
class Device:
    id: str
    metadata: Dict[str, str] = field(default_factory=dict)
    cursor_path: str = "/"
    _channel_ref: Optional[weakref.ReferenceType] = field(default=None, repr=False)

    @property
    def label(self) -> str:
        return self.metadata.get("model", UNKNOWN)

    @property
    def channel(self) -> Any:
        """连接句柄；连接已被回收时返回 None。"""
        if self._channel_ref is None:
            return None
        return self._channel_ref()


class DeviceRegistry:
    def __init__(self) -> None:
        self._devices: Dict[str, Device] = {}

    def register(self, metadata: Mapping[str, Any] | None, channel: Any = None) -> str:
        device_id = str(uuid.uuid4())
        # uuid4 理论上不会撞，但 id 绝不能复用
        while device_id in self._devices:
            device_id = str(uuid.uuid4())
        ref = weakref.ref(channel) if channel is not None else None
        self._devices[device_id] = Device(
            id=device_id,
            metadata=normalize_metadata(metadata),
            cursor_path="/",
            _channel_ref=ref,
        )
        logger.debug(f"设备登记: {device_id}")
        return device_id

    def unregister(self, device_id: str) -> None:
        if self._devices.pop(device_id, None) is not None:
            logger.debug(f"设备注销: {device_id}")

    def get(self, device_id: str | None) -> Device | None:
        if not device_id:
            return None
        return self._devices.get(device_id)

    def list(self) -> List[Tuple[str, Device]]:
        return list(self._devices.items())

    def update_cursor(self, device_id: str, path: str) -> None:
        device = self._devices.get(device_id)
        if device is not None:
            device.cursor_path = path

    def find_by_label(self, label: str | None) -> Device | None:
        """按显示名查找第一台匹配的设备（回调里没有 device_id 时使用）。"""
        if not label:
            return None
        matches = [d for d in self._devices.values() if d.label == label]
        if len(matches) > 1:
            logger.warning(
                f"⚠️ 有 {len(matches)} 台设备同名 {label!r}，按名称匹配只取第一台: {matches[0].id}"
            )
        return matches[0] if matches else None

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices
