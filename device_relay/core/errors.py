from __future__ import annotations


class RelayError(Exception):
    """中继服务内部错误的基类。"""


class DeviceNotFound(RelayError):
    def __init__(self, device_id: str | None) -> None:
        super().__init__(f"device not found: {device_id}")
        self.device_id = device_id


class UnknownVerb(RelayError):
    def __init__(self, verb: str) -> None:
        super().__init__(f"unknown verb: {verb}")
        self.verb = verb
