"""
事件上下文：trace_id / chat_id / device_id。

事件泵为每个事件分配 trace_id，broker 在处理时补上 chat_id / device_id，
日志 formatter 通过 current() 读取，一次按钮点击到设备回传的日志可以串起来。
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

CONTEXT_FIELDS = ("trace_id", "chat_id", "device_id")

_vars: Dict[str, contextvars.ContextVar[Optional[str]]] = {
    name: contextvars.ContextVar(name, default=None) for name in CONTEXT_FIELDS
}


def current() -> Dict[str, Optional[str]]:
    return {name: var.get() for name, var in _vars.items()}


def get_trace_id() -> str | None:
    return _vars["trace_id"].get()


@contextmanager
def request_context(**values: Optional[str]) -> Iterator[None]:
    """
    设置上下文字段，退出时恢复。
    只覆盖传入且非 None 的字段，其余沿用外层的值。
    """
    tokens = []
    for name, value in values.items():
        if name not in _vars:
            raise TypeError(f"unknown context field: {name}")
        if value is not None:
            tokens.append((_vars[name], _vars[name].set(value)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
