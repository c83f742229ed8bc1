"""
事件泵：所有操作员事件与设备回调都排进同一个 asyncio 队列，由单个 worker 按到达顺序逐个处理。

- 任一事件处理抛出的异常只记录日志，worker 继续运行
- submit() 返回 Future，需要结果的调用方（卡片回调的 toast）可以等待它
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from .context import request_context

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


class EventPump:
    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, name: str, handler: Handler, *args: Any, **kwargs: Any) -> asyncio.Future:
        fut = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((name, handler, args, kwargs, fut))
        return fut

    async def call(self, name: str, handler: Handler, *args: Any, timeout_s: float | None = None, **kwargs: Any) -> Optional[Any]:
        """排队执行并等待结果；超时返回 None（事件仍会在队列中被处理）。"""
        fut = self.submit(name, handler, *args, **kwargs)
        try:
            return await asyncio.wait_for(asyncio.shield(fut), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ 事件处理超时，先行返回: {name}")
            return None

    async def _run_one(self, name: str, handler: Handler, args: tuple, kwargs: dict, fut: asyncio.Future) -> None:
        trace_id = str(uuid.uuid4())
        with request_context(trace_id=trace_id):
            try:
                result = await handler(*args, **kwargs)
            except Exception as e:
                logger.exception(f"❌ 事件处理异常: {name}, Error: {e}")
                result = None
        if not fut.done():
            fut.set_result(result)

    async def _run(self) -> None:
        while True:
            name, handler, args, kwargs, fut = await self._queue.get()
            try:
                await self._run_one(name, handler, args, kwargs, fut)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """等待队列中已有的事件全部处理完。"""
        await self._queue.join()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="event-pump")
            logger.info("✅ 事件泵已启动")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
