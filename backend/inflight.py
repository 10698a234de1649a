# backend/inflight.py

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """
    Map fingerprint -> task đang chạy.
    Lời gọi thứ hai với cùng key sẽ chờ kết quả của lời gọi đầu
    thay vì submit thêm một job trùng.

    Mỗi caller join() rồi leave(); task chung chỉ bị hủy khi
    caller cuối cùng rời đi trước khi task xong.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, "asyncio.Task[Any]"] = {}
        self._participants: Dict["asyncio.Task[Any]", int] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def join(self, key: str, factory: Callable[[], Awaitable[Any]]) -> "asyncio.Task[Any]":
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.info("Joining in-flight request %s", key[:12])
        self._participants[task] = self._participants.get(task, 0) + 1
        return task

    def leave(self, key: str, task: "asyncio.Task[Any]") -> None:
        remaining = self._participants.get(task, 1) - 1
        if remaining > 0:
            self._participants[task] = remaining
            return

        self._participants.pop(task, None)
        if not task.done():
            logger.info("Abandoning in-flight request %s", key[:12])
            # bỏ khỏi registry ngay để caller mới không join vào task đang bị hủy
            self._forget(key, task)
            task.cancel()

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self.join(key, factory)
        try:
            # shield: caller này bị cancel thì không kéo theo job chung
            return await asyncio.shield(task)
        finally:
            self.leave(key, task)

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
