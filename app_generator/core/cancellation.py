"""
@PURPOSE: 运行级取消令牌, 携带可选截止时间, 在每个挂起点检查
@OUTLINE:
  - class CancellationToken: 取消令牌
    - cancel(): 请求取消
    - check(): 已取消或超过截止时间时抛出 WorkflowCancelledError
    - clamp_ms(): 将单次等待的超时裁剪到剩余时间内
    - run(): 让一个挂起操作与取消事件竞争
    - sleep(): 可取消的等待
    - attach(): 在块内登记可暂停的计时器(阶段超时)
    - suspend(): 暂停截止时间与已登记计时器, 退出时按暂停时长顺延
@GOTCHAS:
  - asyncio.Event 在首次使用时绑定事件循环, 令牌不要跨事件循环复用
  - run() 被取消时会同时取消内部任务, 不遗留后台任务
  - suspend() 期间取消事件仍然有效, 只有截止时间被暂停
@DEPENDENCIES:
  - 内部: ..errors
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterator
from contextlib import ExitStack, contextmanager
from typing import Any, TypeVar

from ..errors import WorkflowCancelledError

T = TypeVar("T")


class CancellationToken:
    """运行取消令牌.

    Examples:
        >>> token = CancellationToken.with_timeout(600)
        >>> token.check()
        >>> token.cancel("客户端断开")
        >>> token.cancelled
        True
    """

    def __init__(
        self,
        deadline: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._deadline = deadline
        self._clock = clock
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._pausables: list[Any] = []

    @classmethod
    def with_timeout(
        cls,
        seconds: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> CancellationToken:
        """创建 seconds 秒后到期的令牌, seconds 为 None 时不设截止时间."""
        deadline = None if seconds is None else clock() + seconds
        return cls(deadline, clock=clock)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "调用方取消") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def remaining(self) -> float | None:
        """剩余秒数, 无截止时间时返回 None."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """挂起点检查.

        Raises:
            WorkflowCancelledError: 已取消或已超过截止时间
        """
        if self.cancelled:
            raise WorkflowCancelledError(self._reason or "调用方取消")
        if self.expired():
            raise WorkflowCancelledError("超过运行截止时间")

    def clamp_ms(self, timeout_ms: float) -> float:
        """将超时(毫秒)裁剪到截止时间之内, 最少 1ms (Playwright 中 0 表示不限时)."""
        remaining = self.remaining()
        if remaining is None:
            return timeout_ms
        return max(1.0, min(timeout_ms, remaining * 1000))

    async def run(self, awaitable: Awaitable[T]) -> T:
        """执行挂起操作, 取消事件或截止时间先到则中止.

        Raises:
            WorkflowCancelledError: 操作完成前被取消或到期
        """
        try:
            self.check()
        except WorkflowCancelledError:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self.check()
        raise WorkflowCancelledError("超过运行截止时间")

    async def sleep(self, seconds: float) -> None:
        """可取消的等待."""
        if seconds <= 0:
            self.check()
            return
        await self.run(asyncio.sleep(seconds))

    @contextmanager
    def attach(self, pausable: Any) -> Iterator[Any]:
        """在块内登记一个提供 paused() 的计时器, suspend() 时一并暂停."""
        self._pausables.append(pausable)
        try:
            yield pausable
        finally:
            self._pausables.remove(pausable)

    @contextmanager
    def suspend(self) -> Iterator[None]:
        """暂停截止时间(例如等待人工验证), 退出时按暂停时长顺延.

        Raises:
            WorkflowCancelledError: 进入时已取消或已到期
        """
        self.check()
        deadline = self._deadline
        started = self._clock()
        self._deadline = None
        try:
            with ExitStack() as stack:
                for pausable in list(self._pausables):
                    stack.enter_context(pausable.paused())
                yield
        finally:
            if deadline is not None:
                self._deadline = deadline + (self._clock() - started)
