"""
@PURPOSE: 阶段超时控制器 - 为每个工作流阶段提供硬性超时保护, 防止单个阶段卡死
@OUTLINE:
  - dataclass TimeoutConfig: 各阶段超时配置
  - class StageTimer: 可暂停的阶段计时器
  - def get_timeout_config(): 由 WorkflowConfig 构建超时配置
  - @asynccontextmanager with_stage_timeout(): 阶段超时上下文管理器
@GOTCHAS:
  - 超时后会触发 on_timeout 回调(例如失败截图), 回调异常只记录不抛出
  - 阶段超时与运行级截止时间(CancellationToken)相互独立, 先到先触发
  - 传入 token 时计时器登记到令牌上, token.suspend() 期间(人工验证)不计时
@DEPENDENCIES:
  - 外部: loguru
  - 内部: ..errors
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from ..errors import StageTimeoutError

if TYPE_CHECKING:
    from .cancellation import CancellationToken


@dataclass(frozen=True)
class TimeoutConfig:
    """超时配置.

    Attributes:
        stages: 阶段名称 → 超时秒数
        default: 未配置阶段的默认超时(秒)
    """

    stages: Mapping[str, float] = field(default_factory=dict)
    default: float = 180.0

    def get(self, stage_name: str, default: float | None = None) -> float:
        """获取指定阶段的超时时间."""
        fallback = self.default if default is None else default
        return float(self.stages.get(stage_name, fallback))


def get_timeout_config(workflow_config: Any | None = None) -> TimeoutConfig:
    """由 WorkflowConfig(或任意带 stage_timeouts 属性的对象)构建超时配置."""
    if workflow_config is None:
        return TimeoutConfig()
    return TimeoutConfig(
        stages=dict(workflow_config.stage_timeouts),
        default=workflow_config.default_stage_timeout,
    )


class StageTimer:
    """可暂停的阶段计时器, 包装 asyncio.timeout 返回的 Timeout 对象."""

    def __init__(self, timeout: asyncio.Timeout, seconds: float):
        self._timeout = timeout
        self.seconds = seconds
        self.paused_seconds = 0.0

    @contextmanager
    def paused(self) -> Iterator[None]:
        """块内不计时, 退出时恢复剩余时间."""
        when = self._timeout.when()
        if when is None or self._timeout.expired():
            yield
            return
        loop = asyncio.get_running_loop()
        remaining = max(0.0, when - loop.time())
        paused_at = loop.time()
        self._timeout.reschedule(None)
        try:
            yield
        finally:
            self.paused_seconds += loop.time() - paused_at
            self._timeout.reschedule(loop.time() + remaining)


@asynccontextmanager
async def with_stage_timeout(
    stage_name: str,
    timeout_seconds: float,
    on_timeout: Callable[[], Awaitable[Any] | Any] | None = None,
    *,
    token: CancellationToken | None = None,
):
    """阶段超时上下文管理器.

    在指定时间内未完成则抛出 StageTimeoutError.

    Args:
        stage_name: 阶段名称(用于日志和错误信息)
        timeout_seconds: 超时时间(秒)
        on_timeout: 超时时的回调函数(可选)
        token: 运行令牌, 计时器随 token.suspend() 暂停(可选)

    Raises:
        StageTimeoutError: 超时时抛出

    Examples:
        >>> async with with_stage_timeout("create_app", 180, token=token) as timer:
        ...     await stage.execute(ctx, state)
    """
    started_at = datetime.now()
    logger.debug(f"[TIMEOUT] 阶段 '{stage_name}' 开始执行, 超时限制: {timeout_seconds}s")
    timer: StageTimer | None = None

    try:
        async with asyncio.timeout(timeout_seconds) as timeout:
            timer = StageTimer(timeout, timeout_seconds)
            if token is None:
                yield timer
            else:
                with token.attach(timer):
                    yield timer
        elapsed = (datetime.now() - started_at).total_seconds()
        logger.debug(f"[TIMEOUT] 阶段 '{stage_name}' 完成, 耗时: {elapsed:.1f}s")
    except TimeoutError:
        elapsed = (datetime.now() - started_at).total_seconds()
        if timer is not None:
            elapsed -= timer.paused_seconds
        logger.error(
            f"[TIMEOUT] 阶段 '{stage_name}' 执行超时! "
            f"限制: {timeout_seconds}s, 实际耗时: {elapsed:.1f}s"
        )

        if on_timeout is not None:
            try:
                logger.info(f"[TIMEOUT] 执行阶段 '{stage_name}' 的超时回调")
                outcome = on_timeout()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"[TIMEOUT] 超时回调执行失败: {e}")

        raise StageTimeoutError(stage_name, timeout_seconds, elapsed) from None
