"""
@PURPOSE: 页面跳转封装: 打开 URL、等待 URL 模式、等待加载状态, 全部带超时与取消检查
@OUTLINE:
  - class Navigator: 单页面导航器
    - goto(): 打开 URL
    - wait_for_url(): 等待 URL 匹配模式
    - wait_for_load_state(): 等待加载状态(可选为尽力而为)
    - settle(): 控制台动画后的短暂稳定等待
@GOTCHAS:
  - Playwright 超时统一转换为 NavigationTimeoutError, 携带目标与当前 URL
  - settle 只用于已知有动画的位置, 其余一律使用条件等待
@DEPENDENCIES:
  - 外部: playwright.async_api, loguru
  - 内部: ..errors, ..core.cancellation
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Literal

from loguru import logger
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.cancellation import CancellationToken
from ..errors import NavigationTimeoutError

LoadState = Literal["load", "domcontentloaded", "networkidle"]


class Navigator:
    """单页面导航器."""

    def __init__(
        self,
        page: Page,
        *,
        timeout_ms: float = 60_000,
        settle_ms: int = 0,
        token: CancellationToken | None = None,
    ):
        self.page = page
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.token = token or CancellationToken()

    def for_page(self, page: Page) -> Navigator:
        return Navigator(page, timeout_ms=self.timeout_ms, settle_ms=self.settle_ms, token=self.token)

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(
        self,
        url: str,
        *,
        wait_until: LoadState = "domcontentloaded",
        timeout_ms: float | None = None,
    ) -> str:
        """打开 URL, 返回跳转后的实际 URL."""
        wait_ms = self.token.clamp_ms(timeout_ms or self.timeout_ms)
        logger.debug(f"打开页面: {url}")
        try:
            await self.token.run(self.page.goto(url, wait_until=wait_until, timeout=wait_ms))
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(url, wait_ms, url=self.page.url) from exc
        logger.debug(f"当前页面: {self.page.url}")
        return self.page.url

    async def wait_for_url(
        self,
        pattern: str | re.Pattern[str] | Callable[[str], bool],
        *,
        timeout_ms: float | None = None,
        description: str | None = None,
    ) -> str:
        """等待当前 URL 匹配模式.

        Raises:
            NavigationTimeoutError: 超时仍未匹配
        """
        wait_ms = self.token.clamp_ms(timeout_ms or self.timeout_ms)
        target = description or getattr(pattern, "pattern", None) or str(pattern)
        try:
            await self.token.run(self.page.wait_for_url(pattern, timeout=wait_ms))
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(f"URL {target}", wait_ms, url=self.page.url) from exc
        return self.page.url

    async def wait_for_load_state(
        self,
        state: LoadState = "networkidle",
        *,
        timeout_ms: float | None = None,
        required: bool = True,
    ) -> bool:
        """等待加载状态.

        Args:
            state: 目标加载状态
            timeout_ms: 超时(毫秒)
            required: False 时超时只记录日志并返回 False

        Returns:
            是否在超时内达到目标状态
        """
        wait_ms = self.token.clamp_ms(timeout_ms or self.timeout_ms)
        try:
            await self.token.run(self.page.wait_for_load_state(state, timeout=wait_ms))
        except PlaywrightTimeoutError as exc:
            if required:
                raise NavigationTimeoutError(f"load state {state}", wait_ms, url=self.page.url) from exc
            logger.debug(f"等待 {state} 超时 ({int(wait_ms)}ms), 继续执行")
            return False
        return True

    async def settle(self, ms: int | None = None) -> None:
        """短暂等待控制台动画结束."""
        delay = self.settle_ms if ms is None else ms
        await self.token.sleep(delay / 1000)
