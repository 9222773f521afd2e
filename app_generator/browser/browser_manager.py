"""
@PURPOSE: 单次运行独占的浏览器会话: 一个 Playwright 实例 + 浏览器 + 已认证上下文 + 若干页面
@OUTLINE:
  - class BrowserSession: 浏览器会话
    - async def start(): 启动 Playwright/浏览器并用会话文件创建上下文
    - async def new_page(): 在上下文中新开页面
    - async def close(): 按 Page → Context → Browser → Playwright 顺序关闭, 恰好一次
@GOTCHAS:
  - close() 幂等, 重复调用不会再次关闭任何资源
  - 每个资源关闭都有独立超时, 某个资源关闭失败不影响其他资源
  - playwright_factory 可注入, 测试中不启动真实浏览器
@DEPENDENCIES:
  - 外部: playwright.async_api, loguru
  - 内部: config.settings.BrowserConfig
@RELATED: session_store.py, workflows/app_generator_workflow.py
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

if TYPE_CHECKING:
    from config.settings import BrowserConfig

PlaywrightFactory = Callable[[], Awaitable[Playwright]]


async def _start_playwright() -> Playwright:
    return await async_playwright().start()


class BrowserSession:
    """浏览器会话.

    Examples:
        >>> async with BrowserSession(settings.browser, storage_state="storage/s.json") as session:
        ...     page = session.page
    """

    def __init__(
        self,
        config: BrowserConfig,
        *,
        storage_state: str | Path | None = None,
        headless: bool | None = None,
        playwright_factory: PlaywrightFactory | None = None,
    ):
        self.config = config
        self.storage_state = storage_state
        self.headless = config.headless if headless is None else headless
        self._playwright_factory = playwright_factory or _start_playwright

        self.playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.pages: list[Page] = []
        self._closed = False

    @property
    def page(self) -> Page:
        """主页面."""
        if not self.pages:
            raise RuntimeError("浏览器未启动")
        return self.pages[0]

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> Page:
        """启动浏览器并返回主页面."""
        if self._closed:
            raise RuntimeError("浏览器会话已关闭, 不能重复启动")

        logger.info(f"启动 Playwright 浏览器 (headless={self.headless})")
        self.playwright = await self._playwright_factory()

        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            args=list(self.config.launch_args),
            slow_mo=self.config.slow_mo,
        )

        context_options: dict[str, Any] = {"viewport": dict(self.config.viewport)}
        if self.storage_state is not None:
            state_path = Path(self.storage_state)
            if state_path.exists():
                context_options["storage_state"] = str(state_path)
                logger.debug(f"使用会话文件: {state_path}")
            else:
                logger.warning(f"会话文件不存在, 以未登录状态启动: {state_path}")

        self.context = await self.browser.new_context(**context_options)
        self.context.set_default_timeout(self.config.action_timeout_ms)
        self.context.set_default_navigation_timeout(self.config.navigation_timeout_ms)

        return await self.new_page()

    async def new_page(self) -> Page:
        """在当前上下文中新开页面."""
        if self.context is None:
            raise RuntimeError("浏览器未启动")
        page = await self.context.new_page()
        self.pages.append(page)
        return page

    async def _close_one(
        self,
        name: str,
        action: Callable[[], Awaitable[Any]],
        timeout: float,
        errors: list[tuple[str, BaseException]],
    ) -> None:
        try:
            await asyncio.wait_for(action(), timeout=timeout)
        except TimeoutError:
            errors.append((name, TimeoutError(f"{name} 关闭超时 ({timeout}s)")))
            logger.warning(f"{name} 关闭超时 ({timeout}s)")
        except Exception as exc:
            errors.append((name, exc))
            logger.debug(f"{name} 关闭失败: {exc}")

    async def close(self) -> None:
        """关闭所有资源, 恰好执行一次.

        清理顺序: Page → Context → Browser → Playwright
        """
        if self._closed:
            return
        self._closed = True
        errors: list[tuple[str, BaseException]] = []

        try:
            for page in self.pages:
                await self._close_one("page", page.close, 5.0, errors)
        finally:
            self.pages = []

        try:
            if self.context is not None:
                await self._close_one("context", self.context.close, 5.0, errors)
        finally:
            self.context = None

        try:
            if self.browser is not None:
                await self._close_one("browser", self.browser.close, 10.0, errors)
        finally:
            self.browser = None

        try:
            if self.playwright is not None:
                await self._close_one("playwright", self.playwright.stop, 5.0, errors)
        finally:
            self.playwright = None

        if errors:
            error_summary = ", ".join(f"{name}:{type(e).__name__}" for name, e in errors)
            logger.warning(f"浏览器关闭过程中有 {len(errors)} 个错误: {error_summary}")
        else:
            logger.info("浏览器已关闭")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
