"""
@PURPOSE: 阶段执行器的公共部分: 控制台 URL 构造、阶段上下文、运行中间状态、可选步骤
@OUTLINE:
  - class OptionalStep: 可选 UI 步骤结果(HANDLED/SKIPPED/FAILED)
  - dataclass ConsoleUrls: 开发者控制台/Partners 控制台 URL 构造
  - dataclass RunState: 阶段之间向前传递的中间产物
  - dataclass StageContext: 阶段执行所需的页面/解析器/导航器/阻断处理器
  - class Stage: 阶段基类
@GOTCHAS:
  - 阶段只向前传递数据, 不回滚, 不重入
  - 可选步骤"存在但点击失败"由调用方决定是否致命
  - StageContext.for_page() 为新页面生成上下文, 共享令牌/阻断处理器/诊断器
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: ..browser, ..utils.state_detector, ..models
"""

from __future__ import annotations

import dataclasses
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..models import Credentials, ResourceRecord, WorkflowRequest

if TYPE_CHECKING:
    from config.settings import Settings

    from ..browser.browser_manager import BrowserSession
    from ..browser.debug_tools import DiagnosticsRecorder
    from ..browser.element_resolver import ElementResolver
    from ..browser.navigator import Navigator
    from ..core.cancellation import CancellationToken
    from ..utils.state_detector import BlockingGuard

_APP_ID_RE = re.compile(r"/apps/(\d+)(?:[/?#]|$)")


def extract_app_id(url: str) -> str | None:
    """从应用详情页 URL 中解析应用 ID.

    Examples:
        >>> extract_app_id("https://dev.shopify.com/dashboard/1/apps/42/versions")
        '42'
        >>> extract_app_id("https://dev.shopify.com/dashboard/1/apps/new") is None
        True
    """
    match = _APP_ID_RE.search(url or "")
    return match.group(1) if match else None


class OptionalStep(Enum):
    """可选 UI 步骤的结果."""

    HANDLED = "handled"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ConsoleUrls:
    """控制台 URL 构造."""

    dashboard_url: str
    dev_base: str
    partners_base: str
    group_id: str
    partners_id: str

    @classmethod
    def from_settings(cls, settings: Settings) -> ConsoleUrls:
        return cls(
            dashboard_url=settings.shopify_dev_dashboard_url,
            dev_base=settings.dev_console_base_url.rstrip("/"),
            partners_base=settings.partners_base_url.rstrip("/"),
            group_id=settings.console_group_id or "",
            partners_id=settings.shopify_partners_id,
        )

    def _app(self, app_id: str) -> str:
        return f"{self.dev_base}/dashboard/{self.group_id}/apps/{app_id}"

    def apps_new(self) -> str:
        return f"{self.dev_base}/dashboard/{self.group_id}/apps/new"

    def versions_new(self, app_id: str) -> str:
        return f"{self._app(app_id)}/versions/new"

    def versions(self, app_id: str) -> str:
        return f"{self._app(app_id)}/versions"

    def app_settings(self, app_id: str) -> str:
        return f"{self._app(app_id)}/settings"

    def distribution(self, app_id: str) -> str:
        return f"{self.partners_base}/{self.partners_id}/apps/{app_id}/distribution"


@dataclass
class RunState:
    """单次运行的中间产物, 由各阶段依次填充."""

    request: WorkflowRequest
    display_name: str
    record: ResourceRecord | None = None
    credentials: Credentials = field(default_factory=Credentials)
    distribution_page: Page | None = None
    distribution_url: str = ""
    activation_link: str = ""
    warnings: list[str] = field(default_factory=list)

    def require_record(self) -> ResourceRecord:
        if self.record is None:
            raise RuntimeError("应用尚未创建, 阶段顺序错误")
        return self.record


@dataclass
class StageContext:
    """阶段执行上下文."""

    session: BrowserSession
    page: Page
    resolver: ElementResolver
    navigator: Navigator
    guard: BlockingGuard
    settings: Settings
    urls: ConsoleUrls
    diagnostics: DiagnosticsRecorder
    token: CancellationToken
    last_destination: str | None = None

    def for_page(self, page: Page) -> StageContext:
        """为另一个页面生成上下文."""
        return dataclasses.replace(
            self,
            page=page,
            resolver=self.resolver.for_page(page),
            navigator=self.navigator.for_page(page),
            last_destination=None,
        )

    async def open(self, url: str) -> str:
        """打开页面并处理阻断状态, 返回最终 URL."""
        self.last_destination = url
        await self.navigator.goto(url)
        await self.guard.ensure_clear(self.navigator, destination=url)
        return self.page.url

    async def settle(self, ms: int | None = None) -> None:
        await self.navigator.settle(ms)

    async def capture(self, step: str) -> None:
        await self.diagnostics.capture(self.page, step)

    async def click_optional(self, target: str, *, timeout_ms: float | None = None) -> OptionalStep:
        """点击可选元素.

        Returns:
            HANDLED 已点击; SKIPPED 元素不存在; FAILED 元素存在但点击失败
        """
        locator = await self.resolver.resolve(target, timeout_ms=timeout_ms)
        if locator is None:
            logger.debug(f"可选步骤 {target} 不存在, 跳过")
            return OptionalStep.SKIPPED
        try:
            await locator.click(force=True)
        except PlaywrightError as exc:
            logger.warning(f"可选步骤 {target} 点击失败: {exc}")
            return OptionalStep.FAILED
        logger.debug(f"可选步骤 {target} 已处理")
        return OptionalStep.HANDLED


class Stage(ABC):
    """阶段基类.

    子类实现 execute(), 成功返回阶段明细(写入 StageOutcome.details), 失败抛出 AppGeneratorError.
    """

    name: ClassVar[str]
    title: ClassVar[str]

    @abstractmethod
    async def execute(self, ctx: StageContext, state: RunState) -> dict[str, Any]:
        """执行阶段."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
