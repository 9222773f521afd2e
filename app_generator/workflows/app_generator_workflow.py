"""
@PURPOSE: 应用生成工作流编排器 - 校验请求, 独占一个浏览器会话, 顺序执行各阶段并汇总结果
@OUTLINE:
  - dataclass WorkflowExecution: 单次运行记录(阶段结果/绕过次数/最终结果)
  - class AppGeneratorWorkflow: 工作流主体
      - run(): 执行并返回 WorkflowResult, 失败抛出类型化异常
      - execute(): 执行并返回完整运行记录
      - _run_stage(): 单阶段执行(超时/状态迁移/失败截图/异常包装)
@GOTCHAS:
  - 请求校验与配置检查在启动浏览器之前完成
  - 浏览器会话在 finally 中关闭, 成功或失败都恰好关闭一次
  - 阶段内未预期的 Playwright 异常统一包装为 AmbiguousUiStateError
  - 运行失败不返回部分结果
  - 交互式重新登录模式强制有界面浏览器; 人工等待期间阶段超时与运行截止时间暂停
  - 阶段开始前检查下一阶段实际使用的页面(分发页打开后为分发页)
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: ..browser.*, ..stages, ..utils.*, ..core.*, ..models, ..errors
@RELATED: server/api.py, cli/commands/workflow.py
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from ..browser.browser_manager import BrowserSession, PlaywrightFactory
from ..browser.debug_tools import DiagnosticsRecorder
from ..browser.element_resolver import ElementResolver, SelectorCatalog
from ..browser.navigator import Navigator
from ..browser.session_store import SessionStore
from ..core.cancellation import CancellationToken
from ..core.workflow_timeout import TimeoutConfig, get_timeout_config, with_stage_timeout
from ..errors import AmbiguousUiStateError, AppGeneratorError, StageTimeoutError
from ..models import (
    DEFAULT_NOTE,
    StageOutcome,
    StageStatus,
    WorkflowRequest,
    WorkflowResult,
    build_display_name,
    validate_request,
)
from ..stages import ConsoleUrls, RunState, Stage, StageContext, default_stages
from ..utils.logger_setup import get_logger_with_context
from ..utils.state_detector import BlockingDetector, BlockingGuard

if TYPE_CHECKING:
    from config.settings import Settings


@dataclass(slots=True)
class WorkflowExecution:
    """单次运行记录."""

    workflow_id: str
    request: WorkflowRequest
    stages: list[StageOutcome] = field(default_factory=list)
    chooser_attempts: int = 0
    reauth_refreshed: bool = False
    result: WorkflowResult | None = None

    @property
    def success(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "success": self.success,
            "chooser_attempts": self.chooser_attempts,
            "reauth_refreshed": self.reauth_refreshed,
            "stages": [stage.to_dict() for stage in self.stages],
            "result": self.result.model_dump() if self.result else None,
        }


class AppGeneratorWorkflow:
    """Shopify 自定义应用生成工作流.

    Examples:
        >>> workflow = AppGeneratorWorkflow(create_settings("production"))
        >>> result = await workflow.run(WorkflowRequest("Acme", "acme.myshopify.com"))
        >>> result.app_name
        'Acme x Retention'
    """

    def __init__(
        self,
        settings: Settings,
        *,
        catalog: SelectorCatalog | None = None,
        session_store: SessionStore | None = None,
        stages: Sequence[Stage] | None = None,
        playwright_factory: PlaywrightFactory | None = None,
        detector: BlockingDetector | None = None,
        headless: bool | None = None,
    ):
        self.settings = settings
        self.catalog = catalog or SelectorCatalog.load(
            settings.get_absolute_path(settings.selector_catalog_path)
        )
        self.session_store = session_store or SessionStore(
            settings.get_absolute_path(settings.storage_state_path)
        )
        self.stages: list[Stage] = list(stages) if stages is not None else default_stages()
        self.timeouts: TimeoutConfig = get_timeout_config(settings.workflow)
        self.detector = detector or BlockingDetector()
        self.headless = headless
        self._playwright_factory = playwright_factory

    async def run(self, request: WorkflowRequest, token: CancellationToken | None = None) -> WorkflowResult:
        """执行工作流.

        Raises:
            AppGeneratorError: 任一阶段失败(具体子类见 errors.py)
        """
        return await self._perform(WorkflowExecution(workflow_id=uuid.uuid4().hex, request=request), token)

    async def execute(
        self,
        request: WorkflowRequest,
        token: CancellationToken | None = None,
    ) -> WorkflowExecution:
        """执行工作流并返回完整运行记录."""
        execution = WorkflowExecution(workflow_id=uuid.uuid4().hex, request=request)
        execution.result = await self._perform(execution, token)
        return execution

    def _resolve_headless(self) -> bool:
        headless = self.settings.browser.headless if self.headless is None else self.headless
        if headless and self.settings.interactive_reauth:
            # 交互模式需要可见窗口供人工完成验证
            logger.info("交互式重新登录模式, 浏览器以有界面模式启动")
            return False
        return headless

    def _create_session(self) -> BrowserSession:
        return BrowserSession(
            self.settings.browser,
            storage_state=self.session_store.state_file,
            headless=self._resolve_headless(),
            playwright_factory=self._playwright_factory,
        )

    async def _perform(self, execution: WorkflowExecution, token: CancellationToken | None) -> WorkflowResult:
        request = execution.request
        validate_request(request)
        self.settings.require_workflow_config()

        if token is None:
            token = CancellationToken.with_timeout(self.settings.workflow.run_timeout_seconds)

        log = get_logger_with_context(workflow_id=execution.workflow_id)
        log.info(f"开始生成应用: brand={request.brand_name}, store={request.store_domain}")

        if not self.session_store.exists():
            log.warning(f"会话文件不存在, 控制台很可能要求登录: {self.session_store.state_file}")
        elif self.session_store.is_stale():
            log.warning("会话文件较旧, 如遇登录页请重新采集会话")

        session = self._create_session()
        guard = BlockingGuard.from_settings(
            self.settings,
            session_store=self.session_store,
            token=token,
            detector=self.detector,
        )
        diagnostics = DiagnosticsRecorder(
            enabled=self.settings.debug.screenshots,
            output_dir=self.settings.get_absolute_path(self.settings.debug.screenshot_dir),
            save_html=self.settings.debug.save_html,
            run_id=execution.workflow_id,
        )

        try:
            page = await token.run(session.start())
            ctx = StageContext(
                session=session,
                page=page,
                resolver=ElementResolver(
                    page,
                    self.catalog,
                    default_timeout_ms=self.settings.browser.action_timeout_ms,
                    token=token,
                ),
                navigator=Navigator(
                    page,
                    timeout_ms=self.settings.browser.navigation_timeout_ms,
                    settle_ms=self.settings.workflow.settle_ms,
                    token=token,
                ),
                guard=guard,
                settings=self.settings,
                urls=ConsoleUrls.from_settings(self.settings),
                diagnostics=diagnostics,
                token=token,
            )
            state = RunState(
                request=request,
                display_name=build_display_name(request.brand_name, self.settings.app_name_suffix),
            )

            for stage in self.stages:
                await self._run_stage(stage, ctx, state, execution)

            result = WorkflowResult(
                app_name=state.display_name,
                client_id=state.credentials.client_id,
                client_secret=state.credentials.client_secret,
                distribution_link=state.activation_link,
                store_domain=request.store_domain,
                note=DEFAULT_NOTE,
                warnings=list(state.warnings),
            )
            log.success(
                f"应用生成完成: {state.display_name} "
                f"(link={'yes' if state.activation_link else 'no'}, warnings={len(state.warnings)})"
            )
            return result
        finally:
            execution.chooser_attempts = guard.chooser_attempts
            execution.reauth_refreshed = guard.reauth_refreshed
            await session.close()

    async def _run_stage(
        self,
        stage: Stage,
        ctx: StageContext,
        state: RunState,
        execution: WorkflowExecution,
    ) -> None:
        outcome = StageOutcome(name=stage.name, status=StageStatus.RUNNING)
        execution.stages.append(outcome)
        log = get_logger_with_context(workflow_id=execution.workflow_id, stage=stage.name)
        attempts_before = ctx.guard.chooser_attempts
        started = time.perf_counter()

        def active_page() -> Any:
            return state.distribution_page or ctx.page

        async def on_timeout() -> None:
            await ctx.diagnostics.capture(active_page(), f"{stage.name}-timeout")

        log.info(f"▶ 阶段开始: {stage.title}")
        try:
            ctx.token.check()
            await self._ensure_clear_before(ctx, state)
            async with with_stage_timeout(
                stage.name, self.timeouts.get(stage.name), on_timeout=on_timeout, token=ctx.token
            ):
                details = await stage.execute(ctx, state)
        except AppGeneratorError as exc:
            exc.stage = exc.stage or stage.name
            exc.url = exc.url or _safe_url(active_page())
            await self._fail(outcome, exc, active_page(), ctx, started, attempts_before, log)
            raise
        except PlaywrightError as exc:
            wrapped = AmbiguousUiStateError(
                f"{stage.title}阶段出现未预期的页面错误: {exc}",
                url=_safe_url(active_page()),
                stage=stage.name,
            )
            await self._fail(outcome, wrapped, active_page(), ctx, started, attempts_before, log)
            raise wrapped from exc

        outcome.status = StageStatus.VERIFIED
        outcome.elapsed_seconds = time.perf_counter() - started
        outcome.details = dict(details or {})
        attempts = ctx.guard.chooser_attempts - attempts_before
        if attempts:
            outcome.details["chooser_attempts"] = attempts
        outcome.message = "ok"
        log.success(f"✔ 阶段完成: {stage.title} ({outcome.elapsed_seconds:.1f}s)")

    async def _ensure_clear_before(self, ctx: StageContext, state: RunState) -> None:
        """阶段开始前检查下一阶段将使用的页面(分发页打开后检查分发页)."""
        if state.distribution_page is not None:
            navigator = ctx.navigator.for_page(state.distribution_page)
            await ctx.guard.ensure_clear(navigator, destination=state.distribution_url or None)
        elif ctx.last_destination:
            await ctx.guard.ensure_clear(ctx.navigator, destination=ctx.last_destination)

    async def _fail(
        self,
        outcome: StageOutcome,
        exc: AppGeneratorError,
        page: Any,
        ctx: StageContext,
        started: float,
        attempts_before: int,
        log: Any,
    ) -> None:
        outcome.status = StageStatus.FAILED
        outcome.elapsed_seconds = time.perf_counter() - started
        outcome.message = exc.message
        outcome.details = {"error": exc.to_dict()}
        attempts = ctx.guard.chooser_attempts - attempts_before
        if attempts:
            outcome.details["chooser_attempts"] = attempts
        log.error(f"✖ 阶段失败: {exc}")
        if not isinstance(exc, StageTimeoutError):
            await ctx.diagnostics.capture(page, f"{outcome.name}-failed")


def _safe_url(page: Any) -> str | None:
    try:
        return page.url
    except PlaywrightError:
        return None


