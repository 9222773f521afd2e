"""
@PURPOSE: 端到端测试应用生成工作流(模拟控制台 + 模拟浏览器)
@OUTLINE:
  - TestHappyPath: 完整成功路径与结果汇总
  - TestTeardown: 成功/失败都恰好关闭一次浏览器资源
  - TestFailures: 启动前失败、重新登录墙、账号选择页、阶段超时、取消、异常包装
  - TestInteractiveReauth: 人工验证等待不占用阶段与运行预算, 强制有界面浏览器
  - test_blocking_check_uses_distribution_page: 阶段间检查分发页
@DEPENDENCIES:
  - 外部: pytest, pytest-asyncio, playwright(异常类型)
  - 内部: app_generator.workflows, tests.mocks
"""

import asyncio
import json

import pytest
from playwright.async_api import Error as PlaywrightError

from app_generator.core.cancellation import CancellationToken
from app_generator.errors import (
    AccountChooserError,
    AmbiguousUiStateError,
    BlockedByReauthError,
    ConfigurationError,
    StageTimeoutError,
    ValidationError,
    WorkflowCancelledError,
)
from app_generator.models import StageStatus, WorkflowRequest, WorkflowResult
from app_generator.stages import (
    ConfigureVersionStage,
    CreateAppStage,
    GenerateLinkStage,
    ScrapeCredentialsStage,
    SelectDistributionStage,
    Stage,
)
from app_generator.workflows import WorkflowExecution
from config.settings import WorkflowConfig, create_settings
from tests.mocks import (
    APP_URL,
    CHOOSER_URL,
    CLIENT_ID,
    CLIENT_SECRET,
    DASHBOARD_URL,
    DISTRIBUTION_URL,
    INSTALL_LINK,
    LOGIN_URL,
    SCOPES_CSV,
    build_shopify_console,
)

REQUEST = WorkflowRequest(brand_name="Acme", store_domain="acme.myshopify.com")

STAGE_NAMES = ["create_app", "configure_version", "scrape_credentials", "select_distribution", "generate_link"]


class SleepingStage(Stage):
    name = "create_app"
    title = "挂起"

    def __init__(self, cancellable: bool = False):
        self.cancellable = cancellable
        self.started = asyncio.Event()

    async def execute(self, ctx, state):
        self.started.set()
        if self.cancellable:
            await ctx.token.sleep(30)
        else:
            await asyncio.sleep(30)
        return {}


class BrokenStage(Stage):
    name = "configure_version"
    title = "损坏"

    async def execute(self, ctx, state):
        raise PlaywrightError("Target page, context or browser has been closed")


def _assert_torn_down_once(console) -> None:
    assert console.playwright.stop_calls == 1
    assert console.browser.close_calls == 1
    assert console.context.close_calls == 1
    for page in console.context.pages:
        assert page.close_calls == 1


class TestHappyPath:
    """测试完整成功路径"""

    async def test_run_returns_result(self, workflow_factory, shopify_console):
        result = await workflow_factory().run(REQUEST)

        assert result.app_name == "Acme x Retention"
        assert result.client_id == CLIENT_ID
        assert result.client_secret == CLIENT_SECRET
        assert result.distribution_link == INSTALL_LINK
        assert result.store_domain == "acme.myshopify.com"
        assert result.link_found is True
        assert result.warnings == []

    async def test_execution_records_every_stage(self, workflow_factory, shopify_console):
        execution = await workflow_factory().execute(REQUEST)

        assert [stage.name for stage in execution.stages] == STAGE_NAMES
        assert all(stage.status is StageStatus.VERIFIED for stage in execution.stages)
        assert execution.chooser_attempts == 0
        data = execution.to_dict()
        assert data["success"] is True
        assert data["result"]["client_id"] == CLIENT_ID

    async def test_distribution_opens_in_second_page(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        await workflow_factory().run(REQUEST)

        pages = console.context.pages
        assert len(pages) == 2
        assert pages[1].url == DISTRIBUTION_URL

    async def test_missing_link_still_returns_result(self, workflow_factory, console):
        build_shopify_console(console, app_url=APP_URL, scopes_csv=SCOPES_CSV, link=None)

        result = await workflow_factory().run(REQUEST)

        assert result.distribution_link == ""
        assert result.client_id == CLIENT_ID
        assert result.warnings == ["distribution_link not found after generating"]


class TestTeardown:
    """测试浏览器资源释放"""

    async def test_success_closes_everything_once(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        await workflow_factory().run(REQUEST)
        _assert_torn_down_once(console)

    async def test_failure_closes_everything_once(self, workflow_factory, shopify_console):
        console, elements = shopify_console
        elements["release_button"].disabled = True

        with pytest.raises(AmbiguousUiStateError):
            await workflow_factory().run(REQUEST)

        _assert_torn_down_once(console)


class TestFailures:
    """测试失败路径"""

    async def test_invalid_request_fails_before_launch(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        with pytest.raises(ValidationError) as exc_info:
            await workflow_factory().run(WorkflowRequest(brand_name="Acme", store_domain="acme.example.com"))

        assert exc_info.value.message == "store_domain must end in myshopify.com"
        assert console.launches == 0

    async def test_missing_config_fails_before_launch(self, workflow_factory, shopify_console, tmp_path):
        console, _ = shopify_console
        incomplete = create_settings("test", storage_state_path=str(tmp_path / "state.json"))

        with pytest.raises(ConfigurationError) as exc_info:
            await workflow_factory(incomplete).run(REQUEST)

        assert "APP_URL" in exc_info.value.missing
        assert console.launches == 0

    async def test_release_disabled_names_stage(self, workflow_factory, shopify_console):
        _, elements = shopify_console
        elements["release_button"].disabled = True

        with pytest.raises(AmbiguousUiStateError) as exc_info:
            await workflow_factory().run(REQUEST)

        assert exc_info.value.stage == "configure_version"
        assert "Release button is disabled" in exc_info.value.message

    async def test_reauth_wall_fails_fast(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        console.reauth(1)

        with pytest.raises(BlockedByReauthError) as exc_info:
            await workflow_factory().run(REQUEST)

        assert exc_info.value.stage == "create_app"
        assert exc_info.value.url == LOGIN_URL
        _assert_torn_down_once(console)

    async def test_chooser_on_distribution_page_is_bypassed(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        console.chooser(3, match="/distribution")

        execution = await workflow_factory().execute(REQUEST)

        assert execution.success
        assert execution.chooser_attempts == 3
        distribution = next(s for s in execution.stages if s.name == "select_distribution")
        assert distribution.details["chooser_attempts"] == 3
        assert execution.result.distribution_link == INSTALL_LINK

    async def test_persistent_chooser_fails(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        console.chooser(1_000, match="/distribution")

        with pytest.raises(AccountChooserError) as exc_info:
            await workflow_factory().run(REQUEST)

        assert exc_info.value.stage == "select_distribution"
        assert exc_info.value.attempts == 5
        _assert_torn_down_once(console)

    async def test_stage_timeout(self, workflow_factory, shopify_console, settings):
        console, _ = shopify_console
        quick = settings.model_copy(
            update={"workflow": WorkflowConfig(stage_timeouts={"create_app": 0.05}, settle_ms=0)}
        )

        with pytest.raises(StageTimeoutError) as exc_info:
            await workflow_factory(quick, stages=[SleepingStage()]).run(REQUEST)

        assert exc_info.value.stage == "create_app"
        assert exc_info.value.timeout_seconds == 0.05
        _assert_torn_down_once(console)

    async def test_timeout_captures_diagnostics(self, workflow_factory, shopify_console, settings, tmp_path):
        shots = tmp_path / "shots"
        configured = settings.model_copy(
            update={
                "workflow": WorkflowConfig(stage_timeouts={"create_app": 0.05}, settle_ms=0),
                "debug": settings.debug.model_copy(update={"screenshots": True, "screenshot_dir": str(shots)}),
            }
        )

        with pytest.raises(StageTimeoutError):
            await workflow_factory(configured, stages=[SleepingStage()]).run(REQUEST)

        assert [p.name for p in shots.glob("*create_app-timeout.png")]

    async def test_cancellation_stops_run(self, workflow_factory, shopify_console):
        console, _ = shopify_console
        stage = SleepingStage(cancellable=True)
        token = CancellationToken()

        async def cancel_when_started():
            await stage.started.wait()
            token.cancel("客户端断开")

        with pytest.raises(WorkflowCancelledError) as exc_info:
            await asyncio.gather(
                workflow_factory(stages=[stage]).run(REQUEST, token),
                cancel_when_started(),
            )

        assert exc_info.value.reason == "客户端断开"
        assert exc_info.value.stage == "create_app"
        _assert_torn_down_once(console)

    async def test_unexpected_page_error_is_wrapped(self, workflow_factory, shopify_console):
        console, _ = shopify_console

        with pytest.raises(AmbiguousUiStateError) as exc_info:
            await workflow_factory(stages=[CreateAppStage(), BrokenStage()]).run(REQUEST)

        assert exc_info.value.stage == "configure_version"
        assert isinstance(exc_info.value.__cause__, PlaywrightError)
        _assert_torn_down_once(console)


def test_execution_record_is_json_serializable():
    execution = WorkflowExecution(
        workflow_id="abc",
        request=REQUEST,
        result=WorkflowResult(app_name="Acme x Retention", store_domain="acme.myshopify.com"),
    )
    data = json.loads(json.dumps(execution.to_dict()))
    assert data["success"] is True
    assert data["stages"] == []
    assert data["result"]["app_name"] == "Acme x Retention"


class RedirectedDistributionStage(SelectDistributionStage):
    """分发页选择完成后, 控制台把该标签页跳到了账号选择页."""

    async def execute(self, ctx, state):
        details = await super().execute(ctx, state)
        state.distribution_page.url = CHOOSER_URL
        return details


def _interactive(settings, **workflow):
    return settings.model_copy(
        update={
            "reauth_mode": "interactive",
            "reauth_max_wait_seconds": 5.0,
            "reauth_poll_interval_seconds": 0.02,
            "workflow": WorkflowConfig(settle_ms=0, **workflow),
        }
    )


class TestInteractiveReauth:
    """测试交互式重新登录"""

    async def test_operator_wait_outlasts_stage_and_run_budgets(self, workflow_factory, shopify_console, settings):
        console, _ = shopify_console
        console.reauth(1)
        configured = _interactive(settings, stage_timeouts={"create_app": 0.3}, run_timeout_seconds=1.2)

        async def operator_logs_in():
            await asyncio.sleep(0.6)
            console.context.pages[0].url = DASHBOARD_URL

        execution, _ = await asyncio.gather(
            workflow_factory(configured).execute(REQUEST),
            operator_logs_in(),
        )

        assert execution.success
        assert execution.reauth_refreshed is True
        assert execution.result.client_id == CLIENT_ID
        assert execution.stages[0].status is StageStatus.VERIFIED
        _assert_torn_down_once(console)

    async def test_operator_timeout_is_reauth_error(self, workflow_factory, shopify_console, settings):
        console, _ = shopify_console
        console.reauth(1)
        configured = _interactive(settings, stage_timeouts={"create_app": 0.05}).model_copy(
            update={"reauth_max_wait_seconds": 0.2}
        )

        with pytest.raises(BlockedByReauthError) as exc_info:
            await workflow_factory(configured).run(REQUEST)

        assert exc_info.value.stage == "create_app"
        assert exc_info.value.url == LOGIN_URL
        _assert_torn_down_once(console)

    async def test_interactive_mode_launches_headed_browser(self, workflow_factory, shopify_console, settings):
        console, _ = shopify_console

        await workflow_factory(_interactive(settings), headless=True).run(REQUEST)

        assert console.browser.launch_options["headless"] is False

    async def test_fail_fast_mode_keeps_headless(self, workflow_factory, shopify_console):
        console, _ = shopify_console

        await workflow_factory().run(REQUEST)

        assert console.browser.launch_options["headless"] is True


async def test_blocking_check_uses_distribution_page(workflow_factory, shopify_console):
    stages = [
        CreateAppStage(),
        ConfigureVersionStage(),
        ScrapeCredentialsStage(),
        RedirectedDistributionStage(),
        GenerateLinkStage(),
    ]

    execution = await workflow_factory(stages=stages).execute(REQUEST)

    generate = execution.stages[-1]
    assert generate.name == "generate_link"
    assert generate.details["chooser_attempts"] == 1
    assert execution.chooser_attempts == 1
    assert execution.result.distribution_link == INSTALL_LINK
