"""
@PURPOSE: 测试取消令牌与阶段超时控制
@OUTLINE:
  - TestCancellationToken: 取消、截止时间、超时裁剪、暂停截止时间
  - TestStageTimeout: 阶段超时与回调、随令牌暂停
@DEPENDENCIES:
  - 外部: pytest, pytest-asyncio
  - 内部: app_generator.core
"""

import asyncio

import pytest

from app_generator.core import CancellationToken, TimeoutConfig, get_timeout_config, with_stage_timeout
from app_generator.errors import StageTimeoutError, WorkflowCancelledError
from config.settings import WorkflowConfig


class TestCancellationToken:
    """测试取消令牌"""

    def test_fresh_token_passes_check(self):
        token = CancellationToken()
        token.check()
        assert token.cancelled is False
        assert token.remaining() is None

    def test_cancel_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("客户端断开")
        token.cancel("第二次")
        assert token.reason == "客户端断开"
        with pytest.raises(WorkflowCancelledError) as exc_info:
            token.check()
        assert exc_info.value.reason == "客户端断开"

    def test_expired_deadline_fails_check(self):
        now = [100.0]
        token = CancellationToken.with_timeout(5, clock=lambda: now[0])
        token.check()
        now[0] = 106.0
        assert token.expired()
        with pytest.raises(WorkflowCancelledError):
            token.check()

    def test_clamp_ms(self):
        now = [0.0]
        token = CancellationToken.with_timeout(2, clock=lambda: now[0])
        assert token.clamp_ms(10_000) == 2_000
        assert token.clamp_ms(500) == 500
        now[0] = 5.0
        assert token.clamp_ms(500) == 1.0

    def test_suspend_extends_deadline_by_pause(self):
        now = [0.0]
        token = CancellationToken.with_timeout(10, clock=lambda: now[0])
        now[0] = 4.0
        with token.suspend():
            assert token.remaining() is None
            now[0] = 104.0
            token.check()
        assert token.remaining() == 6.0

    def test_suspend_keeps_cancellation(self):
        token = CancellationToken.with_timeout(10)
        with pytest.raises(WorkflowCancelledError) as exc_info:
            with token.suspend():
                token.cancel("客户端断开")
                token.check()
        assert exc_info.value.reason == "客户端断开"

    def test_suspend_on_expired_token(self):
        now = [0.0]
        token = CancellationToken.with_timeout(1, clock=lambda: now[0])
        now[0] = 2.0
        with pytest.raises(WorkflowCancelledError):
            with token.suspend():
                pass

    def test_clamp_without_deadline(self):
        assert CancellationToken().clamp_ms(7_000) == 7_000

    async def test_run_returns_result(self):
        async def work():
            return 42

        assert await CancellationToken().run(work()) == 42

    async def test_run_propagates_operation_errors(self):
        async def work():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await CancellationToken().run(work())

    async def test_cancel_from_another_task_aborts_run(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(30)

        async def canceller():
            await started.wait()
            token.cancel("客户端断开")

        with pytest.raises(WorkflowCancelledError) as exc_info:
            await asyncio.gather(token.run(slow()), canceller())
        assert exc_info.value.reason == "客户端断开"

    async def test_deadline_aborts_run(self):
        token = CancellationToken.with_timeout(0.05)
        with pytest.raises(WorkflowCancelledError) as exc_info:
            await token.run(asyncio.sleep(30))
        assert exc_info.value.reason == "超过运行截止时间"

    async def test_sleep_is_cancellable(self):
        token = CancellationToken.with_timeout(0.05)
        with pytest.raises(WorkflowCancelledError):
            await token.sleep(30)

    async def test_zero_sleep_only_checks(self):
        token = CancellationToken()
        await token.sleep(0)
        token.cancel()
        with pytest.raises(WorkflowCancelledError):
            await token.sleep(0)


class TestStageTimeout:
    """测试阶段超时"""

    def test_timeout_config_lookup(self):
        config = TimeoutConfig(stages={"create_app": 30}, default=90)
        assert config.get("create_app") == 30.0
        assert config.get("generate_link") == 90.0
        assert config.get("generate_link", 10) == 10.0

    def test_timeout_config_from_workflow_config(self):
        config = get_timeout_config(WorkflowConfig(stage_timeouts={"create_app": 12}))
        assert config.get("create_app") == 12.0
        assert get_timeout_config().get("anything") == TimeoutConfig().default

    async def test_completes_within_limit(self):
        async with with_stage_timeout("create_app", 1):
            await asyncio.sleep(0)

    async def test_timeout_raises_and_runs_callback(self):
        called = []

        async def on_timeout():
            called.append("screenshot")

        with pytest.raises(StageTimeoutError) as exc_info:
            async with with_stage_timeout("configure_version", 0.05, on_timeout):
                await asyncio.sleep(30)

        assert called == ["screenshot"]
        assert exc_info.value.stage == "configure_version"
        assert exc_info.value.kind == "stage_timeout"
        assert exc_info.value.timeout_seconds == 0.05

    async def test_failing_callback_does_not_mask_timeout(self):
        def on_timeout():
            raise RuntimeError("截图失败")

        with pytest.raises(StageTimeoutError):
            async with with_stage_timeout("generate_link", 0.05, on_timeout):
                await asyncio.sleep(30)

    async def test_inner_errors_pass_through(self):
        with pytest.raises(ValueError):
            async with with_stage_timeout("create_app", 1):
                raise ValueError("inner")

    async def test_suspended_token_pauses_stage_timer(self):
        token = CancellationToken.with_timeout(0.2)
        async with with_stage_timeout("create_app", 0.1, token=token) as timer:
            with token.suspend():
                await asyncio.sleep(0.3)
            await asyncio.sleep(0.02)

        assert timer.paused_seconds >= 0.25
        token.check()

    async def test_remaining_stage_time_applies_after_pause(self):
        token = CancellationToken()
        with pytest.raises(StageTimeoutError):
            async with with_stage_timeout("create_app", 0.1, token=token):
                with token.suspend():
                    await asyncio.sleep(0.15)
                await asyncio.sleep(30)

    async def test_timer_released_after_stage(self):
        token = CancellationToken()
        async with with_stage_timeout("create_app", 1, token=token):
            await asyncio.sleep(0)

        with token.suspend():
            await asyncio.sleep(0)
