"""
@PURPOSE: 定义应用生成工作流的异常体系, 每种失败都携带可诊断的上下文
@OUTLINE:
  - class AppGeneratorError: 异常基类(message/url/stage)
  - class ValidationError: 请求参数非法
  - class ConfigurationError: 必需配置缺失
  - class ElementNotFoundError: 所有候选定位策略均未命中
  - class VerificationMismatchError: 写入值回读不一致
  - class NavigationTimeoutError: 页面跳转/加载等待超时
  - class BlockedByReauthError: 遇到无法自动处理的重新登录墙
  - class AmbiguousUiStateError: 操作后的预期状态无法确认(UI 可能已改版)
  - class AccountChooserError: 账号选择页绕过次数耗尽
  - class WorkflowCancelledError: 运行被取消或超过总截止时间
  - class StageTimeoutError: 单个阶段超过硬性超时
@GOTCHAS:
  - stage 字段由编排器在异常向上传播时补充
  - to_dict() 结果直接作为 HTTP 错误响应体
@DEPENDENCIES:
  - 外部: 无
"""

from __future__ import annotations

from typing import Any


class AppGeneratorError(Exception):
    """工作流异常基类.

    Attributes:
        message: 面向调用方的可读错误信息
        url: 出错时页面所在 URL(可选)
        stage: 出错阶段名称(可选)
    """

    kind = "app_generator_error"

    def __init__(self, message: str, *, url: str | None = None, stage: str | None = None) -> None:
        self.message = message
        self.url = url
        self.stage = stage
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)

    def context(self) -> dict[str, Any]:
        """子类额外的诊断字段."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """转换为可序列化的错误描述."""
        payload: dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.stage:
            payload["stage"] = self.stage
        if self.url:
            payload["url"] = self.url
        payload.update(self.context())
        return payload


class ValidationError(AppGeneratorError):
    """请求参数非法, 不重试, 原样返回给调用方."""

    kind = "validation_error"


class ConfigurationError(AppGeneratorError):
    """必需的外部配置缺失, 运行开始前即失败."""

    kind = "configuration_error"

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"missing": self.missing} if self.missing else {}


class ElementNotFoundError(AppGeneratorError):
    """元素解析器用尽所有候选策略仍未找到可见元素."""

    kind = "element_not_found"

    def __init__(self, target: str, *, tried: int = 0, url: str | None = None) -> None:
        self.target = target
        self.tried = tried
        super().__init__(f"未找到页面元素 '{target}' (已尝试 {tried} 个定位策略)", url=url)

    def context(self) -> dict[str, Any]:
        return {"target": self.target, "tried": self.tried}


class VerificationMismatchError(AppGeneratorError):
    """写入后的回读值与期望值不一致."""

    kind = "verification_mismatch"

    def __init__(
        self,
        field: str,
        expected: str,
        observed: str,
        *,
        url: str | None = None,
    ) -> None:
        self.field = field
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"{field} 未生效: 期望 \"{expected}\", 实际 \"{observed}\"",
            url=url,
        )

    def context(self) -> dict[str, Any]:
        return {"field": self.field, "expected": self.expected, "observed": self.observed}


class NavigationTimeoutError(AppGeneratorError):
    """页面跳转或加载状态等待超过上限."""

    kind = "navigation_timeout"

    def __init__(self, target: str, timeout_ms: float, *, url: str | None = None) -> None:
        self.target = target
        self.timeout_ms = timeout_ms
        super().__init__(f"等待 {target} 超时 ({int(timeout_ms)}ms)", url=url)

    def context(self) -> dict[str, Any]:
        return {"target": self.target, "timeout_ms": self.timeout_ms}


class BlockedByReauthError(AppGeneratorError):
    """遇到需要人工完成的重新登录/验证页面."""

    kind = "blocked_by_reauth"

    def __init__(self, url: str, message: str | None = None) -> None:
        super().__init__(
            message
            or (
                "Shopify 要求重新登录, 当前会话已失效. "
                "请执行 `app-generator session capture` 重新保存会话, "
                "或以 REAUTH_MODE=interactive 运行并手动完成验证"
            ),
            url=url,
        )


class AmbiguousUiStateError(AppGeneratorError):
    """操作后的预期结果无法解析, 通常意味着控制台 UI 已改版."""

    kind = "ambiguous_ui_state"


class AccountChooserError(AmbiguousUiStateError):
    """账号选择页在多次绕过后仍然存在."""

    kind = "account_chooser_persisted"

    def __init__(self, attempts: int, *, url: str | None = None) -> None:
        self.attempts = attempts
        super().__init__(f"账号选择页在 {attempts} 次绕过尝试后仍未消失", url=url)

    def context(self) -> dict[str, Any]:
        return {"attempts": self.attempts}


class WorkflowCancelledError(AppGeneratorError):
    """运行被调用方取消, 或超过整体截止时间."""

    kind = "cancelled"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"工作流已中止: {reason}")


class StageTimeoutError(AppGeneratorError):
    """单个阶段执行超过硬性超时.

    Attributes:
        timeout_seconds: 超时时间(秒)
        elapsed_seconds: 实际耗时(秒)
    """

    kind = "stage_timeout"

    def __init__(self, stage: str, timeout_seconds: float, elapsed_seconds: float = 0.0) -> None:
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(f"阶段 '{stage}' 执行超时 ({timeout_seconds}s)", stage=stage)

    def context(self) -> dict[str, Any]:
        return {"timeout_seconds": self.timeout_seconds}
