"""
@PURPOSE: FastAPI 应用入口, 暴露应用生成 HTTP 接口
@OUTLINE:
  - create_app(): FastAPI 应用工厂
  - GET /health: 存活检查
  - POST /shopify/app-generator: 执行一次完整的应用生成工作流
  - STATUS_BY_KIND: 异常类型 → HTTP 状态码
@GOTCHAS:
  - 每个请求独占一个浏览器会话, 并发运行数由 max_concurrent_runs 限制
  - 客户端断开后通过取消令牌中止运行, 浏览器照常在编排器中关闭
  - 请求体校验失败返回 400 {"error": ...}
@DEPENDENCIES:
  - 外部: fastapi, python-dotenv, loguru
  - 内部: app_generator.*, config.settings, .models
@RELATED: cli/commands/workflow.py
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from app_generator import __version__
from app_generator.core.cancellation import CancellationToken
from app_generator.errors import AppGeneratorError
from app_generator.models import WorkflowRequest, WorkflowResult
from app_generator.utils.logger_setup import setup_logger
from app_generator.workflows import AppGeneratorWorkflow
from config.settings import Settings, get_settings

from .models import AppGeneratorPayload, AppGeneratorResponse, ErrorResponse, HealthStatus

WorkflowRunner = Callable[[WorkflowRequest, CancellationToken], Awaitable[WorkflowResult]]

STATUS_BY_KIND: dict[str, int] = {
    "validation_error": 400,
    "blocked_by_reauth": 409,
    "configuration_error": 500,
    "navigation_timeout": 504,
    "stage_timeout": 504,
    "cancelled": 504,
}
DEFAULT_ERROR_STATUS = 502

DISCONNECT_POLL_SECONDS = 1.0


def status_for(exc: AppGeneratorError) -> int:
    """异常对应的 HTTP 状态码, 未列出的页面类失败统一为 502."""
    return STATUS_BY_KIND.get(exc.kind, DEFAULT_ERROR_STATUS)


def _validation_message(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "invalid request body"
    error = errors[0]
    loc = [str(part) for part in error.get("loc", ()) if part != "body"]
    field = loc[-1] if loc else "body"
    if error.get("type") == "missing":
        return f"{field} is required"
    ctx_error = (error.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    return f"{field}: {error.get('msg', 'invalid value')}"


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            logger.warning("客户端已断开连接, 取消本次运行")
            token.cancel("客户端断开连接")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


def create_app(settings: Settings | None = None, runner: WorkflowRunner | None = None) -> FastAPI:
    """FastAPI 应用工厂.

    Args:
        settings: 配置实例, 默认读取环境(.env + YAML)
        runner: 工作流执行函数, 默认每个请求创建一个 AppGeneratorWorkflow
    """
    load_dotenv(override=False)
    settings = settings or get_settings()
    settings.ensure_directories()
    setup_logger(settings.logging, log_file=settings.get_absolute_path(settings.logging.file_path))

    async def _default_runner(request: WorkflowRequest, token: CancellationToken) -> WorkflowResult:
        workflow = AppGeneratorWorkflow(settings)
        return await workflow.run(request, token)

    run_workflow = runner or _default_runner
    semaphore = asyncio.Semaphore(settings.max_concurrent_runs)

    app = FastAPI(
        title="Shopify App Generator",
        version=__version__,
        default_response_class=JSONResponse,
    )
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _validation_message(list(exc.errors()))
        logger.info(f"请求参数非法: {message}")
        return JSONResponse(status_code=400, content={"error": message, "kind": "validation_error"})

    @app.exception_handler(AppGeneratorError)
    async def handle_app_generator_error(request: Request, exc: AppGeneratorError) -> JSONResponse:
        status_code = status_for(exc)
        logger.error(f"应用生成失败 [{status_code}] {exc}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health", response_model=HealthStatus)
    async def health() -> HealthStatus:
        return HealthStatus(ok=True, version=__version__, environment=settings.environment)

    @app.post(
        "/shopify/app-generator",
        response_model=AppGeneratorResponse,
        responses={
            400: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
            502: {"model": ErrorResponse},
            504: {"model": ErrorResponse},
        },
    )
    async def generate_app(payload: AppGeneratorPayload, request: Request) -> AppGeneratorResponse:
        workflow_request = payload.to_request()
        logger.info(f"收到应用生成请求: brand={workflow_request.brand_name}, store={workflow_request.store_domain}")

        async with semaphore:
            token = CancellationToken.with_timeout(settings.workflow.run_timeout_seconds)
            watcher = asyncio.create_task(_watch_disconnect(request, token))
            try:
                result = await run_workflow(workflow_request, token)
            except AppGeneratorError:
                raise
            except Exception as exc:
                logger.exception("应用生成过程中出现未预期的异常")
                raise AppGeneratorError(f"未预期的错误: {exc}") from exc
            finally:
                watcher.cancel()

        return AppGeneratorResponse.from_result(result)

    return app
