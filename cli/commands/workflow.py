"""
@PURPOSE: CLI 工作流命令 - 本地执行一次应用生成, 或启动 HTTP 服务
@OUTLINE:
  - workflow_app: Typer 工作流命令组
  - run(): 执行工作流并打印阶段与结果
  - serve(): 启动 FastAPI 服务
@GOTCHAS:
  - --headed 与 --interactive-reauth 通常一起使用, 需要人工在浏览器中完成验证
  - 默认不打印 Client secret, 需要时加 --show-secret
@DEPENDENCIES:
  - 内部: app_generator.workflows, server.api
  - 外部: typer, rich, uvicorn
"""

import asyncio
import json
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from app_generator.errors import AppGeneratorError
from app_generator.models import StageStatus, WorkflowRequest
from app_generator.workflows import AppGeneratorWorkflow, WorkflowExecution

from . import load_cli_settings

workflow_app = typer.Typer(
    name="workflow",
    help="应用生成工作流",
)

console = Console()

_STATUS_STYLE = {
    StageStatus.VERIFIED: "[green]✓ verified[/green]",
    StageStatus.FAILED: "[red]✗ failed[/red]",
    StageStatus.RUNNING: "[yellow]… running[/yellow]",
    StageStatus.PENDING: "[dim]pending[/dim]",
}


def _mask(value: str) -> str:
    if not value:
        return "[yellow](未找到)[/yellow]"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}…{value[-4:]} (len={len(value)})"


def _print_execution(execution: WorkflowExecution, show_secret: bool) -> None:
    stage_table = Table(title="阶段")
    stage_table.add_column("阶段", style="cyan")
    stage_table.add_column("状态")
    stage_table.add_column("耗时", justify="right")
    stage_table.add_column("说明")
    for outcome in execution.stages:
        stage_table.add_row(
            outcome.name,
            _STATUS_STYLE.get(outcome.status, outcome.status.value),
            f"{outcome.elapsed_seconds:.1f}s",
            outcome.message,
        )
    console.print(stage_table)

    if execution.chooser_attempts:
        console.print(f"账号选择页绕过: {execution.chooser_attempts} 次")
    if execution.reauth_refreshed:
        console.print("会话已在人工验证后刷新")

    result = execution.result
    if result is None:
        return

    result_table = Table(title="结果", show_header=False)
    result_table.add_column("字段", style="bold")
    result_table.add_column("值")
    result_table.add_row("app_name", result.app_name)
    result_table.add_row("store_domain", result.store_domain)
    result_table.add_row("client_id", result.client_id or "[yellow](未找到)[/yellow]")
    result_table.add_row("client_secret", result.client_secret if show_secret else _mask(result.client_secret))
    result_table.add_row("distribution_link", result.distribution_link or "[yellow](未找到)[/yellow]")
    console.print(result_table)

    for warning in result.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")


@workflow_app.command("run")
def run(
    brand_name: str = typer.Option(..., "--brand-name", "-b", help="品牌名称"),
    store_domain: str = typer.Option(..., "--store-domain", "-s", help="商家店铺域名(*.myshopify.com)"),
    env: str | None = typer.Option(None, "--env", help="环境名称"),
    headed: bool = typer.Option(False, "--headed", help="显示浏览器窗口"),
    interactive_reauth: bool = typer.Option(
        False, "--interactive-reauth", help="遇到登录页时等待人工完成验证"
    ),
    show_secret: bool = typer.Option(False, "--show-secret", help="打印完整的 Client secret"),
    output: Path | None = typer.Option(None, "--output", "-o", help="运行记录输出文件(JSON)"),
):
    """执行一次应用生成.

    Examples:
        app-generator workflow run -b Acme -s acme.myshopify.com

        app-generator workflow run -b Acme -s acme.myshopify.com --headed --interactive-reauth
    """
    settings = load_cli_settings(env)
    if interactive_reauth:
        settings = settings.model_copy(update={"reauth_mode": "interactive"})

    console.print("\n[bold blue]🚀 Shopify 应用生成[/bold blue]\n")
    console.print(f"品牌: {brand_name}")
    console.print(f"店铺: {store_domain}\n")

    request = WorkflowRequest(brand_name=brand_name, store_domain=store_domain)
    try:
        workflow = AppGeneratorWorkflow(settings, headless=False if headed else None)
        execution = asyncio.run(workflow.execute(request))
    except AppGeneratorError as exc:
        console.print(f"\n[red]✗ 生成失败[/red] ({exc.kind})")
        console.print(f"  {exc.message}")
        if exc.stage:
            console.print(f"  阶段: {exc.stage}")
        if exc.url:
            console.print(f"  页面: {exc.url}")
        raise typer.Exit(1) from None

    _print_execution(execution, show_secret)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(execution.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"\n[green]✓[/green] 运行记录已保存: {output}")


@workflow_app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="监听地址"),
    port: int = typer.Option(8000, "--port", "-p", envvar="PORT", help="监听端口"),
    env: str | None = typer.Option(None, "--env", help="环境名称"),
):
    """启动 HTTP 服务.

    Examples:
        app-generator workflow serve --port 8000
    """
    from server.api import create_app

    settings = load_cli_settings(env)
    console.print(f"\n[bold blue]🌐 启动服务[/bold blue] http://{host}:{port} (env={settings.environment})\n")
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.logging.level.lower())
