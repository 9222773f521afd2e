"""
@PURPOSE: CLI 主入口 - Shopify 应用生成器命令行工具
@OUTLINE:
  - app: Typer 主应用
  - 集成所有命令组(workflow/session/config)
  - version(): 版本信息
  - main(): console script 入口
@GOTCHAS:
  - 首次使用前执行 session capture 保存登录会话
  - 确保 Playwright 浏览器已安装(playwright install chromium)
@DEPENDENCIES:
  - 内部: cli.commands.*
  - 外部: typer, rich
"""

import sys
from pathlib import Path

import typer
from rich.console import Console

from app_generator import __version__
from cli.commands import load_cli_settings
from cli.commands.config import config_app
from cli.commands.session import session_app
from cli.commands.workflow import workflow_app

app = typer.Typer(
    name="app-generator",
    help="Shopify 自定义应用生成器",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(workflow_app, name="workflow")
app.add_typer(session_app, name="session")
app.add_typer(config_app, name="config")


@app.command()
def version(
    env: str | None = typer.Option(None, "--env", help="环境名称"),
):
    """显示版本信息.

    Examples:
        app-generator version
    """
    settings = load_cli_settings(env)
    console.print("\n[bold cyan]Shopify 应用生成器[/bold cyan]")
    console.print(f"版本: [bold]{__version__}[/bold]")
    console.print("\n环境配置:")
    console.print(f"  环境: {settings.environment}")
    console.print(f"  Python: {sys.version.split()[0]}")
    console.print(f"  工作目录: {Path.cwd()}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
