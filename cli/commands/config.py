"""
@PURPOSE: CLI 配置命令 - 查看与检查配置
@OUTLINE:
  - config_app: Typer 配置命令组
  - show(): 显示配置(隐藏敏感信息)
  - check(): 检查工作流必需配置与选择器目录
@DEPENDENCIES:
  - 内部: config.settings, app_generator.browser.element_resolver
  - 外部: typer, rich, pyyaml
"""

import json

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax

from app_generator.browser.element_resolver import SelectorCatalog
from app_generator.errors import ConfigurationError

from . import load_cli_settings

config_app = typer.Typer(
    name="config",
    help="配置管理",
)

console = Console()


@config_app.command("show")
def show(
    env: str | None = typer.Option(None, "--env", help="环境名称"),
    format: str = typer.Option("yaml", "--format", "-f", help="输出格式(yaml/json)"),
):
    """显示当前配置.

    Examples:
        app-generator config show
        app-generator config show --env production -f json
    """
    settings = load_cli_settings(env)
    console.print("\n[bold blue]⚙️  配置信息[/bold blue]\n")
    console.print(f"[bold]环境:[/bold] {settings.environment}\n")

    config_dict = settings.to_dict()
    if format == "json":
        output = json.dumps(config_dict, indent=2, ensure_ascii=False)
        syntax = Syntax(output, "json", theme="monokai", line_numbers=True)
    else:
        output = yaml.dump(config_dict, allow_unicode=True, default_flow_style=False)
        syntax = Syntax(output, "yaml", theme="monokai", line_numbers=True)
    console.print(syntax)


@config_app.command("check")
def check(
    env: str | None = typer.Option(None, "--env", help="环境名称"),
):
    """检查运行工作流所需的配置.

    Examples:
        app-generator config check
    """
    settings = load_cli_settings(env)
    console.print("\n[bold blue]✅ 检查配置[/bold blue]\n")
    failed = False

    try:
        settings.require_workflow_config()
        console.print(f"[green]✓[/green] 控制台分组: {settings.console_group_id}")
    except ConfigurationError as exc:
        failed = True
        console.print(f"[red]✗[/red] {exc.message}")

    catalog_path = settings.get_absolute_path(settings.selector_catalog_path)
    try:
        catalog = SelectorCatalog.load(catalog_path)
        console.print(f"[green]✓[/green] 选择器目录: {len(catalog.targets)} 个目标 ({catalog_path.name})")
    except ConfigurationError as exc:
        failed = True
        console.print(f"[red]✗[/red] {exc.message}")

    if failed:
        raise typer.Exit(1)
    console.print("\n[green]配置完整[/green]")
