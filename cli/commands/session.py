"""
@PURPOSE: CLI 会话命令 - 人工登录后保存浏览器会话, 查看或清除会话
@OUTLINE:
  - session_app: Typer 会话命令组
  - capture(): 打开有头浏览器, 预填登录信息, 等待人工完成登录后保存会话
  - status(): 显示会话文件状态
  - clear(): 删除会话文件
@GOTCHAS:
  - capture 必须在有图形界面的机器上运行
  - 预填邮箱/密码只是便利功能, 找不到输入框时直接跳过
@DEPENDENCIES:
  - 内部: app_generator.browser.*
  - 外部: typer, rich, playwright
"""

import asyncio

import typer
from loguru import logger
from playwright.async_api import Error as PlaywrightError
from rich.console import Console
from rich.table import Table

from app_generator.browser.browser_manager import BrowserSession
from app_generator.browser.element_resolver import ElementResolver, SelectorCatalog
from app_generator.browser.session_store import SessionStore
from config.settings import Settings

from . import load_cli_settings

session_app = typer.Typer(
    name="session",
    help="浏览器会话管理",
)

console = Console()

DEFAULT_LOGIN_URL = "https://accounts.shopify.com/lookup"


def _store(settings: Settings) -> SessionStore:
    return SessionStore(settings.get_absolute_path(settings.storage_state_path))


async def _prefill(resolver: ElementResolver, target: str, value: str) -> None:
    if not value:
        return
    field = await resolver.resolve(target, timeout_ms=5_000)
    if field is None:
        logger.debug(f"未找到 {target}, 跳过预填")
        return
    try:
        await field.fill(value)
    except PlaywrightError as exc:
        logger.debug(f"预填 {target} 失败: {exc}")


async def _capture(settings: Settings, store: SessionStore, url: str) -> None:
    catalog = SelectorCatalog.load(settings.get_absolute_path(settings.selector_catalog_path))
    async with BrowserSession(settings.browser, storage_state=store.state_file, headless=False) as session:
        page = session.page
        await page.goto(url, wait_until="domcontentloaded")
        resolver = ElementResolver(page, catalog, default_timeout_ms=settings.browser.action_timeout_ms)
        await _prefill(resolver, "login_email_input", settings.shopify_email)
        await _prefill(resolver, "login_password_input", settings.shopify_password)

        await asyncio.to_thread(input, "在浏览器中完成登录(含两步验证)后按回车保存会话...")
        await store.save_from_context(page.context)


@session_app.command("capture")
def capture(
    env: str | None = typer.Option(None, "--env", help="环境名称"),
    url: str | None = typer.Option(None, "--url", help="登录起始页, 默认开发者控制台"),
):
    """人工登录并保存会话.

    Examples:
        app-generator session capture
    """
    settings = load_cli_settings(env)
    store = _store(settings)
    start_url = url or settings.shopify_dev_dashboard_url or DEFAULT_LOGIN_URL

    console.print("\n[bold blue]🔐 采集 Shopify 会话[/bold blue]\n")
    console.print(f"起始页: {start_url}")
    console.print(f"会话文件: {store.state_file}\n")

    asyncio.run(_capture(settings, store, start_url))
    info = store.info()
    console.print(f"[green]✓[/green] 会话已保存 (cookies={info.cookies}, origins={info.origins})")


@session_app.command("status")
def status(
    env: str | None = typer.Option(None, "--env", help="环境名称"),
):
    """显示会话文件状态.

    Examples:
        app-generator session status
    """
    settings = load_cli_settings(env)
    info = _store(settings).info()

    table = Table(title="会话状态", show_header=False)
    table.add_column("项", style="bold")
    table.add_column("值")
    table.add_row("文件", str(info.path))
    table.add_row("存在", "✓" if info.exists else "✗")
    if info.exists:
        table.add_row("保存时间", info.saved_at.isoformat(timespec="seconds") if info.saved_at else "-")
        table.add_row("已保存(小时)", f"{info.age_hours:.1f}" if info.age_hours is not None else "-")
        table.add_row("cookies", str(info.cookies))
        table.add_row("origins", str(info.origins))
    console.print(table)

    if not info.exists:
        console.print("[yellow]请先执行 app-generator session capture[/yellow]")
        raise typer.Exit(1)


@session_app.command("clear")
def clear(
    env: str | None = typer.Option(None, "--env", help="环境名称"),
    yes: bool = typer.Option(False, "--yes", "-y", help="不确认直接删除"),
):
    """删除会话文件."""
    settings = load_cli_settings(env)
    store = _store(settings)
    if not store.exists():
        console.print("会话文件不存在")
        return
    if not yes and not typer.confirm(f"确认删除 {store.state_file}?"):
        raise typer.Exit(0)
    store.clear()
    console.print("[green]✓[/green] 会话已清除")
