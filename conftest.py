"""
@PURPOSE: Pytest 配置文件, 配置测试环境和 fixtures
@OUTLINE:
  - pytest_configure(): 注册标记
  - isolate_environment: 清除会影响配置的环境变量
  - catalog / settings: 选择器目录与测试配置
  - console / shopify_console: 模拟控制台
  - workflow_factory: 绑定模拟浏览器的工作流
@DEPENDENCIES:
  - 外部: pytest, pytest-asyncio
  - 内部: tests.mocks, config.settings, app_generator
"""

import sys
from pathlib import Path

import pytest

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from app_generator.browser.element_resolver import SelectorCatalog  # noqa: E402
from app_generator.workflows import AppGeneratorWorkflow  # noqa: E402
from config.settings import CONFIG_DIR, create_settings  # noqa: E402
from tests.mocks import (  # noqa: E402
    APP_URL,
    DASHBOARD_URL,
    REDIRECT_URL,
    SCOPES_CSV,
    FakeConsole,
    build_shopify_console,
)

_ENV_VARS = (
    "ENVIRONMENT",
    "SHOPIFY_DEV_DASHBOARD_URL",
    "SHOPIFY_PARTNERS_ID",
    "APP_URL",
    "REDIRECT_URL",
    "SCOPES_CSV",
    "APP_NAME_SUFFIX",
    "EMBED_APP",
    "REAUTH_MODE",
    "STORAGE_STATE_PATH",
    "ACCOUNT_HINT",
)


def pytest_configure(config):
    """配置pytest."""
    config.addinivalue_line("markers", "unit: 单元测试")
    config.addinivalue_line("markers", "integration: 基于模拟控制台的集成测试")
    config.addinivalue_line("markers", "slow: 标记慢速测试")


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """测试不读取宿主机的配置环境变量, 会话文件写入临时目录."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STORAGE_STATE_PATH", str(tmp_path / "storage" / "shopify-storage.json"))


@pytest.fixture
def catalog() -> SelectorCatalog:
    return SelectorCatalog.load(CONFIG_DIR / "console_selectors.json")


@pytest.fixture
def settings(tmp_path):
    """完整的测试配置, 会话文件与截图目录位于临时目录."""
    return create_settings(
        "test",
        shopify_dev_dashboard_url=DASHBOARD_URL,
        app_url=APP_URL,
        redirect_url=REDIRECT_URL,
        scopes_csv=SCOPES_CSV,
        storage_state_path=str(tmp_path / "shopify-storage.json"),
        debug={"screenshots": False, "screenshot_dir": str(tmp_path / "screenshots")},
    )


@pytest.fixture
def console(catalog) -> FakeConsole:
    return FakeConsole(catalog)


@pytest.fixture
def shopify_console(console):
    """安装了完整成功路径的控制台, 返回 (console, 关键元素)."""
    elements = build_shopify_console(console, app_url=APP_URL, scopes_csv=SCOPES_CSV)
    return console, elements


@pytest.fixture
def workflow_factory(settings, catalog, console):
    def _build(custom_settings=None, **kwargs) -> AppGeneratorWorkflow:
        return AppGeneratorWorkflow(
            custom_settings or settings,
            catalog=catalog,
            playwright_factory=console.playwright_factory,
            **kwargs,
        )

    return _build
