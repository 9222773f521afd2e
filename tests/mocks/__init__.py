"""
@PURPOSE: 测试 Mock 模块
@OUTLINE:
  - FakeConsole: 可编排的 Shopify 控制台(视图 + 重定向)
  - FakePage / FakeLocator / FakeElement: 页面与元素模拟
  - FakePlaywright / FakeBrowser / FakeContext: 浏览器对象模拟(记录关闭次数)
  - build_shopify_console(): 完整成功路径
@DEPENDENCIES:
  - 内部: .console_mock
"""

from .console_mock import (
    APP_BASE,
    APP_ID,
    APP_URL,
    CHOOSER_URL,
    CLIENT_ID,
    CLIENT_SECRET,
    DASHBOARD_URL,
    DISTRIBUTION_URL,
    GROUP_ID,
    INSTALL_LINK,
    LOGIN_URL,
    REDIRECT_URL,
    SCOPES_CSV,
    FakeBrowser,
    FakeConsole,
    FakeContext,
    FakeElement,
    FakeLocator,
    FakePage,
    FakePlaywright,
    FakeView,
    build_shopify_console,
)

__all__ = [
    "APP_BASE",
    "APP_ID",
    "APP_URL",
    "CHOOSER_URL",
    "CLIENT_ID",
    "CLIENT_SECRET",
    "DASHBOARD_URL",
    "DISTRIBUTION_URL",
    "GROUP_ID",
    "INSTALL_LINK",
    "LOGIN_URL",
    "REDIRECT_URL",
    "SCOPES_CSV",
    "FakeBrowser",
    "FakeConsole",
    "FakeContext",
    "FakeElement",
    "FakeLocator",
    "FakePage",
    "FakePlaywright",
    "FakeView",
    "build_shopify_console",
]
