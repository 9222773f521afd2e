"""
@PURPOSE: 浏览器层: 会话生命周期、会话存储、元素解析、页面导航、诊断截图
@DEPENDENCIES:
  - 内部: .browser_manager, .session_store, .element_resolver, .navigator, .debug_tools
"""

from .browser_manager import BrowserSession, PlaywrightFactory
from .debug_tools import DiagnosticsRecorder, capture_debug_artifacts
from .element_resolver import ElementResolver, SelectorCatalog, build_locator
from .navigator import Navigator
from .session_store import SessionInfo, SessionStore

__all__ = [
    "BrowserSession",
    "DiagnosticsRecorder",
    "ElementResolver",
    "Navigator",
    "PlaywrightFactory",
    "SelectorCatalog",
    "SessionInfo",
    "SessionStore",
    "build_locator",
    "capture_debug_artifacts",
]
