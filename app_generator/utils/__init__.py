"""
@PURPOSE: 工具模块: 日志配置与页面阻断状态检测
@DEPENDENCIES:
  - 内部: .logger_setup, .state_detector
"""

from .logger_setup import get_logger_with_context, setup_logger
from .state_detector import BlockingDetector, BlockingGuard, PageSnapshot, PageState

__all__ = [
    "BlockingDetector",
    "BlockingGuard",
    "PageSnapshot",
    "PageState",
    "get_logger_with_context",
    "setup_logger",
]
