"""
@PURPOSE: 配置模块, 导出配置类与工厂函数供入口使用
@OUTLINE:
  - Settings: 应用配置主类
  - create_settings(): 按环境创建配置
  - get_settings(): 获取缓存的配置实例
@DEPENDENCIES:
  - 内部: .settings
"""

from .settings import (
    BrowserConfig,
    DebugConfig,
    LoggingConfig,
    Settings,
    WorkflowConfig,
    create_settings,
    get_settings,
    load_environment_config,
)

__all__ = [
    "BrowserConfig",
    "DebugConfig",
    "LoggingConfig",
    "Settings",
    "WorkflowConfig",
    "create_settings",
    "get_settings",
    "load_environment_config",
]
