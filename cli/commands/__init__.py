"""
@PURPOSE: CLI 命令组, 以及各命令共用的配置加载
@OUTLINE:
  - load_cli_settings(): 读取 .env, 按环境创建配置、运行时目录并初始化日志
@DEPENDENCIES:
  - 外部: python-dotenv
  - 内部: config.settings, app_generator.utils.logger_setup
"""

from __future__ import annotations

from dotenv import load_dotenv

from app_generator.utils.logger_setup import setup_logger
from config.settings import Settings, create_settings


def load_cli_settings(env: str | None = None) -> Settings:
    """创建命令使用的配置实例并配置日志."""
    load_dotenv(override=False)
    settings = create_settings(env)
    settings.ensure_directories()
    setup_logger(settings.logging, log_file=settings.get_absolute_path(settings.logging.file_path))
    return settings
