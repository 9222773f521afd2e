"""
@PURPOSE: 日志系统设置 - 配置结构化日志、日志轮转和多级别输出
@OUTLINE:
  - def setup_logger(): 配置全局日志系统
  - def get_logger_with_context(): 获取带上下文的 logger
  - def format_detailed(): 详细格式化器
  - def format_json(): JSON 格式化器
  - def format_simple(): 简单格式化器
@GOTCHAS:
  - 由入口(CLI/HTTP)显式调用 setup_logger(), 导入本模块不会修改全局 logger
  - JSON 格式适合容器部署的日志采集
  - 永远不要把 client_secret 等凭证写入日志, 只记录长度
@DEPENDENCIES:
  - 外部: loguru
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

_CONTEXT_KEYS = ("workflow_id", "stage", "action")

_configured = False


# ========== 日志格式化器 ==========


def format_detailed(record: dict[str, Any]) -> str:
    """详细格式化器(开发环境).

    Args:
        record: 日志记录

    Returns:
        格式化模板字符串
    """
    extra = record["extra"]
    workflow_id = extra.get("workflow_id", "")
    stage = extra.get("stage", "")
    action = extra.get("action", "")

    context_parts = []
    if workflow_id:
        context_parts.append(f"workflow={workflow_id[:8]}")
    if stage:
        context_parts.append(f"stage={stage}")
    if action:
        context_parts.append(f"action={action}")

    context_str = f" [{', '.join(context_parts)}]" if context_parts else ""
    # 上下文中可能包含花括号, 需转义后再拼入模板
    context_str = context_str.replace("{", "{{").replace("}", "}}")

    return (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>"
        f"{context_str} - "
        "<level>{message}</level>\n"
        "{exception}"
    )


def format_json(record: dict[str, Any]) -> str:
    """JSON 格式化器(生产环境).

    序列化结果放入 record["extra"], 模板只引用该字段, 避免消息中的花括号被当作模板.
    """
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
        "message": record["message"],
    }

    extra = record["extra"]
    context = {key: extra[key] for key in _CONTEXT_KEYS if key in extra}
    if context:
        log_entry["context"] = context

    if record["exception"]:
        log_entry["exception"] = {
            "type": record["exception"].type.__name__,
            "value": str(record["exception"].value),
        }

    record["extra"]["_json"] = json.dumps(log_entry, ensure_ascii=False, default=str)
    return "{extra[_json]}\n"


def format_simple(record: dict[str, Any]) -> str:
    """简单格式化器."""
    return "{time:HH:mm:ss} | {level: <8} | {message}\n"


_FORMATTERS = {
    "detailed": format_detailed,
    "json": format_json,
    "simple": format_simple,
}


# ========== 日志设置 ==========


def setup_logger(config: Any, *, log_file: str | Path | None = None, force: bool = False) -> None:
    """配置全局日志系统.

    Args:
        config: 日志配置(LoggingConfig)
        log_file: 文件输出的绝对路径, 默认使用 config.file_path
        force: 已配置过时是否强制重新配置

    Examples:
        >>> from config.settings import create_settings
        >>> settings = create_settings()
        >>> setup_logger(settings.logging, log_file=settings.get_absolute_path(settings.logging.file_path))
    """
    global _configured
    if _configured and not force:
        return

    logger.remove()
    formatter = _FORMATTERS.get(config.format, format_detailed)

    if "console" in config.output:
        logger.add(
            sys.stderr,
            format=formatter,
            level=config.level,
            colorize=config.format != "json",
            backtrace=True,
            diagnose=False,
        )

    if "file" in config.output:
        target = Path(log_file or config.file_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(target),
            format=formatter,
            level=config.level,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            backtrace=True,
            diagnose=False,
            encoding="utf-8",
            enqueue=True,
        )

    _configured = True
    logger.debug(f"日志系统已配置: level={config.level}, format={config.format}, output={config.output}")


def get_logger_with_context(**context: Any) -> Any:
    """获取带上下文的 logger.

    Examples:
        >>> log = get_logger_with_context(workflow_id="xxx", stage="create_app")
        >>> log.info("开始创建应用")
    """
    return logger.bind(**context)
