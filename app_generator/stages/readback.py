"""
@PURPOSE: 写入后回读校验, 以及尽力而为的字段读取
@OUTLINE:
  - async def verify_readback(): 回读并与期望值比较(去除首尾空白), 不一致抛出 VerificationMismatchError
  - async def readback_best_effort(): 回读并记录日志, 永不抛出
  - async def read_field_value(): 按标签类型读取 input 值或 code 文本
@GOTCHAS:
  - 富文本控件的写入对驱动来说是异步的, 驱动接受写入不代表 UI 已提交
  - sensitive=True 时只记录长度
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: ..errors
"""

from __future__ import annotations

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator

from ..errors import VerificationMismatchError


async def verify_readback(locator: Locator, expected: str, field: str, *, url: str | None = None) -> str:
    """回读字段并校验.

    Args:
        locator: 已写入的输入框
        expected: 期望值
        field: 字段名(用于日志与错误)
        url: 当前页面 URL

    Returns:
        回读到的值(已去除首尾空白)

    Raises:
        VerificationMismatchError: 回读值与期望值不一致
    """
    observed = (await locator.input_value()).strip()
    logger.info(f"READBACK {field}: {observed}")
    if observed != expected.strip():
        raise VerificationMismatchError(field, expected, observed, url=url)
    return observed


async def readback_best_effort(locator: Locator, field: str, *, sensitive: bool = False) -> str:
    """尽力回读字段, 失败返回空字符串."""
    try:
        observed = (await locator.input_value()).strip()
    except PlaywrightError as exc:
        logger.debug(f"READBACK {field} 失败: {exc}")
        return ""
    if sensitive:
        logger.info(f"READBACK {field} 长度: {len(observed)}")
    else:
        logger.info(f"READBACK {field}: {observed}")
    return observed


async def read_field_value(locator: Locator) -> str:
    """读取字段值: <code> 取文本, 其他取 input 值."""
    tag = str(await locator.evaluate("el => el.tagName")).lower()
    if tag == "code":
        return await locator.text_content() or ""
    return await locator.input_value()
