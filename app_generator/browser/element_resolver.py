"""
@PURPOSE: 解析 JSON 选择器目录, 按声明顺序把逻辑目标解析为 Playwright Locator
@OUTLINE:
  - class SelectorCatalog: 逻辑目标 → 候选定位策略列表
  - def build_locator(): 单个定位策略 → Locator
  - class ElementResolver: 按顺序逐个尝试候选策略
    - resolve(): 返回第一个满足状态的 Locator, 全部未命中返回 None
    - require(): 同 resolve, 未命中抛出 ElementNotFoundError
    - candidates(): 按顺序惰性产出已挂载的候选(尽力抓取用)
    - present(): 不等待, 仅检查当前是否存在可见匹配
@GOTCHAS:
  - 每次调用都重新查询 DOM, 不缓存任何元素句柄
  - 每个候选最多等待自身超时, 命中后不再触碰后续候选
  - Playwright 的 timeout=0 表示不限时, 所有超时都经过 token.clamp_ms 裁剪
@DEPENDENCIES:
  - 外部: playwright.async_api, loguru
  - 内部: ..errors, ..core.cancellation
@RELATED: config/console_selectors.json, navigator.py
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.cancellation import CancellationToken
from ..errors import ConfigurationError, ElementNotFoundError

_VALID_STATES = ("visible", "attached")


class SelectorCatalog:
    """选择器目录.

    Examples:
        >>> catalog = SelectorCatalog.load("config/console_selectors.json")
        >>> catalog.locators("release_button")[0]["type"]
        'role'
    """

    def __init__(self, targets: dict[str, dict[str, Any]]):
        self._targets = targets

    @classmethod
    def load(cls, path: str | Path) -> SelectorCatalog:
        """从 JSON 文件加载目录.

        Raises:
            ConfigurationError: 文件缺失或格式错误
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"选择器目录不存在: {path}", missing=[str(path)])
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"选择器目录格式错误: {path}: {exc}") from exc

        targets = data.get("targets")
        if not isinstance(targets, dict) or not targets:
            raise ConfigurationError(f"选择器目录缺少 targets: {path}")
        logger.debug(f"已加载选择器目录 {path.name}: {len(targets)} 个目标")
        return cls(targets)

    def __contains__(self, target: str) -> bool:
        return target in self._targets

    @property
    def targets(self) -> list[str]:
        return list(self._targets)

    def locators(self, target: str) -> list[dict[str, Any]]:
        """返回目标的候选定位策略(声明顺序)."""
        entry = self._targets.get(target)
        if entry is None:
            raise ConfigurationError(f"选择器目录中没有目标: {target}")
        locators = entry.get("locators", [])
        if isinstance(locators, (str, dict)):
            locators = [locators]
        return [{"type": "css", "value": item} if isinstance(item, str) else item for item in locators]


def _pattern(config: dict[str, Any], key: str) -> str | re.Pattern[str] | None:
    value = config.get(key)
    if value is None:
        return None
    if config.get("regex"):
        return re.compile(value, re.IGNORECASE)
    return value


def build_locator(root: Page | Locator, config: dict[str, Any]) -> Locator:
    """根据单个定位策略创建 Locator.

    Args:
        root: 查询根(页面或容器 Locator)
        config: 定位策略, 例如
            {"type": "role", "role": "button", "name": "^release$", "regex": true}

    Returns:
        未限定序号的 Locator
    """
    scope = config.get("scope")
    if scope:
        root = root.locator(scope)

    locator_type = config.get("type", "css")
    exact = config.get("exact")

    if locator_type == "css":
        locator = root.locator(config["value"])
    elif locator_type == "role":
        name = _pattern(config, "name")
        if name is None:
            locator = root.get_by_role(config["role"])
        else:
            locator = root.get_by_role(config["role"], name=name, exact=exact)
    elif locator_type == "label":
        locator = root.get_by_label(_pattern(config, "value"), exact=exact)
    elif locator_type == "placeholder":
        locator = root.get_by_placeholder(_pattern(config, "value"), exact=exact)
    elif locator_type == "text":
        locator = root.get_by_text(_pattern(config, "value"), exact=exact)
    else:
        raise ConfigurationError(f"未知的定位器类型: {locator_type}")

    has_text = _pattern(config, "has_text")
    has_not_text = _pattern(config, "has_not_text")
    if has_text is not None or has_not_text is not None:
        locator = locator.filter(has_text=has_text, has_not_text=has_not_text)
    return locator


def _pick(locator: Locator, config: dict[str, Any]) -> Locator:
    nth = config.get("nth", "first")
    if nth == "last":
        return locator.last
    if isinstance(nth, int):
        return locator.nth(nth)
    return locator.first


class ElementResolver:
    """按候选顺序解析逻辑目标.

    Attributes:
        page: 当前页面
        catalog: 选择器目录
        default_timeout_ms: 候选未声明 timeout_ms 时的等待上限
    """

    def __init__(
        self,
        page: Page,
        catalog: SelectorCatalog,
        *,
        default_timeout_ms: float = 30_000,
        token: CancellationToken | None = None,
    ):
        self.page = page
        self.catalog = catalog
        self.default_timeout_ms = default_timeout_ms
        self.token = token or CancellationToken()

    def for_page(self, page: Page) -> ElementResolver:
        """为另一个页面创建共享目录与令牌的解析器."""
        return ElementResolver(
            page,
            self.catalog,
            default_timeout_ms=self.default_timeout_ms,
            token=self.token,
        )

    def _candidate_timeout(self, config: dict[str, Any], timeout_ms: float | None) -> float:
        declared = config.get("timeout_ms")
        if declared is not None:
            budget = declared if timeout_ms is None else min(declared, timeout_ms)
        else:
            budget = self.default_timeout_ms if timeout_ms is None else timeout_ms
        return self.token.clamp_ms(budget)

    async def resolve(
        self,
        target: str,
        *,
        timeout_ms: float | None = None,
        root: Page | Locator | None = None,
    ) -> Locator | None:
        """解析逻辑目标, 返回第一个满足状态的 Locator.

        Args:
            target: 目录中的逻辑目标名称
            timeout_ms: 每个候选的等待上限(与候选自身声明取较小值)
            root: 查询根, 默认当前页面

        Returns:
            命中的 Locator, 全部未命中返回 None
        """
        base = root if root is not None else self.page
        candidates = self.catalog.locators(target)

        for index, config in enumerate(candidates):
            self.token.check()
            state = config.get("state", "visible")
            if state not in _VALID_STATES:
                raise ConfigurationError(f"目标 {target} 的候选 {index} 状态非法: {state}")

            locator = _pick(build_locator(base, config), config)
            wait_ms = self._candidate_timeout(config, timeout_ms)
            try:
                await self.token.run(locator.wait_for(state=state, timeout=wait_ms))
            except PlaywrightTimeoutError:
                logger.debug(f"[{target}] 候选 {index} 未命中 ({int(wait_ms)}ms): {config}")
                continue
            except PlaywrightError as exc:
                # 选择器语法不被当前页面支持等情况, 视为未命中
                logger.debug(f"[{target}] 候选 {index} 解析失败: {exc}")
                continue

            logger.debug(f"[{target}] 命中候选 {index}: {config.get('type')}")
            return locator

        logger.warning(f"[{target}] 所有 {len(candidates)} 个定位策略均未命中")
        return None

    async def require(
        self,
        target: str,
        *,
        timeout_ms: float | None = None,
        root: Page | Locator | None = None,
    ) -> Locator:
        """解析逻辑目标, 未命中时抛出 ElementNotFoundError."""
        locator = await self.resolve(target, timeout_ms=timeout_ms, root=root)
        if locator is None:
            raise ElementNotFoundError(
                target,
                tried=len(self.catalog.locators(target)),
                url=self.page.url,
            )
        return locator

    async def candidates(self, target: str) -> AsyncIterator[Locator]:
        """按声明顺序产出当前已挂载的候选, 不等待.

        用于尽力抓取: 调用方读取值, 为空则继续取下一个.
        """
        for config in self.catalog.locators(target):
            self.token.check()
            locator = _pick(build_locator(self.page, config), config)
            try:
                if await locator.count() == 0:
                    continue
            except PlaywrightError as exc:
                logger.debug(f"[{target}] 候选计数失败: {exc}")
                continue
            yield locator

    async def present(self, target: str, *, root: Page | Locator | None = None) -> Locator | None:
        """不等待, 返回当前已存在且满足状态的第一个候选."""
        base = root if root is not None else self.page
        for config in self.catalog.locators(target):
            self.token.check()
            locator = _pick(build_locator(base, config), config)
            try:
                if await locator.count() == 0:
                    continue
                if config.get("state", "visible") == "attached" or await locator.is_visible():
                    return locator
            except PlaywrightError as exc:
                logger.debug(f"[{target}] 候选检查失败: {exc}")
        return None

    def all(self, target: str) -> Locator:
        """返回目标首个候选的未限定 Locator, 用于遍历所有匹配."""
        return build_locator(self.page, self.catalog.locators(target)[0])
