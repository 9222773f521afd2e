"""
@PURPOSE: 阻断状态检测与处理 - 识别账号选择页/重新登录墙, 并执行有界的绕过或等待
@OUTLINE:
  - class PageState: 页面阻断状态(NORMAL/ACCOUNT_CHOOSER/REAUTH_WALL)
  - dataclass PageSnapshot: 页面文本地标(标题 + 各级标题)
  - class BlockingDetector: 基于 URL 与文本地标的状态分类器
    - classify(): 纯函数分类
    - snapshot(): 读取页面地标
    - detect(): 读取并分类当前页面
  - class BlockingGuard: 阻断处理器
    - ensure_clear(): 确保页面处于正常状态, 必要时绕过账号选择页或等待人工验证
@GOTCHAS:
  - 账号选择页绕过次数有上限(默认 5), 超过抛出 AccountChooserError
  - 重新登录墙默认立即失败; 仅 interactive 模式下轮询等待, 最长 reauth_max_wait_seconds
  - 人工验证通过后立即持久化新的会话文件
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: ..errors, ..core.cancellation, ..browser.session_store, ..browser.navigator
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..core.cancellation import CancellationToken
from ..errors import AccountChooserError, BlockedByReauthError

if TYPE_CHECKING:
    from config.settings import Settings

    from ..browser.navigator import Navigator
    from ..browser.session_store import SessionStore


class PageState(Enum):
    """页面阻断状态."""

    NORMAL = "normal"
    ACCOUNT_CHOOSER = "account_chooser"
    REAUTH_WALL = "reauth_wall"


@dataclass(frozen=True, slots=True)
class PageSnapshot:
    """页面文本地标."""

    title: str = ""
    headings: tuple[str, ...] = ()

    @property
    def texts(self) -> tuple[str, ...]:
        return (self.title, *self.headings) if self.title else self.headings


class BlockingDetector:
    """阻断状态检测器.

    URL 优先判断, 无法从 URL 得出结论时再用页面标题等地标细化.

    Examples:
        >>> BlockingDetector().classify("https://accounts.shopify.com/select?rid=1")
        <PageState.ACCOUNT_CHOOSER: 'account_chooser'>
    """

    ACCOUNTS_HOST = "accounts.shopify.com"
    CHOOSER_PATHS = ("accounts.shopify.com/select",)
    REAUTH_PATH_RE = re.compile(r"/(login|signin|sign_in|lookup|password|challenge|tfa|verify)(\b|/|\?|$)", re.I)

    CHOOSER_LANDMARK_RE = re.compile(r"^\s*(choose|select) an account\b", re.I)
    REAUTH_LANDMARK_RE = re.compile(
        r"^\s*(log in|sign in|verify (it's|it is) you|two-step authentication|enter your password)\b",
        re.I,
    )

    HEADING_SELECTOR = "h1, h2, [role='heading']"

    def classify(self, url: str, snapshot: PageSnapshot | None = None) -> PageState:
        """根据 URL 与地标分类页面状态."""
        url = url or ""
        if any(path in url for path in self.CHOOSER_PATHS):
            return PageState.ACCOUNT_CHOOSER
        if self.ACCOUNTS_HOST in url:
            return PageState.REAUTH_WALL
        if self.REAUTH_PATH_RE.search(url.split("#", 1)[0]):
            return PageState.REAUTH_WALL

        if snapshot is not None:
            texts = snapshot.texts
            if any(self.CHOOSER_LANDMARK_RE.search(text) for text in texts):
                return PageState.ACCOUNT_CHOOSER
            if any(self.REAUTH_LANDMARK_RE.search(text) for text in texts):
                return PageState.REAUTH_WALL
        return PageState.NORMAL

    async def snapshot(self, page: Page) -> PageSnapshot | None:
        """读取页面标题与各级标题, 读取失败返回 None(只用 URL 判断)."""
        try:
            title = await page.title()
            headings = await page.locator(self.HEADING_SELECTOR).all_inner_texts()
        except PlaywrightError as exc:
            logger.debug(f"读取页面地标失败, 仅按 URL 判断: {exc}")
            return None
        return PageSnapshot(
            title=title.strip(),
            headings=tuple(text.strip() for text in headings[:10] if text.strip()),
        )

    async def detect(self, page: Page) -> PageState:
        state = self.classify(page.url, await self.snapshot(page))
        if state is not PageState.NORMAL:
            logger.info(f"📍 检测到阻断状态: {state.value} ({page.url})")
        return state


class BlockingGuard:
    """阻断处理器.

    Attributes:
        chooser_attempts: 本次运行累计的账号选择页绕过次数
        reauth_refreshed: 本次运行是否因人工验证刷新过会话
    """

    def __init__(
        self,
        detector: BlockingDetector,
        *,
        session_store: SessionStore,
        token: CancellationToken,
        max_chooser_attempts: int = 5,
        interactive_reauth: bool = False,
        reauth_max_wait_seconds: float = 600.0,
        reauth_poll_interval_seconds: float = 2.0,
        account_hint: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.detector = detector
        self.session_store = session_store
        self.token = token
        self.max_chooser_attempts = max_chooser_attempts
        self.interactive_reauth = interactive_reauth
        self.reauth_max_wait_seconds = reauth_max_wait_seconds
        self.reauth_poll_interval_seconds = reauth_poll_interval_seconds
        self.account_hint = account_hint
        self._clock = clock

        self.chooser_attempts = 0
        self.reauth_refreshed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        session_store: SessionStore,
        token: CancellationToken,
        detector: BlockingDetector | None = None,
    ) -> BlockingGuard:
        return cls(
            detector or BlockingDetector(),
            session_store=session_store,
            token=token,
            max_chooser_attempts=settings.account_chooser_max_attempts,
            interactive_reauth=settings.interactive_reauth,
            reauth_max_wait_seconds=settings.reauth_max_wait_seconds,
            reauth_poll_interval_seconds=settings.reauth_poll_interval_seconds,
            account_hint=settings.account_hint,
        )

    async def ensure_clear(self, navigator: Navigator, destination: str | None = None) -> int:
        """确保页面不处于阻断状态.

        Args:
            navigator: 当前页面的导航器
            destination: 被拦截前原本要去的 URL, 账号选择页绕过时重新打开

        Returns:
            本次调用执行的账号选择页绕过次数

        Raises:
            AccountChooserError: 绕过次数耗尽
            BlockedByReauthError: 重新登录墙(非交互模式)或人工验证超时
        """
        page = navigator.page
        attempts = 0
        reauth_rounds = 0
        state = await self.detector.detect(page)

        while state is not PageState.NORMAL:
            self.token.check()
            if state is PageState.ACCOUNT_CHOOSER:
                if attempts >= self.max_chooser_attempts:
                    raise AccountChooserError(attempts, url=page.url)
                attempts += 1
                self.chooser_attempts += 1
                await self._bypass_chooser(navigator, destination, attempts)
            else:
                # 人工验证后可能再次落到登录页, 最多处理两轮
                reauth_rounds += 1
                if reauth_rounds > 2:
                    raise BlockedByReauthError(page.url)
                await self._wait_for_reauth(navigator)
                if destination:
                    await navigator.goto(destination)
            state = await self.detector.detect(page)

        if attempts:
            logger.success(f"账号选择页已绕过 (尝试 {attempts} 次)")
        return attempts

    async def _bypass_chooser(self, navigator: Navigator, destination: str | None, attempt: int) -> None:
        page = navigator.page
        logger.info(f"账号选择页绕过: 第 {attempt}/{self.max_chooser_attempts} 次")

        if self.account_hint:
            tile = page.get_by_role("link", name=re.compile(self.account_hint, re.I)).first
            try:
                if await tile.count() > 0:
                    await tile.click(force=True)
                    await navigator.wait_for_load_state("domcontentloaded", required=False)
                    logger.debug(f"已点击账号: {self.account_hint}")
            except PlaywrightError as exc:
                logger.debug(f"点击账号失败, 直接重新打开目标页: {exc}")

        if destination:
            await navigator.goto(destination)
        else:
            await navigator.wait_for_load_state("domcontentloaded", required=False)
        await navigator.settle()

    async def _wait_for_reauth(self, navigator: Navigator) -> None:
        page = navigator.page
        if not self.interactive_reauth:
            raise BlockedByReauthError(page.url)

        logger.warning(
            f"⚠️  需要重新登录, 请在浏览器窗口中完成验证 "
            f"(最长等待 {int(self.reauth_max_wait_seconds)}s): {page.url}"
        )
        started = self._clock()
        # 人工等待不占用阶段超时与运行截止时间, 只受 reauth_max_wait_seconds 约束
        with self.token.suspend():
            while True:
                await self.token.sleep(self.reauth_poll_interval_seconds)
                if await self.detector.detect(page) is not PageState.REAUTH_WALL:
                    break
                if self._clock() - started >= self.reauth_max_wait_seconds:
                    raise BlockedByReauthError(
                        page.url,
                        message=f"等待人工完成登录验证超时 ({int(self.reauth_max_wait_seconds)}s)",
                    )

        await self.session_store.save_from_context(page.context)
        self.reauth_refreshed = True
        logger.success("人工验证完成, 会话已刷新")
