"""
@PURPOSE: 测试阻断状态检测与处理(账号选择页绕过/重新登录墙)
@OUTLINE:
  - TestBlockingDetector: URL 与地标分类
  - TestChooserBypass: 有界绕过
  - TestReauth: 快速失败与交互等待
@DEPENDENCIES:
  - 外部: pytest, pytest-asyncio
  - 内部: app_generator.utils.state_detector, tests.mocks
"""

import asyncio

import pytest

from app_generator.browser.navigator import Navigator
from app_generator.browser.session_store import SessionStore
from app_generator.core.cancellation import CancellationToken
from app_generator.errors import AccountChooserError, AmbiguousUiStateError, BlockedByReauthError
from app_generator.utils.state_detector import BlockingDetector, BlockingGuard, PageSnapshot, PageState
from tests.mocks import CHOOSER_URL, DASHBOARD_URL, DISTRIBUTION_URL, LOGIN_URL, FakeConsole, FakeElement


class TestBlockingDetector:
    """测试阻断状态分类"""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://accounts.shopify.com/select?rid=abc", PageState.ACCOUNT_CHOOSER),
            ("https://accounts.shopify.com/lookup?rid=abc", PageState.REAUTH_WALL),
            ("https://accounts.shopify.com/account/tfa", PageState.REAUTH_WALL),
            ("https://partners.shopify.com/2767396/login", PageState.REAUTH_WALL),
            ("https://dev.shopify.com/dashboard/1/apps/2/versions/new", PageState.NORMAL),
            ("https://partners.shopify.com/2767396/apps/2/distribution", PageState.NORMAL),
            ("", PageState.NORMAL),
        ],
    )
    def test_classify_by_url(self, url, expected):
        assert BlockingDetector().classify(url) is expected

    def test_classify_by_landmark(self):
        detector = BlockingDetector()
        chooser = PageSnapshot(title="Shopify", headings=("Choose an account",))
        reauth = PageSnapshot(title="Log in - Shopify")
        assert detector.classify("https://dev.shopify.com/x", chooser) is PageState.ACCOUNT_CHOOSER
        assert detector.classify("https://dev.shopify.com/x", reauth) is PageState.REAUTH_WALL

    def test_url_takes_precedence_over_landmarks(self):
        snapshot = PageSnapshot(headings=("Log in",))
        assert BlockingDetector().classify(CHOOSER_URL, snapshot) is PageState.ACCOUNT_CHOOSER

    def test_ordinary_headings_are_normal(self):
        snapshot = PageSnapshot(title="Apps", headings=("Versions", "Select custom distribution"))
        assert BlockingDetector().classify(DISTRIBUTION_URL, snapshot) is PageState.NORMAL

    async def test_detect_reads_page_headings(self, console):
        console.view(r"dev\.shopify\.com", title="Shopify").headings("Select an account")
        page = console.new_page("https://dev.shopify.com/dashboard/1/apps")
        assert await BlockingDetector().detect(page) is PageState.ACCOUNT_CHOOSER


def _guard(tmp_path, token=None, **kwargs) -> BlockingGuard:
    return BlockingGuard(
        BlockingDetector(),
        session_store=SessionStore(tmp_path / "state.json"),
        token=token or CancellationToken(),
        **kwargs,
    )


async def _open(console: FakeConsole, url: str, token: CancellationToken | None = None) -> Navigator:
    navigator = Navigator(console.new_page(), timeout_ms=1_000, settle_ms=0, token=token)
    await navigator.goto(url)
    return navigator


class TestChooserBypass:
    """测试账号选择页绕过"""

    async def test_normal_page_needs_no_attempts(self, tmp_path, console):
        navigator = await _open(console, DISTRIBUTION_URL)
        guard = _guard(tmp_path)
        assert await guard.ensure_clear(navigator, destination=DISTRIBUTION_URL) == 0
        assert guard.chooser_attempts == 0

    async def test_chooser_resolved_on_third_renavigation(self, tmp_path, console):
        # 初次打开 + 前两次重新打开都落到账号选择页
        console.chooser(3, match="/distribution")
        navigator = await _open(console, DISTRIBUTION_URL)
        assert navigator.page.url == CHOOSER_URL

        guard = _guard(tmp_path)
        attempts = await guard.ensure_clear(navigator, destination=DISTRIBUTION_URL)

        assert attempts == 3
        assert guard.chooser_attempts == 3
        assert navigator.page.url == DISTRIBUTION_URL
        assert console.visits.count(DISTRIBUTION_URL) == 4

    async def test_chooser_resolved_at_the_limit(self, tmp_path, console):
        console.chooser(5, match="/distribution")
        navigator = await _open(console, DISTRIBUTION_URL)

        guard = _guard(tmp_path, max_chooser_attempts=5)
        attempts = await guard.ensure_clear(navigator, destination=DISTRIBUTION_URL)

        assert attempts == 5
        assert navigator.page.url == DISTRIBUTION_URL

    async def test_chooser_never_resolving_fails_after_max_attempts(self, tmp_path, console):
        console.chooser(1_000)
        navigator = await _open(console, DISTRIBUTION_URL)

        guard = _guard(tmp_path, max_chooser_attempts=5)
        with pytest.raises(AccountChooserError) as exc_info:
            await guard.ensure_clear(navigator, destination=DISTRIBUTION_URL)

        assert exc_info.value.attempts == 5
        assert isinstance(exc_info.value, AmbiguousUiStateError)
        assert guard.chooser_attempts == 5
        # 初次打开 + 5 次重新打开
        assert len(console.visits) == 6

    async def test_account_hint_clicks_tile(self, tmp_path, console):
        clicked = []
        chooser = console.view(r"accounts\.shopify\.com/select")
        element = chooser.add_key("role=link[Acme Org]", _tile(clicked))
        console.chooser(1, match="/distribution")
        navigator = await _open(console, DISTRIBUTION_URL)

        guard = _guard(tmp_path, account_hint="Acme Org")
        assert await guard.ensure_clear(navigator, destination=DISTRIBUTION_URL) == 1
        assert element.clicks == 1
        assert clicked == [CHOOSER_URL]


def _tile(clicked: list) -> FakeElement:
    return FakeElement(tag="a", on_click=lambda page: clicked.append(page.url))


class TestReauth:
    """测试重新登录墙"""

    async def test_fail_fast_by_default(self, tmp_path, console):
        console.reauth(1)
        navigator = await _open(console, DASHBOARD_URL)

        with pytest.raises(BlockedByReauthError) as exc_info:
            await _guard(tmp_path).ensure_clear(navigator, destination=DASHBOARD_URL)

        assert exc_info.value.url == LOGIN_URL
        assert exc_info.value.kind == "blocked_by_reauth"
        assert "session capture" in exc_info.value.message

    async def test_interactive_waits_and_persists_session(self, tmp_path, console):
        console.reauth(1)
        navigator = await _open(console, DASHBOARD_URL)
        guard = _guard(
            tmp_path,
            interactive_reauth=True,
            reauth_max_wait_seconds=5,
            reauth_poll_interval_seconds=0.01,
        )

        async def operator_logs_in():
            await asyncio.sleep(0.05)
            navigator.page.url = DASHBOARD_URL

        operator = asyncio.create_task(operator_logs_in())
        attempts = await guard.ensure_clear(navigator, destination=DASHBOARD_URL)
        await operator

        assert attempts == 0
        assert guard.reauth_refreshed is True
        assert guard.session_store.exists()
        assert navigator.page.url == DASHBOARD_URL

    async def test_interactive_gives_up_after_max_wait(self, tmp_path, console):
        console.reauth(1)
        navigator = await _open(console, DASHBOARD_URL)
        guard = _guard(
            tmp_path,
            interactive_reauth=True,
            reauth_max_wait_seconds=0.05,
            reauth_poll_interval_seconds=0.01,
        )

        with pytest.raises(BlockedByReauthError) as exc_info:
            await guard.ensure_clear(navigator, destination=DASHBOARD_URL)

        assert "超时" in exc_info.value.message
        assert guard.reauth_refreshed is False
        assert not guard.session_store.exists()
