"""
@PURPOSE: 阶段 2 - 配置应用版本(App URL/嵌入/权限/回调)并发布
@OUTLINE:
  - class ConfigureVersionStage:
    - execute(): 填写版本表单 → 检查 Release 可用 → 发布 → 可选确认弹窗 → 尽力校验激活版本
    - _verify_active_version(): 打开版本列表, 读取激活版本的配置并记录
@GOTCHAS:
  - App URL 逐字输入后 Tab 失焦, 回读不一致即失败
  - 嵌入开关以配置 embed_app 为目标状态, 切换后再次检查
  - 权限与回调字段缺失致命, 但回读只做记录
  - Release 按钮禁用说明表单未通过校验, 不能点击
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: .base, .readback, ..errors
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from ..errors import AmbiguousUiStateError, ElementNotFoundError, NavigationTimeoutError, VerificationMismatchError
from .base import OptionalStep, RunState, Stage, StageContext
from .readback import readback_best_effort, verify_readback


class ConfigureVersionStage(Stage):
    """配置并发布应用版本."""

    name = "configure_version"
    title = "配置并发布版本"

    async def execute(self, ctx: StageContext, state: RunState) -> dict[str, Any]:
        record = state.require_record()
        version = ctx.settings.version_config

        await ctx.open(ctx.urls.versions_new(record.resource_id))
        await ctx.settle()

        # App URL
        app_url_input = await ctx.resolver.require("app_url_input")
        await app_url_input.scroll_into_view_if_needed()
        await app_url_input.click(force=True)
        await app_url_input.press("ControlOrMeta+A")
        await app_url_input.type(version.callback_url, delay=10)
        await app_url_input.press("Tab")
        await verify_readback(app_url_input, version.callback_url, "app_url", url=ctx.page.url)

        # 嵌入 Shopify Admin
        embed_checkbox = await ctx.resolver.require("embed_checkbox")
        checked = await embed_checkbox.is_checked()
        logger.info(f"Embed 开关当前: {checked}, 目标: {ctx.settings.embed_app}")
        if checked != ctx.settings.embed_app:
            await embed_checkbox.click(force=True)
            await ctx.settle(300)
        checked_after = await embed_checkbox.is_checked()
        if checked_after != ctx.settings.embed_app:
            raise VerificationMismatchError(
                "embed_app",
                str(ctx.settings.embed_app).lower(),
                str(checked_after).lower(),
                url=ctx.page.url,
            )

        await ctx.capture("before-release-after-url-embed")

        # 权限范围
        scopes_input = await ctx.resolver.require("scopes_input")
        await scopes_input.scroll_into_view_if_needed()
        await scopes_input.click(force=True)
        await scopes_input.fill(version.scopes_csv)
        await scopes_input.blur()
        scopes_readback = await readback_best_effort(scopes_input, "scopes", sensitive=True)

        # 回调 URL
        redirect_input = await ctx.resolver.require("redirect_urls_input")
        await redirect_input.scroll_into_view_if_needed()
        await redirect_input.click(force=True)
        await redirect_input.fill(version.redirect_url)
        await redirect_input.blur()
        redirect_readback = await readback_best_effort(redirect_input, "redirect_urls")

        await ctx.settle()

        # 发布
        release_button = await ctx.resolver.require("release_button")
        try:
            disabled = await release_button.is_disabled()
        except PlaywrightError:
            disabled = True
        logger.info(f"Release 按钮可见, disabled={disabled}")
        await ctx.capture("before-release")

        if disabled:
            await ctx.capture("release-disabled")
            raise AmbiguousUiStateError(
                "Release button is disabled (fields likely not valid / not saved)",
                url=ctx.page.url,
            )

        await release_button.click(force=True)
        logger.info("已点击: Release")
        await ctx.settle()

        confirm = await ctx.click_optional("release_confirm_button")
        if confirm is OptionalStep.FAILED:
            raise AmbiguousUiStateError("发布确认弹窗存在但无法确认", url=ctx.page.url)
        if confirm is OptionalStep.HANDLED:
            logger.info("已点击: 确认 Release (弹窗)")

        await ctx.navigator.wait_for_load_state("networkidle", required=False)
        await ctx.capture("after-release")

        active = await self._verify_active_version(ctx, record.resource_id)
        return {
            "scopes_length": len(scopes_readback),
            "redirect_readback": redirect_readback,
            "release_confirmed": confirm is OptionalStep.HANDLED,
            **active,
        }

    async def _verify_active_version(self, ctx: StageContext, app_id: str) -> dict[str, Any]:
        """尽力校验激活版本, 任何页面问题只记录日志."""
        try:
            await ctx.open(ctx.urls.versions(app_id))
            await ctx.settle()
            version_link = await ctx.resolver.resolve("active_version_link")
            if version_link is None:
                logger.warning("版本列表中没有可打开的版本, 跳过激活版本校验")
                return {"active_version_checked": False}

            await version_link.click(force=True)
            await ctx.navigator.wait_for_load_state("domcontentloaded", required=False)
            await ctx.settle()

            app_url = ""
            scopes = ""
            app_url_input = await ctx.resolver.present("app_url_input")
            if app_url_input is not None:
                app_url = await readback_best_effort(app_url_input, "active_version.app_url")
            scopes_input = await ctx.resolver.present("scopes_input")
            if scopes_input is not None:
                scopes = await readback_best_effort(scopes_input, "active_version.scopes", sensitive=True)
        except (ElementNotFoundError, NavigationTimeoutError, PlaywrightError) as exc:
            logger.warning(f"激活版本校验失败(不影响结果): {exc}")
            return {"active_version_checked": False}

        await ctx.capture("verify-active-version")
        return {
            "active_version_checked": True,
            "active_app_url": app_url,
            "active_scopes_length": len(scopes),
        }
