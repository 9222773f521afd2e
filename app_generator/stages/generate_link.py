"""
@PURPOSE: 阶段 5 - 填写商家店铺域名并生成自定义分发安装链接
@OUTLINE:
  - def looks_like_activation_link(): 判断字符串是否为安装链接
  - class GenerateLinkStage:
    - execute(): 填写域名(回读) → Generate link → 可选弹窗确认 → 抓取链接
    - _scrape_link(): Install link 文本框优先, 失败时扫描所有输入框
@GOTCHAS:
  - 域名回读不一致致命
  - 链接为空是软失败: 结果照常返回, warnings 中标记
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: .base, .readback, ..errors
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from ..errors import AmbiguousUiStateError
from .base import OptionalStep, RunState, Stage, StageContext
from .readback import verify_readback


def looks_like_activation_link(value: str) -> bool:
    """安装链接形如 https://admin.shopify.com/.../oauth/install_custom_app?... ."""
    return "admin.shopify.com" in value and ("/oauth/" in value or "install_custom_app" in value)


class GenerateLinkStage(Stage):
    """填写店铺域名并生成安装链接."""

    name = "generate_link"
    title = "生成安装链接"

    async def execute(self, ctx: StageContext, state: RunState) -> dict[str, Any]:
        dctx = ctx.for_page(state.distribution_page) if state.distribution_page is not None else ctx
        store_domain = state.request.store_domain

        domain_input = await dctx.resolver.require("domain_input")
        await domain_input.scroll_into_view_if_needed()
        await domain_input.click(force=True)
        await domain_input.fill("")
        await domain_input.type(store_domain, delay=25)
        await verify_readback(domain_input, store_domain, "store_domain", url=dctx.page.url)
        logger.info(f"已填写店铺域名: {store_domain}")

        generate_button = await dctx.resolver.require("generate_link_button")
        await generate_button.click(force=True)
        logger.info("已点击: Generate link")
        await dctx.settle()

        confirm = await dctx.click_optional("generate_link_confirm_button")
        if confirm is OptionalStep.FAILED:
            raise AmbiguousUiStateError("生成链接确认弹窗存在但无法确认", url=dctx.page.url)
        if confirm is OptionalStep.HANDLED:
            logger.info("已点击: Generate link (弹窗确认)")
            await dctx.settle()

        await dctx.navigator.wait_for_load_state("networkidle", required=False, timeout_ms=15_000)
        await dctx.capture("distribution-after-generate")

        link, source = await self._scrape_link(dctx)
        state.activation_link = link
        logger.info(f"SCRAPED distribution_link 长度: {len(link)}")
        if not link:
            logger.warning("未抓取到安装链接")
            state.warnings.append("distribution_link not found after generating")

        await dctx.capture("distribution-final")
        return {"link_found": bool(link), "link_source": source, "modal_confirmed": confirm is OptionalStep.HANDLED}

    async def _scrape_link(self, ctx: StageContext) -> tuple[str, str]:
        field = await ctx.resolver.resolve("install_link_field")
        if field is not None:
            try:
                value = (await field.input_value()).strip()
            except PlaywrightError as exc:
                logger.debug(f"Install link 文本框读取失败: {exc}")
                value = ""
            if value:
                return value, "install_link_field"

        for candidate in await ctx.resolver.all("any_input").all():
            try:
                value = (await candidate.input_value()).strip()
            except PlaywrightError:
                continue
            if looks_like_activation_link(value):
                return value, "input_scan"
        return "", "none"
