"""
@PURPOSE: 阶段 4 - 在 Partners 控制台选择自定义分发方式
@OUTLINE:
  - class SelectDistributionStage:
    - execute(): 新页面打开分发页 → 已选择则直接返回 → 直接按钮或卡片+Select → 可选确认 → 确认域名输入框出现
@GOTCHAS:
  - 幂等: 店铺域名输入框已可见说明已选择过自定义分发, 不再点击任何按钮
  - 分发页常被重定向到账号选择页, 由 StageContext.open 负责绕过
@DEPENDENCIES:
  - 外部: loguru
  - 内部: .base, ..errors
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from ..errors import AmbiguousUiStateError, ElementNotFoundError
from .base import OptionalStep, RunState, Stage, StageContext


class SelectDistributionStage(Stage):
    """选择自定义分发."""

    name = "select_distribution"
    title = "选择自定义分发"

    async def execute(self, ctx: StageContext, state: RunState) -> dict[str, Any]:
        record = state.require_record()

        page = await ctx.session.new_page()
        state.distribution_page = page
        dctx = ctx.for_page(page)

        distribution_url = ctx.urls.distribution(record.resource_id)
        state.distribution_url = distribution_url
        logger.info(f"分发页 URL: {distribution_url}")
        await dctx.open(distribution_url)
        await dctx.navigator.wait_for_load_state("networkidle", required=False, timeout_ms=15_000)
        await dctx.settle()
        await dctx.capture("distribution-before")

        if await dctx.resolver.present("domain_input") is not None:
            logger.info("店铺域名输入框已可见, 自定义分发已选择过")
            return {"already_selected": True, "path": "none"}

        direct = await dctx.click_optional("select_custom_distribution_button")
        if direct is OptionalStep.FAILED:
            raise AmbiguousUiStateError("Select custom distribution 按钮存在但无法点击", url=page.url)

        if direct is OptionalStep.HANDLED:
            path = "direct"
            logger.info("已点击: Select custom distribution (直接)")
            await dctx.settle()
        else:
            path = "card"
            card = await dctx.resolver.require("custom_distribution_card")
            await card.click(force=True)
            await dctx.settle()

            select_button = await dctx.resolver.require("select_button")
            await select_button.click(force=True)
            logger.info("已点击: Select (自定义分发卡片)")
            await dctx.settle()

            confirm = await dctx.click_optional("select_custom_distribution_button")
            if confirm is OptionalStep.FAILED:
                raise AmbiguousUiStateError("自定义分发确认按钮存在但无法点击", url=page.url)
            if confirm is OptionalStep.HANDLED:
                logger.info("已点击: 确认 Select custom distribution")
                await dctx.settle()

        if await dctx.resolver.resolve("domain_input") is None:
            await dctx.capture("distribution-no-domain-input")
            raise ElementNotFoundError(
                "domain_input",
                tried=len(dctx.resolver.catalog.locators("domain_input")),
                url=page.url,
            )

        await dctx.capture("distribution-after-select")
        return {"already_selected": False, "path": path}
