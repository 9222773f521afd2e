"""
@PURPOSE: 阶段 3 - 在应用设置页抓取 Client ID / Client secret
@OUTLINE:
  - class ScrapeCredentialsStage:
    - execute(): 打开设置页 → 读取 Client ID → 点击 Reveal(若有) → 读取 Client secret
    - _scrape(): 按候选顺序读取, 第一个非空值胜出
@GOTCHAS:
  - 抓取是尽力而为, 未找到时返回空字符串并写入 warnings, 不中止运行
  - 只记录凭证长度
@DEPENDENCIES:
  - 外部: playwright, loguru
  - 内部: .base, .readback, ..models
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from ..models import Credentials, clean_text
from .base import OptionalStep, RunState, Stage, StageContext
from .readback import read_field_value


class ScrapeCredentialsStage(Stage):
    """抓取应用凭证."""

    name = "scrape_credentials"
    title = "抓取凭证"

    async def execute(self, ctx: StageContext, state: RunState) -> dict[str, Any]:
        record = state.require_record()

        await ctx.open(ctx.urls.app_settings(record.resource_id))
        await ctx.settle()
        await ctx.capture("app-settings")

        client_id = await self._scrape(ctx, "client_id_field")

        reveal = await ctx.click_optional("reveal_secret_button")
        if reveal is OptionalStep.HANDLED:
            await ctx.settle(500)
        elif reveal is OptionalStep.FAILED:
            logger.warning("Reveal 按钮点击失败, 直接读取 Client secret")

        client_secret = await self._scrape(ctx, "client_secret_field")

        state.credentials = Credentials.cleaned(client_id, client_secret)
        logger.info(f"SCRAPED client_id 长度: {len(state.credentials.client_id)}")
        logger.info(f"SCRAPED client_secret 长度: {len(state.credentials.client_secret)}")

        if not state.credentials.client_id:
            state.warnings.append("client_id not found on settings page")
        if not state.credentials.client_secret:
            state.warnings.append("client_secret not found on settings page")

        return {
            "client_id_length": len(state.credentials.client_id),
            "client_secret_length": len(state.credentials.client_secret),
            "revealed": reveal is OptionalStep.HANDLED,
        }

    async def _scrape(self, ctx: StageContext, target: str) -> str:
        async for candidate in ctx.resolver.candidates(target):
            try:
                value = clean_text(await read_field_value(candidate))
            except PlaywrightError as exc:
                logger.debug(f"[{target}] 候选读取失败: {exc}")
                continue
            if value:
                return value
        return ""
