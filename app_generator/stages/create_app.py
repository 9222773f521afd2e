"""
@PURPOSE: 阶段 1 - 在开发者控制台创建应用并解析应用 ID
@OUTLINE:
  - class CreateAppStage: 打开应用列表 → Create app → 填写名称(回读) → 提交 → 等待详情页 → 解析 ID
@GOTCHAS:
  - 找不到 Create app 按钮时直接打开 /apps/new
  - 提交按钮只要求 attached, 控制台在表单底部渲染, 可能不在视口内
@DEPENDENCIES:
  - 内部: .base, .readback, ..errors, ..models
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger

from ..errors import AmbiguousUiStateError
from ..models import ResourceRecord
from .base import RunState, Stage, StageContext, extract_app_id
from .readback import verify_readback

APPS_NEW_RE = re.compile(r"/apps/new\b")
APP_DETAIL_RE = re.compile(r"/apps/\d+")


class CreateAppStage(Stage):
    """创建应用."""

    name = "create_app"
    title = "创建应用"

    async def execute(self, ctx: StageContext, state: RunState) -> dict[str, Any]:
        await ctx.open(ctx.urls.dashboard_url)

        create_button = await ctx.resolver.resolve("create_app_button")
        if create_button is not None:
            await create_button.click(force=True)
            logger.info("已点击: Create app")
            await ctx.navigator.wait_for_url(APPS_NEW_RE, description="/apps/new")
        else:
            logger.warning("未找到 Create app 按钮, 直接打开新建页面")
            await ctx.open(ctx.urls.apps_new())

        name_input = await ctx.resolver.require("app_name_input")
        await name_input.click(force=True)
        await name_input.fill("")
        await name_input.type(state.display_name, delay=20)
        await verify_readback(name_input, state.display_name, "app_name", url=ctx.page.url)

        submit = await ctx.resolver.require("create_submit_button")
        await submit.scroll_into_view_if_needed()
        await submit.click(force=True)
        logger.info("已点击: 提交 Create")

        detail_url = await ctx.navigator.wait_for_url(APP_DETAIL_RE, description="/apps/<id>")
        app_id = extract_app_id(detail_url)
        if not app_id:
            await ctx.capture("create-app-no-appid")
            raise AmbiguousUiStateError(f"应用已提交但无法从 URL 解析应用 ID: {detail_url}", url=detail_url)

        state.record = ResourceRecord(
            resource_id=app_id,
            console_group_id=ctx.urls.group_id,
            display_name=state.display_name,
        )
        logger.success(f"应用已创建: {state.display_name} (id={app_id})")
        return {"app_id": app_id, "url": detail_url}
