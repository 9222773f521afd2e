"""
@PURPOSE: 运行诊断: 按阶段/步骤名保存截图(可选 HTML), 失败时只记录日志
@OUTLINE:
  - async def capture_debug_artifacts(): 保存截图与 HTML
  - class DiagnosticsRecorder: 受配置开关控制的诊断记录器
    - capture(): 保存一个步骤的截图, 永不抛出
@GOTCHAS:
  - 诊断失败不能影响工作流结果, capture 吞掉除取消以外的所有异常
  - 文件名带运行 ID 前缀, 并发运行互不覆盖
@DEPENDENCIES:
  - 外部: playwright, loguru
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from loguru import logger
from playwright.async_api import Page


async def capture_debug_artifacts(
    page: Page,
    *,
    step: str,
    output_dir: Path,
    save_html: bool = False,
    prefix: str = "",
) -> dict[str, str]:
    """保存当前页面的截图(及 HTML), 便于调试回溯.

    Args:
        page: Playwright 页面对象
        step: 当前步骤名称, 用于生成文件名
        output_dir: 输出目录
        save_html: 是否同时保存 HTML
        prefix: 文件名前缀(通常为运行 ID)

    Returns:
        包含截图(与 HTML)路径的字典
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_step = step.replace(" ", "_").replace("/", "-")
    stem = f"{prefix}_{timestamp}_{safe_step}" if prefix else f"{timestamp}_{safe_step}"
    output_dir.mkdir(parents=True, exist_ok=True)

    screenshot_path = output_dir / f"{stem}.png"
    await page.screenshot(path=str(screenshot_path), full_page=True)
    artifacts = {"screenshot": str(screenshot_path)}

    if save_html:
        html_path = output_dir / f"{stem}.html"
        html_path.write_text(await page.content(), encoding="utf-8")
        artifacts["html"] = str(html_path)

    logger.debug("调试资源已保存 | {}", artifacts)
    return artifacts


class DiagnosticsRecorder:
    """诊断记录器.

    Attributes:
        enabled: 是否启用截图
        output_dir: 输出目录
        save_html: 是否同时保存 HTML
        run_id: 运行 ID, 作为文件名前缀
        captured: 已保存的步骤 → 资源路径
    """

    def __init__(
        self,
        *,
        enabled: bool,
        output_dir: str | Path,
        save_html: bool = False,
        run_id: str = "",
    ):
        self.enabled = enabled
        self.output_dir = Path(output_dir)
        self.save_html = save_html
        self.run_id = run_id
        self.captured: dict[str, dict[str, str]] = {}

    async def capture(self, page: Page | None, step: str) -> dict[str, str] | None:
        """保存一个步骤的诊断截图, 关闭或失败时返回 None."""
        if not self.enabled or page is None:
            return None
        try:
            artifacts = await capture_debug_artifacts(
                page,
                step=step,
                output_dir=self.output_dir,
                save_html=self.save_html,
                prefix=self.run_id[:8],
            )
        except Exception as exc:
            logger.warning(f"诊断截图失败 [{step}]: {exc}")
            return None
        self.captured[step] = artifacts
        return artifacts
