"""
@PURPOSE: 定义工作流对外结果与阶段执行记录
@OUTLINE:
  - class StageStatus: 阶段状态(pending/running/verified/failed)
  - dataclass StageOutcome: 单个阶段的执行记录
  - class WorkflowResult: 工作流成功结果(唯一对外产物)
@DEPENDENCIES:
  - 外部: pydantic
@RELATED: app_generator/workflows/app_generator_workflow.py
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NOTE = (
    "Created app + configured version + released + scraped Client ID/secret "
    "+ generated distribution link."
)


class StageStatus(str, Enum):
    """阶段状态机: PENDING → RUNNING → VERIFIED | FAILED."""

    PENDING = "pending"
    RUNNING = "running"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass(slots=True)
class StageOutcome:
    """阶段执行记录."""

    name: str
    status: StageStatus = StageStatus.PENDING
    message: str = ""
    elapsed_seconds: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "details": dict(self.details),
        }


class WorkflowResult(BaseModel):
    """工作流成功结果.

    Attributes:
        app_name: 应用显示名称
        client_id: Client ID(未抓取到时为空字符串)
        client_secret: Client secret(未抓取到时为空字符串)
        distribution_link: 自定义分发安装链接(未抓取到时为空字符串)
        store_domain: 原始店铺域名
        note: 结果说明
        warnings: 软失败提示(如链接为空)
    """

    model_config = ConfigDict(frozen=True)

    app_name: str = Field(..., description="应用名称")
    client_id: str = Field(default="", description="Client ID")
    client_secret: str = Field(default="", description="Client secret")
    distribution_link: str = Field(default="", description="安装链接")
    store_domain: str = Field(..., description="店铺域名")
    note: str = Field(default=DEFAULT_NOTE, description="结果说明")
    warnings: list[str] = Field(default_factory=list, description="软失败提示")

    @property
    def link_found(self) -> bool:
        return bool(self.distribution_link)
