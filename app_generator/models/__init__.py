"""
@PURPOSE: 数据模型模块, 导出工作流请求/中间实体/结果
@OUTLINE:
  - WorkflowRequest, ResourceRecord, VersionConfig, Credentials: 领域实体
  - WorkflowResult, StageOutcome, StageStatus: 结果相关模型
@DEPENDENCIES:
  - 内部: .workflow, .result
"""

from .result import DEFAULT_NOTE, StageOutcome, StageStatus, WorkflowResult
from .workflow import (
    MANAGED_STORE_SUFFIX,
    Credentials,
    ResourceRecord,
    VersionConfig,
    WorkflowRequest,
    build_display_name,
    clean_text,
    validate_request,
)

__all__ = [
    "DEFAULT_NOTE",
    "MANAGED_STORE_SUFFIX",
    "Credentials",
    "ResourceRecord",
    "StageOutcome",
    "StageStatus",
    "VersionConfig",
    "WorkflowRequest",
    "WorkflowResult",
    "build_display_name",
    "clean_text",
    "validate_request",
]
