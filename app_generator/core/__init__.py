"""
@PURPOSE: 核心运行控制: 取消令牌与阶段超时
@DEPENDENCIES:
  - 内部: .cancellation, .workflow_timeout
"""

from .cancellation import CancellationToken
from .workflow_timeout import TimeoutConfig, get_timeout_config, with_stage_timeout

__all__ = ["CancellationToken", "TimeoutConfig", "get_timeout_config", "with_stage_timeout"]
