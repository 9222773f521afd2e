"""
@PURPOSE: Shopify 自定义应用生成器 - 驱动开发者控制台与 Partners 控制台, 为商家店铺创建应用并生成安装链接
@OUTLINE:
  - AppGeneratorWorkflow: 工作流编排器
  - WorkflowRequest / WorkflowResult: 请求与结果
  - AppGeneratorError: 异常基类
@DEPENDENCIES:
  - 内部: .workflows, .models, .errors
"""

from .errors import AppGeneratorError
from .models import WorkflowRequest, WorkflowResult
from .workflows import AppGeneratorWorkflow

__version__ = "0.1.0"

__all__ = [
    "AppGeneratorError",
    "AppGeneratorWorkflow",
    "WorkflowRequest",
    "WorkflowResult",
    "__version__",
]
