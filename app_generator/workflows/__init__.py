"""
@PURPOSE: 工作流模块, 导出应用生成工作流
@DEPENDENCIES:
  - 内部: .app_generator_workflow
"""

from .app_generator_workflow import AppGeneratorWorkflow, WorkflowExecution

__all__ = ["AppGeneratorWorkflow", "WorkflowExecution"]
