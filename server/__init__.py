"""
@PURPOSE: HTTP 服务层, 对外暴露应用生成接口
@DEPENDENCIES:
  - 内部: .api, .models
"""

from .api import create_app

__all__ = ["create_app"]
