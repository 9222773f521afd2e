"""
@PURPOSE: 定义 HTTP 层的请求/响应模型
@OUTLINE:
  - AppGeneratorPayload: 应用生成请求体
  - AppGeneratorResponse: 成功响应体
  - ErrorResponse: 错误响应体
  - HealthStatus: 健康检查响应
@GOTCHAS:
  - 校验失败由 api.py 统一转换为 400 {"error": ...}, 不使用 FastAPI 默认的 422
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app_generator.models import MANAGED_STORE_SUFFIX, WorkflowRequest, WorkflowResult


class AppGeneratorPayload(BaseModel):
    """应用生成请求体."""

    brand_name: str = Field(description="品牌名称, 应用名称为 '<brand> x <suffix>'")
    store_domain: str = Field(description="商家店铺域名, 必须以 myshopify.com 结尾")

    @field_validator("brand_name")
    @classmethod
    def brand_name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("brand_name is required")
        return v.strip()

    @field_validator("store_domain")
    @classmethod
    def store_domain_managed(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("store_domain is required")
        if not v.lower().endswith(MANAGED_STORE_SUFFIX):
            raise ValueError(f"store_domain must end in {MANAGED_STORE_SUFFIX}")
        return v

    def to_request(self) -> WorkflowRequest:
        return WorkflowRequest(brand_name=self.brand_name, store_domain=self.store_domain)


class AppGeneratorResponse(BaseModel):
    """应用生成成功响应."""

    ok: bool = True
    app_name: str
    client_id: str
    client_secret: str
    distribution_link: str
    store_domain: str
    note: str
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: WorkflowResult) -> AppGeneratorResponse:
        return cls(**result.model_dump())


class ErrorResponse(BaseModel):
    """错误响应, 子类异常的诊断字段(target/tried/field 等)平铺在同一层."""

    model_config = ConfigDict(extra="allow")

    error: str = Field(description="可读的错误信息")
    kind: str | None = Field(default=None, description="错误类型")
    stage: str | None = Field(default=None, description="出错阶段")
    url: str | None = Field(default=None, description="出错时页面 URL")


class HealthStatus(BaseModel):
    """健康检查响应."""

    ok: bool = True
    version: str | None = None
    environment: str | None = None
