"""
@PURPOSE: 定义单次工作流运行中流转的领域数据结构
@OUTLINE:
  - MANAGED_STORE_SUFFIX: 商家店铺域名后缀
  - dataclass WorkflowRequest: 工作流请求(品牌名 + 店铺域名)
  - def validate_request(): 防御性校验请求
  - def build_display_name(): 由品牌名推导应用名称
  - dataclass ResourceRecord: 创建后的应用记录
  - dataclass VersionConfig: 版本表单配置
  - dataclass Credentials: 抓取到的 Client ID / Secret
  - def clean_text(): 空白归一化
@GOTCHAS:
  - 所有实体仅存在于单次运行内, 创建后不可变
  - Credentials 中空字符串表示"未找到", 不是错误
@DEPENDENCIES:
  - 内部: ..errors
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import ValidationError

MANAGED_STORE_SUFFIX = "myshopify.com"

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(value: str | None) -> str:
    """合并连续空白并去除首尾空白."""
    return _WHITESPACE_RE.sub(" ", value or "").strip()


@dataclass(frozen=True, slots=True)
class WorkflowRequest:
    """工作流请求.

    Attributes:
        brand_name: 品牌名称, 用于生成应用名称
        store_domain: 商家店铺域名, 必须以 myshopify.com 结尾

    Examples:
        >>> WorkflowRequest(brand_name="Acme", store_domain="acme.myshopify.com")
        WorkflowRequest(brand_name='Acme', store_domain='acme.myshopify.com')
    """

    brand_name: str
    store_domain: str


def validate_request(request: WorkflowRequest) -> WorkflowRequest:
    """校验请求, 不合法时抛出 ValidationError.

    HTTP 层已经做过一次校验, 编排器在启动浏览器之前再校验一次.

    Args:
        request: 待校验的请求

    Returns:
        原请求对象

    Raises:
        ValidationError: brand_name 为空或 store_domain 不是托管店铺域名
    """
    brand_name = request.brand_name
    store_domain = request.store_domain

    if not isinstance(brand_name, str) or not brand_name.strip():
        raise ValidationError("brand_name is required")
    if not isinstance(store_domain, str) or not store_domain.strip():
        raise ValidationError("store_domain is required")
    if not store_domain.strip().lower().endswith(MANAGED_STORE_SUFFIX):
        raise ValidationError(f"store_domain must end in {MANAGED_STORE_SUFFIX}")
    return request


def build_display_name(brand_name: str, suffix: str) -> str:
    """生成应用显示名称.

    Examples:
        >>> build_display_name("Acme", "Retention")
        'Acme x Retention'
    """
    return f"{brand_name.strip()} x {suffix}"


@dataclass(frozen=True, slots=True)
class ResourceRecord:
    """创建成功后从详情页 URL 中解析出的应用记录."""

    resource_id: str
    console_group_id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class VersionConfig:
    """版本表单中需要原样写入的配置."""

    callback_url: str
    redirect_url: str
    scopes_csv: str


@dataclass(frozen=True, slots=True)
class Credentials:
    """应用凭证, 空字符串表示未抓取到."""

    client_id: str = ""
    client_secret: str = ""

    @classmethod
    def cleaned(cls, client_id: str | None, client_secret: str | None) -> Credentials:
        return cls(client_id=clean_text(client_id), client_secret=clean_text(client_secret))
