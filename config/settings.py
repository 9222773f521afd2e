"""
@PURPOSE: 应用配置管理, 使用 Pydantic Settings 管理配置, 支持多环境 YAML 覆盖
@OUTLINE:
  - class DebugConfig: 调试/截图配置
  - class LoggingConfig: 日志配置
  - class BrowserConfig: 浏览器配置
  - class WorkflowConfig: 工作流超时与节奏配置
  - class Settings: 应用配置主类(不可变)
  - def load_environment_config(): 加载环境 YAML 配置
  - def create_settings(): 创建配置实例
  - def get_settings(): 获取缓存的配置实例(仅供入口使用)
@GOTCHAS:
  - 敏感信息(账号密码)应存储在 .env 文件中, 不要提交到 git
  - 配置优先级: 环境变量 > .env > YAML > 默认值
  - 核心模块不读取环境变量, 只接收入口传入的 Settings
@DEPENDENCIES:
  - 外部: pydantic, pydantic_settings, pyyaml
@RELATED: __init__.py, environments/*.yaml, console_selectors.json
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from app_generator.errors import ConfigurationError
from app_generator.models import VersionConfig

BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = Path(__file__).resolve().parent

_DASHBOARD_ID_RE = re.compile(r"/dashboard/(\d+)\b")

_SENSITIVE_FIELDS = ("shopify_password",)


# ========== 子配置类 ==========


class DebugConfig(BaseModel):
    """调试配置.

    Attributes:
        screenshots: 是否在阶段节点截图
        save_html: 截图时是否同时保存 HTML
        screenshot_dir: 截图目录
    """

    model_config = ConfigDict(frozen=True)

    screenshots: bool = Field(default=False, description="阶段截图开关")
    save_html: bool = Field(default=False, description="截图时保存HTML")
    screenshot_dir: str = Field(default="storage/screenshots", description="截图目录")


class LoggingConfig(BaseModel):
    """日志配置.

    Attributes:
        level: 日志级别
        format: 日志格式(detailed/json/simple)
        output: 输出目标列表
        file_path: 文件路径
        rotation: 轮转大小
        retention: 保留时间
    """

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="日志级别")
    format: Literal["detailed", "json", "simple"] = Field(
        default="detailed", description="日志格式"
    )
    output: list[str] = Field(default=["console"], description="输出目标")
    file_path: str = Field(default="storage/logs/app-generator.log", description="文件路径")
    rotation: str = Field(default="10 MB", description="轮转大小")
    retention: str = Field(default="7 days", description="保留时间")


class BrowserConfig(BaseModel):
    """浏览器配置.

    Attributes:
        headless: 无头模式
        slow_mo: 慢速模式(毫秒)
        launch_args: 启动参数
        action_timeout_ms: 元素等待默认超时(毫秒)
        navigation_timeout_ms: 页面跳转超时(毫秒)
        viewport: 视口大小
    """

    model_config = ConfigDict(frozen=True)

    headless: bool = Field(default=True, description="无头模式")
    slow_mo: int = Field(default=0, ge=0, description="慢速模式(毫秒)")
    launch_args: list[str] = Field(
        default=["--no-sandbox", "--disable-dev-shm-usage"],
        description="Chromium 启动参数",
    )
    action_timeout_ms: int = Field(default=30_000, ge=100, description="元素等待超时(毫秒)")
    navigation_timeout_ms: int = Field(default=60_000, ge=100, description="页面跳转超时(毫秒)")
    viewport: dict[str, int] = Field(
        default={"width": 1440, "height": 900},
        description="视口大小",
    )


class WorkflowConfig(BaseModel):
    """工作流配置.

    Attributes:
        run_timeout_seconds: 单次运行整体截止时间
        default_stage_timeout: 阶段默认硬超时(秒)
        stage_timeouts: 各阶段硬超时(秒)
        settle_ms: 控制台动画后的稳定等待(毫秒)
    """

    model_config = ConfigDict(frozen=True)

    run_timeout_seconds: float = Field(default=600.0, gt=0, description="整体截止时间(秒)")
    default_stage_timeout: float = Field(default=180.0, gt=0, description="阶段默认超时(秒)")
    stage_timeouts: dict[str, float] = Field(
        default={
            "create_app": 180.0,
            "configure_version": 240.0,
            "scrape_credentials": 90.0,
            "select_distribution": 120.0,
            "generate_link": 120.0,
        },
        description="各阶段超时(秒)",
    )
    settle_ms: int = Field(default=800, ge=0, description="动画稳定等待(毫秒)")


# ========== 主配置类 ==========


class Settings(BaseSettings):
    """应用配置主类.

    从环境变量、.env 文件和 YAML 配置文件加载配置, 创建后不可变.
    优先级: 环境变量 > .env > YAML > 默认值

    Examples:
        >>> settings = create_settings("development")
        >>> settings.shopify_partners_id
        '2767396'
        >>> settings.debug.screenshots
        True
    """

    environment: str = Field(default="development", description="运行环境")

    # Shopify 控制台
    shopify_dev_dashboard_url: str = Field(default="", description="开发者控制台应用列表 URL")
    shopify_partners_id: str = Field(default="2767396", description="Partners 组织 ID")
    dev_console_base_url: str = Field(default="https://dev.shopify.com", description="开发者控制台域名")
    partners_base_url: str = Field(default="https://partners.shopify.com", description="Partners 域名")

    # 版本配置
    app_url: str = Field(default="", description="应用 URL")
    redirect_url: str = Field(default="", description="回调 URL")
    scopes_csv: str = Field(default="", description="权限范围(逗号分隔)")
    app_name_suffix: str = Field(default="Retention", description="应用名称后缀")
    embed_app: bool = Field(default=False, description="是否嵌入 Shopify Admin")

    # 会话与阻断处理
    storage_state_path: str = Field(
        default="storage/shopify-storage.json", description="会话存储文件"
    )
    reauth_mode: Literal["fail_fast", "interactive"] = Field(
        default="fail_fast", description="重新登录处理模式"
    )
    reauth_max_wait_seconds: float = Field(default=600.0, gt=0, description="人工验证最长等待(秒)")
    reauth_poll_interval_seconds: float = Field(default=2.0, gt=0, description="人工验证轮询间隔(秒)")
    account_chooser_max_attempts: int = Field(default=5, ge=1, description="账号选择页最多绕过次数")
    account_hint: str = Field(default="", description="账号选择页优先点击的账号(正则)")

    # 会话采集(仅 session capture 使用)
    shopify_email: str = Field(default="", description="Shopify 登录邮箱")
    shopify_password: str = Field(default="", description="Shopify 登录密码")

    # 服务
    max_concurrent_runs: int = Field(default=2, ge=1, description="HTTP 并发运行上限")
    selector_catalog_path: str = Field(
        default="config/console_selectors.json", description="选择器目录文件"
    )

    # 子配置
    debug: DebugConfig = Field(default_factory=DebugConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        env_nested_delimiter="__",  # 支持 BROWSER__HEADLESS=false
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # 初始化参数承载 YAML 覆盖, 优先级低于环境变量
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """验证环境名称."""
        valid_envs = ["development", "test", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"环境必须是: {valid_envs}")
        return v

    @field_validator("reauth_mode", mode="before")
    @classmethod
    def normalize_reauth_mode(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v

    @property
    def console_group_id(self) -> str | None:
        """从控制台 URL 中解析 dashboard 编号."""
        match = _DASHBOARD_ID_RE.search(self.shopify_dev_dashboard_url or "")
        return match.group(1) if match else None

    @property
    def version_config(self) -> VersionConfig:
        return VersionConfig(
            callback_url=self.app_url,
            redirect_url=self.redirect_url,
            scopes_csv=self.scopes_csv,
        )

    @property
    def interactive_reauth(self) -> bool:
        return self.reauth_mode == "interactive"

    def require_workflow_config(self) -> None:
        """检查运行工作流所需的全部配置.

        Raises:
            ConfigurationError: 列出所有缺失项
        """
        missing: list[str] = []
        if not self.shopify_dev_dashboard_url:
            missing.append("SHOPIFY_DEV_DASHBOARD_URL")
        elif self.console_group_id is None:
            missing.append("SHOPIFY_DEV_DASHBOARD_URL (无法解析 /dashboard/<id>)")
        for env_name, value in (
            ("APP_URL", self.app_url),
            ("REDIRECT_URL", self.redirect_url),
            ("SCOPES_CSV", self.scopes_csv),
        ):
            if not value:
                missing.append(env_name)
        if missing:
            raise ConfigurationError(f"缺少必需配置: {', '.join(missing)}", missing=missing)

    def get_absolute_path(self, relative_path: str | Path) -> Path:
        """将相对路径转换为基于项目根目录的绝对路径."""
        path = Path(relative_path)
        if path.is_absolute():
            return path
        return BASE_DIR / path

    def ensure_directories(self) -> list[Path]:
        """确保当前配置会用到的运行时目录存在, 返回这些目录."""
        directories = [self.get_absolute_path(self.storage_state_path).parent]
        if self.debug.screenshots:
            directories.append(self.get_absolute_path(self.debug.screenshot_dir))
        if "file" in self.logging.output:
            directories.append(self.get_absolute_path(self.logging.file_path).parent)
        for dir_path in directories:
            dir_path.mkdir(parents=True, exist_ok=True)
        return directories

    def to_dict(self) -> dict[str, Any]:
        """转换为字典(隐藏敏感信息)."""
        data = self.model_dump()
        for key in _SENSITIVE_FIELDS:
            if data.get(key):
                data[key] = "***"
        return data


# ========== 配置加载 ==========


def load_environment_config(env: str = "development") -> dict[str, Any]:
    """从 YAML 文件加载环境配置, 支持别名引用."""

    config_dir = CONFIG_DIR / "environments"
    target_file = config_dir / f"{env}.yaml"

    def _load(file_path: Path, seen: set[Path]) -> dict[str, Any]:
        if file_path in seen:
            raise ValueError(f"检测到环境配置的循环引用: {file_path}")
        seen.add(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"环境配置文件不存在: {file_path}")

        with file_path.open("r", encoding="utf-8") as handle:
            content = yaml.safe_load(handle)

        if content is None:
            return {}

        if isinstance(content, str):
            alias = content.strip()
            if not alias:
                raise ValueError(f"环境配置别名不能为空: {file_path}")

            if alias.endswith((".yaml", ".yml")):
                alias_file = file_path.parent / alias
            else:
                alias_file = file_path.parent / f"{alias}.yaml"

            return _load(alias_file, seen)

        if not isinstance(content, dict):
            raise TypeError(
                f"环境配置 {file_path} 必须是字典或别名字符串, 当前类型: {type(content).__name__}",
            )

        return content

    return _load(target_file, set())


def create_settings(env: str | None = None, **overrides: Any) -> Settings:
    """创建配置实例.

    Args:
        env: 环境名称, 为 None 时读取 ENVIRONMENT 环境变量
        **overrides: 额外覆盖项(与 YAML 同级, 仍低于环境变量)

    Returns:
        不可变的配置实例
    """
    if env is None:
        env = os.getenv("ENVIRONMENT", "development")

    yaml_config = load_environment_config(env)
    yaml_config.update(overrides)
    yaml_config["environment"] = env

    return Settings(**yaml_config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """返回缓存的配置实例, 仅由 CLI/HTTP 入口调用."""
    return create_settings()
