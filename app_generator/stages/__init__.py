"""
@PURPOSE: 阶段执行器, 按固定顺序组成应用生成工作流
@OUTLINE:
  - DEFAULT_STAGES: 默认阶段顺序
@DEPENDENCIES:
  - 内部: .base, .create_app, .configure_version, .scrape_credentials, .select_distribution, .generate_link
"""

from .base import ConsoleUrls, OptionalStep, RunState, Stage, StageContext, extract_app_id
from .configure_version import ConfigureVersionStage
from .create_app import CreateAppStage
from .generate_link import GenerateLinkStage, looks_like_activation_link
from .scrape_credentials import ScrapeCredentialsStage
from .select_distribution import SelectDistributionStage


def default_stages() -> list[Stage]:
    """默认阶段顺序."""
    return [
        CreateAppStage(),
        ConfigureVersionStage(),
        ScrapeCredentialsStage(),
        SelectDistributionStage(),
        GenerateLinkStage(),
    ]


__all__ = [
    "ConfigureVersionStage",
    "ConsoleUrls",
    "CreateAppStage",
    "GenerateLinkStage",
    "OptionalStep",
    "RunState",
    "ScrapeCredentialsStage",
    "SelectDistributionStage",
    "Stage",
    "StageContext",
    "default_stages",
    "extract_app_id",
    "looks_like_activation_link",
]
