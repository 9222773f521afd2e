"""
@PURPOSE: 测试命令行入口(配置/会话/工作流命令的参数与退出码)
@OUTLINE:
  - test_version / test_config_*: 配置查看与检查
  - test_session_*: 会话状态与清除
  - test_workflow_run_*: 启动浏览器之前的失败路径
@DEPENDENCIES:
  - 外部: pytest, typer
  - 内部: cli.main
"""

import pytest
from typer.testing import CliRunner

from app_generator import __version__
from app_generator.browser.session_store import SessionStore
from cli.main import app
from tests.mocks import APP_URL, DASHBOARD_URL, REDIRECT_URL, SCOPES_CSV

runner = CliRunner()


@pytest.fixture
def workflow_env(monkeypatch, tmp_path):
    """完整的工作流环境变量, 会话文件位于临时目录."""
    monkeypatch.setenv("SHOPIFY_DEV_DASHBOARD_URL", DASHBOARD_URL)
    monkeypatch.setenv("APP_URL", APP_URL)
    monkeypatch.setenv("REDIRECT_URL", REDIRECT_URL)
    monkeypatch.setenv("SCOPES_CSV", SCOPES_CSV)
    monkeypatch.setenv("STORAGE_STATE_PATH", str(tmp_path / "state.json"))
    return tmp_path


def test_version():
    result = runner.invoke(app, ["version", "--env", "test"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_show_json():
    result = runner.invoke(app, ["config", "show", "--env", "test", "-f", "json"])
    assert result.exit_code == 0
    assert '"environment"' in result.output


def test_config_show_masks_password(monkeypatch):
    monkeypatch.setenv("SHOPIFY_PASSWORD", "hunter2")
    result = runner.invoke(app, ["config", "show", "--env", "test"])
    assert result.exit_code == 0
    assert "hunter2" not in result.output


def test_config_check_fails_without_required_values():
    result = runner.invoke(app, ["config", "check", "--env", "test"])
    assert result.exit_code == 1
    assert "APP_URL" in result.output


def test_config_check_passes(workflow_env):
    result = runner.invoke(app, ["config", "check", "--env", "test"])
    assert result.exit_code == 0
    assert "123" in result.output


def test_session_status_missing(workflow_env):
    result = runner.invoke(app, ["session", "status", "--env", "test"])
    assert result.exit_code == 1
    assert "session capture" in result.output


async def test_session_status_and_clear(workflow_env):
    store = SessionStore(workflow_env / "state.json")
    await store.save({"cookies": [{"name": "_session", "value": "x"}], "origins": []})

    status = runner.invoke(app, ["session", "status", "--env", "test"])
    assert status.exit_code == 0
    assert "cookies" in status.output

    cleared = runner.invoke(app, ["session", "clear", "--env", "test", "--yes"])
    assert cleared.exit_code == 0
    assert not store.exists()


def test_workflow_run_rejects_bad_domain(workflow_env):
    result = runner.invoke(
        app,
        ["workflow", "run", "-b", "Acme", "-s", "acme.example.com", "--env", "test"],
    )
    assert result.exit_code == 1
    assert "validation_error" in result.output
    assert "store_domain must end in myshopify.com" in result.output


def test_workflow_run_reports_missing_config(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_STATE_PATH", str(tmp_path / "state.json"))
    output = tmp_path / "run.json"
    result = runner.invoke(
        app,
        ["workflow", "run", "-b", "Acme", "-s", "acme.myshopify.com", "--env", "test", "-o", str(output)],
    )
    assert result.exit_code == 1
    assert "configuration_error" in result.output
    assert not output.exists()


def test_help_lists_command_groups():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for group in ("workflow", "session", "config"):
        assert group in result.output

