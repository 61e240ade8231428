from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from codebridge.cli.commands import app
from codebridge.config.schema import Config

runner = CliRunner()


@pytest.fixture
def mock_paths(tmp_path):
    """Mock config paths for test isolation."""
    config_file = tmp_path / "config.json"
    with patch("codebridge.config.loader.get_config_path") as mock_cp, \
         patch("codebridge.config.loader.save_config") as mock_sc, \
         patch("codebridge.config.loader.load_config") as mock_lc:
        mock_cp.return_value = config_file
        mock_sc.side_effect = lambda config, path=None: config_file.write_text("{}")
        mock_lc.return_value = Config()
        yield config_file


def test_onboard_fresh_install(mock_paths):
    result = runner.invoke(app, ["onboard"])

    assert result.exit_code == 0
    assert "Created config" in result.stdout
    assert "codebridge is ready" in result.stdout
    assert mock_paths.exists()


def test_onboard_existing_config_refresh(mock_paths):
    mock_paths.write_text('{"existing": true}')

    result = runner.invoke(app, ["onboard"], input="n\n")

    assert result.exit_code == 0
    assert "Config already exists" in result.stdout
    assert "existing values preserved" in result.stdout


def test_onboard_existing_config_overwrite(mock_paths):
    mock_paths.write_text('{"existing": true}')

    result = runner.invoke(app, ["onboard"], input="y\n")

    assert result.exit_code == 0
    assert "Config reset to defaults" in result.stdout


def test_projects_lists_directories(tmp_path, monkeypatch):
    (tmp_path / "alpha").mkdir()
    (tmp_path / "beta").mkdir()
    cfg = Config()
    cfg.projects.root = str(tmp_path)
    monkeypatch.setattr("codebridge.config.loader.load_config", lambda path=None: cfg)

    result = runner.invoke(app, ["projects"])

    assert result.exit_code == 0
    assert "alpha" in result.stdout
    assert "beta" in result.stdout


def test_status_shows_agent_settings(tmp_path, monkeypatch):
    cfg = Config()
    cfg.agent.model = "opus"
    fake_config_path = tmp_path / "config.json"
    fake_config_path.write_text("{}", encoding="utf-8")
    monkeypatch.setattr("codebridge.config.loader.get_config_path", lambda: fake_config_path)
    monkeypatch.setattr("codebridge.config.loader.load_config", lambda path=None: cfg)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Model: opus" in result.stdout
    assert "Telegram: " in result.stdout


def test_run_refuses_without_telegram(monkeypatch):
    monkeypatch.setattr("codebridge.config.loader.load_config", lambda path=None: Config())

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 1
    assert "Telegram is not configured" in result.stdout


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "codebridge v" in result.stdout
