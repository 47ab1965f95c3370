"""Tests for the settings-store CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from settings_store.cli import app
from settings_store.config import CONFIG_DIR_ENV, DEFAULT_KEY_ENV, database_path

runner = CliRunner()


@pytest.fixture
def store_env(config_dir: Path, key: str, monkeypatch) -> Path:
    monkeypatch.setenv(CONFIG_DIR_ENV, str(config_dir))
    monkeypatch.setenv(DEFAULT_KEY_ENV, key)
    return config_dir


class TestCli:
    """Tests for CLI commands."""

    def test_path_before_first_run(self, store_env: Path):
        result = runner.invoke(app, ["path"])

        assert result.exit_code == 0
        assert "Exists: no" in result.stdout
        assert "Key: set" in result.stdout

    def test_show_empty_store(self, store_env: Path):
        result = runner.invoke(app, ["show"])

        assert result.exit_code == 0
        assert "No user settings stored yet." in result.stdout

    def test_set_theme_creates_then_updates(self, store_env: Path):
        first = runner.invoke(app, ["set-theme", "dark"])
        assert first.exit_code == 0
        assert "Created" in first.stdout
        assert "theme = dark" in first.stdout

        second = runner.invoke(app, ["set-theme", "light"])
        assert second.exit_code == 0
        assert "Updated" in second.stdout

        shown = runner.invoke(app, ["show", "--format", "json"])
        assert shown.exit_code == 0
        assert json.loads(shown.stdout) == {"theme": "light", "id": 1}

    def test_unknown_theme_is_rejected(self, store_env: Path):
        result = runner.invoke(app, ["set-theme", "purple"])

        assert result.exit_code != 0
        assert not database_path(store_env).exists()

    def test_remove(self, store_env: Path):
        runner.invoke(app, ["set-theme", "dark"])
        assert database_path(store_env).exists()

        result = runner.invoke(app, ["remove", "--yes"])

        assert result.exit_code == 0
        assert not database_path(store_env).exists()

    def test_remove_aborted(self, store_env: Path):
        runner.invoke(app, ["set-theme", "dark"])

        result = runner.invoke(app, ["remove"], input="n\n")

        assert result.exit_code == 0
        assert database_path(store_env).exists()

    def test_missing_key(self, config_dir: Path, monkeypatch):
        monkeypatch.setenv(CONFIG_DIR_ENV, str(config_dir))
        monkeypatch.delenv(DEFAULT_KEY_ENV, raising=False)

        result = runner.invoke(app, ["show"])

        assert result.exit_code == 1
        assert not database_path(config_dir).exists()

    def test_wrong_key(self, store_env: Path, monkeypatch):
        runner.invoke(app, ["set-theme", "dark"])
        monkeypatch.setenv(DEFAULT_KEY_ENV, "someOtherKey")

        result = runner.invoke(app, ["show"])

        assert result.exit_code == 1
