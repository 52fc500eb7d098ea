"""Tests for configuration loading (config.py)."""

from __future__ import annotations

from pathlib import Path

import pytest

from agent_tasklist.config import (
    TaskListSettings,
    load_settings,
    load_tasklist_config,
    resolve_base_dir,
    resolve_list_id,
)


class TestResolve:
    def test_explicit_base_dir_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENT_TASKLIST_DIR", "/elsewhere")
        assert resolve_base_dir(tmp_path) == tmp_path

    def test_env_base_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENT_TASKLIST_DIR", str(tmp_path))
        assert resolve_base_dir() == tmp_path

    def test_default_base_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AGENT_TASKLIST_DIR", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_base_dir() == tmp_path / ".claude" / "tasks"

    def test_list_id(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AGENT_TASKLIST_LIST_ID", raising=False)
        assert resolve_list_id() == "default"
        monkeypatch.setenv("AGENT_TASKLIST_LIST_ID", "shared")
        assert resolve_list_id() == "shared"
        assert resolve_list_id("mine") == "mine"


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_tasklist_config(tmp_path) == ({}, None)

    def test_valid_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("lock_timeout: 5\nclaim_max_attempts: 9\n", encoding="utf-8")
        config, err = load_tasklist_config(tmp_path)
        assert err is None
        assert config == {"lock_timeout": 5, "claim_max_attempts": 9}

    def test_malformed_yaml_reports_error(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("lock_timeout: [unclosed\n", encoding="utf-8")
        config, err = load_tasklist_config(tmp_path)
        assert config == {}
        assert err is not None and "YAMLError" in err

    def test_non_mapping_reports_error(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("- a\n- b\n", encoding="utf-8")
        config, err = load_tasklist_config(tmp_path)
        assert config == {}
        assert err is not None and "expected object" in err


class TestSettings:
    def test_defaults(self) -> None:
        settings = TaskListSettings()
        assert settings.lock_timeout is None
        assert settings.lock_poll_interval == 0.05
        assert settings.subscriber_buffer == 16
        assert settings.claim_max_attempts == 5
        assert settings.id_conflict_retries == 10

    def test_from_mapping_ignores_bad_values(self) -> None:
        settings = TaskListSettings.from_mapping(
            {"lock_timeout": "soon", "subscriber_buffer": -1, "claim_max_attempts": True, "lock_poll_interval": 0}
        )
        assert settings == TaskListSettings()

    def test_load_settings_falls_back_on_bad_file(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("lock_timeout: [unclosed\n", encoding="utf-8")
        assert load_settings(tmp_path) == TaskListSettings()

    def test_load_settings_reads_file(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text("id_conflict_retries: 3\n", encoding="utf-8")
        assert load_settings(tmp_path).id_conflict_retries == 3

    def test_load_settings_without_dir(self) -> None:
        assert load_settings(None) == TaskListSettings()
