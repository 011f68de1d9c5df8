"""
Tests for layered run configuration.
"""

import pytest

from stagehand.config import RunConfig, load_config
from stagehand.engine.errors import ParseError


class TestLoadConfig:
    """Test file and environment layers."""

    def test_defaults_without_file(self, tmp_path):
        config = load_config(tmp_path / "missing.yml", environ={})
        assert config.forks == 5
        assert config.task_timeout == 300
        assert config.connect_timeout == 30
        assert not config.check_mode

    def test_file_defaults(self, tmp_path):
        path = tmp_path / "stagehand.yml"
        path.write_text("defaults:\n  forks: 10\n  task_timeout: 60\n  check_mode: yes\n")

        config = load_config(path, environ={})

        assert config.forks == 10
        assert config.task_timeout == 60.0
        assert config.check_mode is True

    def test_environment_wins_over_file(self, tmp_path):
        path = tmp_path / "stagehand.yml"
        path.write_text("defaults:\n  forks: 10\n")

        config = load_config(path, environ={"STAGEHAND_FORKS": "3", "STAGEHAND_CONNECT_TIMEOUT": "5"})

        assert config.forks == 3
        assert config.connect_timeout == 5.0

    def test_unknown_setting(self, tmp_path):
        path = tmp_path / "stagehand.yml"
        path.write_text("defaults:\n  strategy: linear\n")
        with pytest.raises(ParseError, match="unknown setting"):
            load_config(path, environ={})

    def test_bad_value(self, tmp_path):
        with pytest.raises(ParseError):
            load_config(tmp_path / "missing.yml", environ={"STAGEHAND_FORKS": "many"})

    def test_zero_forks(self, tmp_path):
        path = tmp_path / "stagehand.yml"
        path.write_text("defaults:\n  forks: 0\n")
        with pytest.raises(ParseError, match="forks"):
            load_config(path, environ={})

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "stagehand.yml"
        path.write_text("- forks\n")
        with pytest.raises(ParseError):
            load_config(path, environ={})


class TestApplyOverrides:
    """Command-line flags win over everything."""

    def test_none_is_ignored(self):
        config = RunConfig(forks=8).apply_overrides(forks=None, check_mode=True)
        assert config.forks == 8
        assert config.check_mode

    def test_unknown_override(self):
        with pytest.raises(TypeError):
            RunConfig().apply_overrides(colour=True)

    def test_negative_timeout(self):
        with pytest.raises(ParseError, match="timeouts"):
            RunConfig().apply_overrides(task_timeout=-1)
