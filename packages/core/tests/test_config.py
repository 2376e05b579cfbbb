"""Tests for configuration loading."""

from pathlib import Path

import pytest

from stet_core.config import DEFAULT_CONFIG, global_config_path, load_config, parse_duration, state_dir_for
from stet_core.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated_global_config(tmp_path, monkeypatch):
    """Point the global config lookup at an empty temp dir."""
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    return xdg / "stet" / "config.yml"


def _repo_config(repo: Path, text: str) -> None:
    (repo / ".review").mkdir(parents=True, exist_ok=True)
    (repo / ".review" / "config.yml").write_text(text)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(repo_root=str(tmp_path), env={})
    assert config["provider"] == "ollama"
    assert config["model"] == DEFAULT_CONFIG["model"]
    assert config["timeout"] == 300.0
    assert config["strictness"] == "default"
    assert config["exclude"] == []
    assert config["repo_root"] == str(tmp_path)


def test_exclude_default_not_shared(tmp_path):
    config = load_config(repo_root=str(tmp_path), env={})
    config["exclude"].append("x/")
    assert DEFAULT_CONFIG["exclude"] == []


def test_global_config_path_uses_xdg(isolated_global_config):
    assert global_config_path() == isolated_global_config


def test_repo_file_overrides_global_file(tmp_path, isolated_global_config):
    isolated_global_config.parent.mkdir(parents=True)
    isolated_global_config.write_text("model: global-model\ntemperature: 0.5\n")
    _repo_config(tmp_path, "model: repo-model\n")
    config = load_config(repo_root=str(tmp_path), env={})
    assert config["model"] == "repo-model"
    assert config["temperature"] == 0.5


def test_explicit_config_path_replaces_repo_file(tmp_path):
    _repo_config(tmp_path, "model: repo-model\n")
    custom = tmp_path / "custom.yml"
    custom.write_text("model: custom-model\nexclude:\n  - migrations/\n  - '*.lock'\n")
    config = load_config(repo_root=str(tmp_path), config_path=str(custom), env={})
    assert config["model"] == "custom-model"
    assert config["exclude"] == ["migrations/", "*.lock"]


def test_env_overrides_files(tmp_path):
    _repo_config(tmp_path, "model: repo-model\ncontext_limit: 4096\n")
    env = {
        "STET_MODEL": "env-model",
        "STET_CONTEXT_LIMIT": "8192",
        "STET_WARN_THRESHOLD": "0.75",
        "STET_TIMEOUT": "5m",
        "STET_NITPICKY": "true",
        "STET_OLLAMA_BASE_URL": "http://gpu-box:11434",
    }
    config = load_config(repo_root=str(tmp_path), env=env)
    assert config["model"] == "env-model"
    assert config["context_limit"] == 8192
    assert config["warn_threshold"] == 0.75
    assert config["timeout"] == 300.0
    assert config["nitpicky"] is True
    assert config["base_url"] == "http://gpu-box:11434"


def test_empty_env_values_ignored(tmp_path):
    config = load_config(repo_root=str(tmp_path), env={"STET_MODEL": ""})
    assert config["model"] == DEFAULT_CONFIG["model"]


def test_cli_overrides_env(tmp_path):
    config = load_config(repo_root=str(tmp_path), cli_overrides={"model": "cli-model"}, env={"STET_MODEL": "env"})
    assert config["model"] == "cli-model"


def test_none_cli_overrides_ignored(tmp_path):
    config = load_config(repo_root=str(tmp_path), cli_overrides={"model": None}, env={"STET_MODEL": "env"})
    assert config["model"] == "env"


@pytest.mark.parametrize(
    "var,value",
    [("STET_CONTEXT_LIMIT", "lots"), ("STET_WARN_THRESHOLD", "high"), ("STET_NITPICKY", "maybe")],
)
def test_invalid_env_value_raises(tmp_path, var, value):
    with pytest.raises(ConfigError) as exc_info:
        load_config(repo_root=str(tmp_path), env={var: value})
    assert var in str(exc_info.value)


def test_invalid_yaml_raises(tmp_path):
    _repo_config(tmp_path, "model: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(repo_root=str(tmp_path), env={})


def test_non_mapping_yaml_raises(tmp_path):
    _repo_config(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(repo_root=str(tmp_path), env={})


@pytest.mark.parametrize(
    "value,seconds",
    [(90, 90.0), (1.5, 1.5), ("90", 90.0), ("90s", 90.0), ("5m", 300.0), ("1h", 3600.0), ("250ms", 0.25)],
)
def test_parse_duration(value, seconds):
    assert parse_duration(value) == seconds


@pytest.mark.parametrize("value", ["soon", "-5s", "5d", True])
def test_parse_duration_invalid(value):
    with pytest.raises(ConfigError):
        parse_duration(value)


class TestStateDir:
    def test_defaults_to_review_dir(self, tmp_path):
        assert state_dir_for({"repo_root": str(tmp_path)}) == tmp_path / ".review"

    def test_configured_path_wins(self, tmp_path):
        assert state_dir_for({"repo_root": str(tmp_path), "state_dir": str(tmp_path / "s")}) == tmp_path / "s"

    def test_requires_repo_root(self):
        with pytest.raises(ConfigError):
            state_dir_for({"state_dir": None, "repo_root": None})
