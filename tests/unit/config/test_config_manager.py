"""Tests for ConfigManager loading and merging."""
import pytest
import toml

from hostexec.config import manager
from hostexec.config.manager import ConfigManager, deep_merge, find_project_config
from hostexec.errors import ConfigError


@pytest.fixture
def no_project_config(monkeypatch):
    monkeypatch.setattr(ConfigManager, "_find_project_config", classmethod(lambda cls: None))


def test_defaults_without_files(no_project_config):
    config = ConfigManager.get_config()

    assert config.executor.overlap_policy == "track_latest"
    assert ConfigManager.sources == []
    assert ConfigManager.get_config() is config


def test_project_config_overrides_user_config(tmp_path, monkeypatch):
    user_file = tmp_path / "user.toml"
    user_file.write_text(toml.dumps({
        "ssh": {"ssh_binary": "/opt/ssh", "conn_opts": "-p 2222"},
        "executor": {"merge_stderr": True},
    }))
    project_dir = tmp_path / "project" / "sub"
    project_dir.mkdir(parents=True)
    project_file = tmp_path / "project" / ".hostexec.toml"
    project_file.write_text(toml.dumps({
        "ssh": {"conn_opts": "-p 2200"},
        "executor": {"overlap_policy": "reject"},
    }))

    monkeypatch.setattr(manager, "get_config_file", lambda: user_file)
    monkeypatch.chdir(project_dir)

    config = ConfigManager.load_config()

    assert config.ssh.ssh_binary == "/opt/ssh"
    assert config.ssh.conn_opts == "-p 2200"
    assert config.executor.merge_stderr is True
    assert config.executor.overlap_policy == "reject"
    assert ConfigManager.sources == [user_file, project_file]


def test_env_var_selects_user_file(tmp_path, monkeypatch, no_project_config):
    custom = tmp_path / "custom.toml"
    custom.write_text(toml.dumps({"global": {"default_transport": "ssh"}}))
    monkeypatch.setenv("HOSTEXEC_CONFIG", str(custom))

    assert ConfigManager.load_config().global_.default_transport == "ssh"


def test_malformed_toml_is_config_error(tmp_path, monkeypatch, no_project_config):
    broken = tmp_path / "broken.toml"
    broken.write_text("[executor\nmerge_stderr = ")
    monkeypatch.setenv("HOSTEXEC_CONFIG", str(broken))

    with pytest.raises(ConfigError) as exc_info:
        ConfigManager.load_config()
    assert exc_info.value.path == broken


def test_invalid_value_is_config_error(tmp_path, monkeypatch, no_project_config):
    bad = tmp_path / "bad.toml"
    bad.write_text(toml.dumps({"executor": {"overlap_policy": "queue"}}))
    monkeypatch.setenv("HOSTEXEC_CONFIG", str(bad))

    with pytest.raises(ConfigError, match="overlap_policy"):
        ConfigManager.load_config()


def test_find_project_config_walks_up(tmp_path):
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    (tmp_path / "a" / ".hostexec.toml").write_text("")

    assert find_project_config(nested) == tmp_path / "a" / ".hostexec.toml"


def test_deep_merge():
    base = {"a": {"x": 1, "y": 2}, "b": 1}
    override = {"a": {"y": 3}, "c": 4}

    assert deep_merge(base, override) == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
    assert base == {"a": {"x": 1, "y": 2}, "b": 1}


def test_save_and_reload(tmp_path, monkeypatch, no_project_config):
    user_file = tmp_path / "nested" / "saved.toml"
    monkeypatch.setattr(manager, "get_config_file", lambda: user_file)

    config = ConfigManager.load_config()
    config.docker.docker_binary = "podman"

    assert ConfigManager.save_user_config(config) == user_file
    assert ConfigManager.reload().docker.docker_binary == "podman"


def test_invalid_value_blames_the_file_it_came_from(tmp_path, monkeypatch):
    user_file = tmp_path / "user.toml"
    user_file.write_text(toml.dumps({"executor": {"read_chunk_size": 0}}))
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    (project_dir / ".hostexec.toml").write_text(toml.dumps({"ssh": {"conn_opts": "-p 2200"}}))

    monkeypatch.setattr(manager, "get_config_file", lambda: user_file)
    monkeypatch.chdir(project_dir)

    with pytest.raises(ConfigError, match="read_chunk_size") as exc_info:
        ConfigManager.load_config()
    assert exc_info.value.path == user_file
