"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ExecutorConfig(BaseModel):
    """Job control settings shared by all transports."""

    # What to do when a job is started while the previous one still runs
    overlap_policy: Literal["track_latest", "cancel", "reject"] = "track_latest"
    merge_stderr: bool = False
    read_chunk_size: int = Field(default=4096, gt=0)
    kill_timeout: float = Field(default=2.0, ge=0)  # seconds between SIGTERM and SIGKILL


class SSHConfig(BaseModel):
    """SSH transport configuration."""

    ssh_binary: str = "ssh"
    scp_binary: str = "scp"
    conn_opts: str = ""  # prepended to every connection, e.g. "-p 2222 -i ~/.ssh/id_ed25519"


class DockerConfig(BaseModel):
    """Container transport configuration."""

    docker_binary: str = "docker"
    conn_opts: str = ""  # extra `docker exec` flags, e.g. "-u root -w /work"


class CompressionConfig(BaseModel):
    """Default compression for upload and download."""

    enabled: bool = False
    extra_args: list[str] = Field(default_factory=list)


class GlobalConfig(BaseModel):
    """Global hostexec configuration."""

    default_transport: Literal["local", "ssh", "docker"] = "local"
    color: bool = True
    verbose: bool = False


class HostexecConfig(BaseModel):
    """Root configuration model for hostexec."""

    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)

    @classmethod
    def default(cls) -> "HostexecConfig":
        """Create default configuration."""
        return cls()


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_dir = Path.home() / ".config" / "hostexec"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_file() -> Path:
    """Get the main configuration file path."""
    return get_config_dir() / "config.toml"
