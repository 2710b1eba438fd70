"""Transport specializations of the executor."""

from hostexec.hosts.docker import DockerExecutor
from hostexec.hosts.local import LocalExecutor
from hostexec.hosts.ssh import SSHExecutor

__all__ = ["DockerExecutor", "LocalExecutor", "SSHExecutor"]
