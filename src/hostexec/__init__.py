"""hostexec - single-job command executor for local, SSH and container hosts."""

from hostexec.execution import (
    CompressionOptions,
    Executor,
    Job,
    JobOptions,
    TransferCapable,
    supports_transfer,
)
from hostexec.hosts import DockerExecutor, LocalExecutor, SSHExecutor

__all__ = [
    "CompressionOptions",
    "DockerExecutor",
    "Executor",
    "Job",
    "JobOptions",
    "LocalExecutor",
    "SSHExecutor",
    "TransferCapable",
    "supports_transfer",
]
