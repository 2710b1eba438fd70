"""Executor for the machine hostexec itself runs on."""

import logging

from hostexec.config.schema import ExecutorConfig
from hostexec.execution.executor import Executor
from hostexec.execution.job import Job
from hostexec.execution.models import JobOptions
from hostexec.execution.protocol import ProcessBackend, TransferCapable
from hostexec.hosts.commands import shell_path, tar_pack, tar_unpack

logger = logging.getLogger(__name__)


class LocalExecutor(Executor, TransferCapable):
    """Run commands and copy files on the local machine."""

    def __init__(
        self,
        conn_opts: str | None = None,
        backend: ProcessBackend | None = None,
        config: ExecutorConfig | None = None,
    ) -> None:
        super().__init__("localhost", conn_opts, backend, config)

    def upload(
        self,
        local_src_path: str,
        remote_dest_path: str,
        job_opts: JobOptions | None = None,
    ) -> Job:
        return self._copy(local_src_path, remote_dest_path, job_opts)

    def download(
        self,
        remote_src_path: str,
        local_dest_path: str,
        job_opts: JobOptions | None = None,
    ) -> Job:
        return self._copy(remote_src_path, local_dest_path, job_opts)

    def _copy(self, src: str, dest: str, job_opts: JobOptions | None) -> Job:
        job_opts = job_opts or JobOptions()
        if job_opts.compression.enabled:
            command = f"{tar_pack(src, job_opts.compression.extra_args)} | {{ {tar_unpack(dest, src)}; }}"
        else:
            command = f"cp -r {shell_path(src)} {shell_path(dest)}"
        logger.info("Copying %s to %s", src, dest)
        return self._run_executor_job(command, job_opts)
