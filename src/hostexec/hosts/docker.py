"""Executor for commands inside a running container."""

import logging
import shlex

from hostexec.config.schema import DockerConfig, ExecutorConfig
from hostexec.errors import TransportError
from hostexec.execution.executor import Executor
from hostexec.execution.job import Job
from hostexec.execution.models import JobOptions
from hostexec.execution.protocol import ProcessBackend, TransferCapable
from hostexec.hosts.commands import join_command, join_opts, shell_path, tar_pack, tar_unpack

logger = logging.getLogger(__name__)


class DockerExecutor(Executor, TransferCapable):
    """Run commands in, and copy files to and from, a container.

    The host is the container name or id; ``conn_opts`` are extra
    ``docker exec`` flags such as ``"-u root -w /work"``.
    """

    def __init__(
        self,
        container: str,
        conn_opts: str | None = None,
        backend: ProcessBackend | None = None,
        config: ExecutorConfig | None = None,
        docker_config: DockerConfig | None = None,
    ) -> None:
        if not container:
            raise TransportError("Container name must not be empty")
        super().__init__(container, conn_opts, backend, config)
        self.docker_config = docker_config or DockerConfig()

    def _exec(self, command: str, additional_conn_opts: str = "", interactive: bool = False) -> str:
        return join_command(
            self.docker_config.docker_binary,
            "exec",
            "-i" if interactive else "",
            join_opts(self.conn_opts, additional_conn_opts),
            shlex.quote(self.host),
            "sh -c",
            shlex.quote(command),
        )

    def _cp_target(self, container_path: str) -> str:
        # docker cp resolves paths itself, without a shell to expand ~
        if container_path.startswith("~"):
            raise TransportError(
                f"docker cp cannot expand {container_path!r}; use an absolute path or enable compression"
            )
        return shlex.quote(f"{self.host}:{container_path}")

    def run_command(self, command: str, job_opts: JobOptions | None = None) -> Job:
        job_opts = job_opts or JobOptions()
        return self._run_executor_job(self._exec(command, job_opts.additional_conn_opts), job_opts)

    def upload(
        self,
        local_src_path: str,
        remote_dest_path: str,
        job_opts: JobOptions | None = None,
    ) -> Job:
        job_opts = job_opts or JobOptions()
        if job_opts.compression.enabled:
            command = "{} | {}".format(
                tar_pack(local_src_path, job_opts.compression.extra_args),
                self._exec(
                    tar_unpack(remote_dest_path, local_src_path),
                    job_opts.additional_conn_opts,
                    interactive=True,
                ),
            )
        else:
            command = join_command(
                self.docker_config.docker_binary,
                "cp",
                shell_path(local_src_path),
                self._cp_target(remote_dest_path),
            )
        logger.info("Uploading %s to %s:%s", local_src_path, self.host, remote_dest_path)
        return self._run_executor_job(command, job_opts)

    def download(
        self,
        remote_src_path: str,
        local_dest_path: str,
        job_opts: JobOptions | None = None,
    ) -> Job:
        job_opts = job_opts or JobOptions()
        if job_opts.compression.enabled:
            command = "{} | {{ {}; }}".format(
                self._exec(
                    tar_pack(remote_src_path, job_opts.compression.extra_args),
                    job_opts.additional_conn_opts,
                ),
                tar_unpack(local_dest_path, remote_src_path),
            )
        else:
            command = join_command(
                self.docker_config.docker_binary,
                "cp",
                self._cp_target(remote_src_path),
                shell_path(local_dest_path),
            )
        logger.info("Downloading %s:%s to %s", self.host, remote_src_path, local_dest_path)
        return self._run_executor_job(command, job_opts)
