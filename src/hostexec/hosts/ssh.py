"""Executor for hosts reached over ssh."""

import logging
import re
import shlex

from hostexec.config.schema import ExecutorConfig, SSHConfig
from hostexec.errors import TransportError
from hostexec.execution.executor import Executor
from hostexec.execution.job import Job
from hostexec.execution.models import JobOptions
from hostexec.execution.protocol import ProcessBackend, TransferCapable
from hostexec.hosts.commands import join_command, join_opts, shell_path, tar_pack, tar_unpack

logger = logging.getLogger(__name__)

_SSH_PORT_FLAG = re.compile(r"(^|\s)-p(?=\s*\d)")


def scp_opts(conn_opts: str) -> str:
    """Translate ssh connection options for scp.

    scp takes the port as -P where ssh uses -p; everything else is shared.
    """
    return _SSH_PORT_FLAG.sub(r"\1-P", conn_opts)


class SSHExecutor(Executor, TransferCapable):
    """Run commands on, and copy files to and from, a host over ssh.

    ``conn_opts`` are raw ssh options (e.g. ``"-p 2222 -i ~/.ssh/key"``) used
    for every connection; ``JobOptions.additional_conn_opts`` are appended for
    a single call.
    """

    def __init__(
        self,
        host: str,
        conn_opts: str | None = None,
        backend: ProcessBackend | None = None,
        config: ExecutorConfig | None = None,
        ssh_config: SSHConfig | None = None,
    ) -> None:
        if not host:
            raise TransportError("SSH host must not be empty")
        super().__init__(host, conn_opts, backend, config)
        self.ssh_config = ssh_config or SSHConfig()

    def _ssh(self, additional_conn_opts: str = "") -> str:
        return join_command(
            self.ssh_config.ssh_binary,
            join_opts(self.conn_opts, additional_conn_opts),
            shlex.quote(self.host),
        )

    def run_command(self, command: str, job_opts: JobOptions | None = None) -> Job:
        job_opts = job_opts or JobOptions()
        ssh_command = f"{self._ssh(job_opts.additional_conn_opts)} {shlex.quote(command)}"
        return self._run_executor_job(ssh_command, job_opts)

    def upload(
        self,
        local_src_path: str,
        remote_dest_path: str,
        job_opts: JobOptions | None = None,
    ) -> Job:
        job_opts = job_opts or JobOptions()
        if job_opts.compression.enabled:
            command = "{} | {} {}".format(
                tar_pack(local_src_path, job_opts.compression.extra_args),
                self._ssh(job_opts.additional_conn_opts),
                shlex.quote(tar_unpack(remote_dest_path, local_src_path)),
            )
        else:
            command = join_command(
                self._scp(job_opts.additional_conn_opts),
                shell_path(local_src_path),
                shlex.quote(f"{self.host}:{remote_dest_path}"),
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
            command = "{} {} | {{ {}; }}".format(
                self._ssh(job_opts.additional_conn_opts),
                shlex.quote(tar_pack(remote_src_path, job_opts.compression.extra_args)),
                tar_unpack(local_dest_path, remote_src_path),
            )
        else:
            command = join_command(
                self._scp(job_opts.additional_conn_opts),
                shlex.quote(f"{self.host}:{remote_src_path}"),
                shell_path(local_dest_path),
            )
        logger.info("Downloading %s:%s to %s", self.host, remote_src_path, local_dest_path)
        return self._run_executor_job(command, job_opts)

    def _scp(self, additional_conn_opts: str = "") -> str:
        return join_command(
            self.ssh_config.scp_binary,
            "-r",
            scp_opts(join_opts(self.conn_opts, additional_conn_opts)),
        )
