"""Interfaces between the executor, the process primitive and transports."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from hostexec.execution.job import Job
    from hostexec.execution.models import JobOptions


OutputSink = Callable[[list[str]], None]
ExitSink = Callable[[int], None]
ErrorSink = Callable[[BaseException], None]


@dataclass
class ProcessHandle:
    """Opaque reference to a process started by a backend"""
    id: int
    command: str


class ProcessBackend(ABC):
    """OS-facing process primitive consumed by the executor"""

    @abstractmethod
    def start(
        self,
        command: str,
        *,
        pty: bool = False,
        on_output: OutputSink,
        on_exit: ExitSink,
        on_error: ErrorSink | None = None,
    ) -> ProcessHandle:
        """Start a command and return its handle without waiting.

        Args:
            command: Shell command line to run.
            pty: Run the command on a pseudo-terminal.
            on_output: Called with a list of raw output chunks as they arrive.
            on_exit: Called exactly once with the exit code, after all output.
            on_error: Called instead of on_exit if the process could not start,
                or if reading its output failed (including on_output raising).
                In the latter case the process is killed first.

        Returns:
            Handle identifying the started job.
        """
        ...

    @abstractmethod
    def probe_status(self, handle: ProcessHandle) -> int | None:
        """Return the exit code if the process has exited, else None"""
        ...

    @abstractmethod
    async def wait(self, handle: ProcessHandle, timeout: float | None = None) -> int | None:
        """Wait up to timeout seconds for the exit code; None if still running"""
        ...

    @abstractmethod
    def terminate(self, handle: ProcessHandle) -> bool:
        """Ask the process to stop.

        Returns:
            True if a live job was signaled, False if it had already exited.
        """
        ...


class TransferCapable(ABC):
    """Executors that can move files to and from their host.

    Implemented only by transports that provide real transfer logic.
    """

    @abstractmethod
    def upload(
        self,
        local_src_path: str,
        remote_dest_path: str,
        job_opts: "JobOptions | None" = None,
    ) -> "Job":
        """Copy a local file or directory into remote_dest_path on the host"""
        raise NotImplementedError(f"{self.__class__.__name__} does not support upload")

    @abstractmethod
    def download(
        self,
        remote_src_path: str,
        local_dest_path: str,
        job_opts: "JobOptions | None" = None,
    ) -> "Job":
        """Copy a file or directory from the host into local_dest_path"""
        raise NotImplementedError(f"{self.__class__.__name__} does not support download")


def supports_transfer(executor: object) -> bool:
    """Check whether an executor can upload and download"""
    return isinstance(executor, TransferCapable)
