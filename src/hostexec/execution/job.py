"""Awaitable handle tying a started process to the caller waiting on it."""
import asyncio
from typing import TYPE_CHECKING, Generator

from hostexec.execution.models import JobState
from hostexec.execution.protocol import ProcessHandle

if TYPE_CHECKING:
    from hostexec.execution.executor import Executor


class Job:
    """Pending result of a command started on an executor.

    Awaiting a Job suspends the calling task until the process has exited and
    every output chunk has been delivered, then evaluates to the executor that
    ran it, so calls can be chained:

        executor = await executor.run_command("uname -a")
        print(executor.job_stdout())

    A caller that does not await the Job gets fire-and-poll behaviour: the
    process keeps running and its outcome is visible through
    ``Executor.last_job_status()`` and ``Executor.job_stdout()``.
    """

    def __init__(
        self,
        executor: "Executor",
        state: JobState,
        future: "asyncio.Future[Executor]",
    ) -> None:
        self.executor = executor
        self.state = state
        self._future = future

    @property
    def id(self) -> int | None:
        return self.state.job_id

    @property
    def handle(self) -> ProcessHandle | None:
        return self.state.handle

    @property
    def exit_code(self) -> int | None:
        """Exit code once the completion sink has fired"""
        return self.state.exit_code

    def done(self) -> bool:
        """True once the job has completed or failed to start"""
        return self._future.done()

    def stdout(self) -> list[str]:
        """Output of this job split into lines, even after a newer job started"""
        return self.state.lines()

    def __await__(self) -> Generator[object, None, "Executor"]:
        # Shielded so a cancelled waiter does not cancel the job for other waiters.
        return asyncio.shield(self._future).__await__()

    async def wait(self, timeout: float | None = None) -> "Executor":
        """Wait for completion.

        Args:
            timeout: Seconds to wait; None waits forever.

        Raises:
            asyncio.TimeoutError: The job was still running at the deadline.
                The process itself is left running.
        """
        return await asyncio.wait_for(asyncio.shield(self._future), timeout=timeout)

    def cancel(self) -> bool:
        """Request termination of this job's process.

        Best effort: the Job still resolves through the normal completion path
        once the process actually exits.

        Returns:
            True if a live process was signaled.
        """
        if self.handle is None:
            return False
        return self.executor.backend.terminate(self.handle)

    def __repr__(self) -> str:
        status = "done" if self.done() else "running"
        return f"<Job id={self.id!r} host={self.executor.host!r} {status}>"
