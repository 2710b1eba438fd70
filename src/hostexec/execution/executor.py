"""Single-job executor: runs one command at a time on a host and tracks it."""
import asyncio
import logging

from hostexec.config.schema import ExecutorConfig
from hostexec.errors import JobInFlightError, NoJobStartedError
from hostexec.execution.job import Job
from hostexec.execution.models import JobOptions, JobState
from hostexec.execution.protocol import ProcessBackend
from hostexec.execution.subprocess_backend import SubprocessBackend

logger = logging.getLogger(__name__)


class Executor:
    """Owns the current job for one host/connection pair.

    Every call that runs something starts a new job lifecycle
    (reset, run, complete) that replaces the previous job's state.
    Transports subclass this to wrap commands for their host; those that can
    also move files implement ``TransferCapable``.
    """

    def __init__(
        self,
        host: str,
        conn_opts: str | None = None,
        backend: ProcessBackend | None = None,
        config: ExecutorConfig | None = None,
    ) -> None:
        self._host = host
        self._conn_opts = conn_opts or ""
        self.config = config or ExecutorConfig()
        self.backend = backend or SubprocessBackend(
            merge_stderr=self.config.merge_stderr,
            read_chunk_size=self.config.read_chunk_size,
            kill_timeout=self.config.kill_timeout,
        )
        self._state = JobState()
        self._job: Job | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def conn_opts(self) -> str:
        return self._conn_opts

    @property
    def current_job(self) -> Job | None:
        """The in-flight or most recently started job"""
        return self._job

    def run_command(self, command: str, job_opts: JobOptions | None = None) -> Job:
        """Run a command on the host.

        Returns immediately with a Job; await it to wait for completion.
        """
        return self._run_executor_job(command, job_opts)

    def _reset(self) -> None:
        """Drop all bookkeeping of the previous job"""
        self._state = JobState()
        self._job = None

    def _run_executor_job(self, command: str, job_opts: JobOptions | None = None) -> Job:
        """Start command as the executor's new current job.

        Must be called with a running event loop.
        """
        job_opts = job_opts or JobOptions()
        loop = asyncio.get_running_loop()

        self._handle_overlap()
        self._reset()

        # Sinks close over this job's own state so a superseded job cannot
        # touch the bookkeeping of the job that replaced it.
        state = self._state
        future: asyncio.Future[Executor] = loop.create_future()

        def on_output(chunks: list[str]) -> None:
            self._process_stdout(state, chunks, job_opts)

        def on_exit(exit_code: int) -> None:
            self._process_job_completion(state, exit_code)
            try:
                if job_opts.on_exit is not None:
                    job_opts.on_exit(exit_code)
            finally:
                if not future.done():
                    future.set_result(self)

        def on_error(exc: BaseException) -> None:
            state.error = exc
            logger.error("Job %s on %s failed: %s", state.job_id, self._host, exc)
            if not future.done():
                future.set_exception(exc)
                # Unawaited jobs surface the error through last_job_status()
                future.exception()

        state.handle = self.backend.start(
            command,
            pty=False,
            on_output=on_output,
            on_exit=on_exit,
            on_error=on_error,
        )
        self._job = Job(self, state, future)
        logger.debug("Started job %s on %s: %s", state.job_id, self._host, command)
        return self._job

    def _handle_overlap(self) -> None:
        """Apply the configured policy when a job is still in flight"""
        current = self._job
        if current is None or current.done():
            return

        policy = self.config.overlap_policy
        if policy == "reject":
            raise JobInFlightError(self._host, current.id)
        if policy == "cancel":
            logger.info("Cancelling job %s on %s before starting a new one", current.id, self._host)
            current.cancel()
        else:
            logger.warning(
                "Job %s on %s is still running; starting a new job stops tracking it",
                current.id,
                self._host,
            )

    def _process_stdout(self, state: JobState, output_chunks: list[str], job_opts: JobOptions) -> None:
        """Normalize and record output chunks"""
        for chunk in output_chunks:
            cleaned_chunk = chunk.replace("\r", "\n")
            state.output.append(cleaned_chunk)
            if job_opts.on_output is not None:
                job_opts.on_output(cleaned_chunk)

    def _process_job_completion(self, state: JobState, exit_code: int) -> None:
        state.exit_code = exit_code
        logger.debug("Job %s on %s exited with %s", state.job_id, self._host, exit_code)

    def last_job_id(self) -> int | None:
        """ID of the current or most recent job"""
        return self._state.job_id

    def last_job_status(self) -> int | None:
        """Exit code of the last job, or None while it is still running.

        Raises:
            NoJobStartedError: No job has been started on this executor.
        """
        state = self._state
        if state.handle is None:
            raise NoJobStartedError("No jobs running")
        if state.exit_code is not None:
            return state.exit_code
        if state.error is not None:
            raise state.error
        return self.backend.probe_status(state.handle)

    def cancel_running_job(self) -> bool:
        """Request termination of the current job.

        Returns:
            True for a live job that was signaled, False if it already exited.

        Raises:
            NoJobStartedError: No job has been started on this executor.
        """
        if self._state.handle is None:
            raise NoJobStartedError("No running job to be cancelled")
        logger.info("Cancelling job %s on %s", self._state.job_id, self._host)
        return self.backend.terminate(self._state.handle)

    def job_stdout(self) -> list[str]:
        """Output of the current job split into lines"""
        return self._state.lines()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} host={self._host!r} job={self.last_job_id()!r}>"
