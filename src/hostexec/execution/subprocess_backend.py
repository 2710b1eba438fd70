"""Process primitive built on asyncio subprocesses."""
import asyncio
import codecs
import errno
import itertools
import logging
import os
import signal
from dataclasses import dataclass

from hostexec.execution.protocol import (
    ErrorSink,
    ExitSink,
    OutputSink,
    ProcessBackend,
    ProcessHandle,
)

logger = logging.getLogger(__name__)

_job_ids = itertools.count(1)


@dataclass
class SubprocessHandle(ProcessHandle):
    """Handle for a command run through asyncio"""
    pty: bool = False
    process: asyncio.subprocess.Process | None = None
    task: asyncio.Task | None = None
    exit_code: int | None = None
    error: BaseException | None = None
    terminate_requested: bool = False


def exit_status(returncode: int) -> int:
    """Map a Popen-style return code to a shell-style exit status.

    Processes killed by a signal are reported as 128 + signal number.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


class SubprocessBackend(ProcessBackend):
    """Run shell commands as asyncio subprocesses in their own session.

    Output is read in chunks and decoded incrementally, so multi-byte
    characters split across reads are delivered intact.
    """

    def __init__(
        self,
        merge_stderr: bool = False,
        read_chunk_size: int = 4096,
        kill_timeout: float = 2.0,
    ) -> None:
        self.merge_stderr = merge_stderr
        self.read_chunk_size = read_chunk_size
        self.kill_timeout = kill_timeout

    def start(
        self,
        command: str,
        *,
        pty: bool = False,
        on_output: OutputSink,
        on_exit: ExitSink,
        on_error: ErrorSink | None = None,
    ) -> SubprocessHandle:
        loop = asyncio.get_running_loop()
        handle = SubprocessHandle(id=next(_job_ids), command=command, pty=pty)
        handle.task = loop.create_task(
            self._run(handle, on_output, on_exit, on_error),
            name=f"hostexec-job-{handle.id}",
        )
        handle.task.add_done_callback(_log_task_failure)
        return handle

    async def _run(
        self,
        handle: SubprocessHandle,
        on_output: OutputSink,
        on_exit: ExitSink,
        on_error: ErrorSink | None,
    ) -> None:
        transport: asyncio.BaseTransport | None = None
        try:
            if handle.pty:
                process, stdout, transport = await self._spawn_pty(handle.command)
            else:
                process, stdout = await self._spawn_pipe(handle.command)
        except Exception as e:
            handle.error = e
            if on_error is None:
                raise
            on_error(e)
            return

        handle.process = process
        logger.debug("Job %s spawned as pid %s", handle.id, process.pid)
        if handle.terminate_requested:
            self._request_stop(handle)

        readers = [self._pump(stdout, on_output)]
        if process.stderr is not None:
            readers.append(self._drain_stderr(handle, process.stderr))

        output_error: Exception | None = None
        try:
            await asyncio.gather(*readers)
        except Exception as e:
            # The output consumer is gone; don't leave the process blocked on a full pipe.
            logger.error("Reading output of job %s failed, killing it: %s", handle.id, e)
            output_error = e
            _signal_group(process, signal.SIGKILL)
        except BaseException:
            _signal_group(process, signal.SIGKILL)
            await self._reap(handle, process, transport)
            on_exit(handle.exit_code)
            raise

        await self._reap(handle, process, transport)
        if output_error is None:
            on_exit(handle.exit_code)
            return
        handle.error = output_error
        if on_error is None:
            raise output_error
        on_error(output_error)

    async def _reap(
        self,
        handle: SubprocessHandle,
        process: asyncio.subprocess.Process,
        transport: asyncio.BaseTransport | None,
    ) -> None:
        returncode = await process.wait()
        if transport is not None:
            transport.close()
        handle.exit_code = exit_status(returncode)
        logger.debug("Job %s finished with exit status %s", handle.id, handle.exit_code)

    async def _spawn_pipe(
        self, command: str
    ) -> tuple[asyncio.subprocess.Process, asyncio.StreamReader]:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if self.merge_stderr else asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        return process, process.stdout

    async def _spawn_pty(
        self, command: str
    ) -> tuple[asyncio.subprocess.Process, asyncio.StreamReader, asyncio.BaseTransport]:
        loop = asyncio.get_running_loop()
        master_fd, slave_fd = os.openpty()
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        reader = asyncio.StreamReader()
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader),
            os.fdopen(master_fd, "rb", buffering=0),
        )
        return process, reader, transport

    async def _pump(self, stream: asyncio.StreamReader, on_output: OutputSink) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = await stream.read(self.read_chunk_size)
            except OSError as e:
                # Reading a pty master after the last slave closed fails with EIO
                if e.errno != errno.EIO:
                    raise
                data = b""
            text = decoder.decode(data, final=not data)
            if text:
                on_output([text])
            if not data:
                break

    async def _drain_stderr(self, handle: SubprocessHandle, stream: asyncio.StreamReader) -> None:
        async for line in stream:
            logger.debug("Job %s stderr: %s", handle.id, line.decode("utf-8", errors="replace").rstrip())

    def probe_status(self, handle: ProcessHandle) -> int | None:
        handle = _own(handle)
        if handle.exit_code is not None:
            return handle.exit_code
        if handle.error is not None:
            raise handle.error
        if handle.process is None or handle.process.returncode is None:
            return None
        return exit_status(handle.process.returncode)

    async def wait(self, handle: ProcessHandle, timeout: float | None = None) -> int | None:
        handle = _own(handle)
        if handle.task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(handle.task), timeout=timeout)
            except asyncio.TimeoutError:
                return None
        return self.probe_status(handle)

    def terminate(self, handle: ProcessHandle) -> bool:
        handle = _own(handle)
        if handle.exit_code is not None or handle.error is not None:
            return False

        if handle.process is None:
            if handle.task is None or handle.task.done():
                return False
            # Still spawning; stop it as soon as it exists.
            handle.terminate_requested = True
            return True

        if handle.process.returncode is not None:
            return False
        self._request_stop(handle)
        return True

    def _request_stop(self, handle: SubprocessHandle) -> None:
        """SIGTERM the job's process group, escalating to SIGKILL"""
        process = handle.process
        logger.debug("Terminating job %s (pid %s)", handle.id, process.pid)
        _signal_group(process, signal.SIGTERM)
        asyncio.get_running_loop().call_later(self.kill_timeout, self._kill_if_alive, handle)

    def _kill_if_alive(self, handle: SubprocessHandle) -> None:
        if handle.exit_code is None and handle.process is not None:
            logger.debug("Job %s ignored SIGTERM, sending SIGKILL", handle.id)
            _signal_group(handle.process, signal.SIGKILL)


def _own(handle: ProcessHandle) -> SubprocessHandle:
    if not isinstance(handle, SubprocessHandle):
        raise TypeError(f"Not a subprocess job handle: {handle!r}")
    return handle


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("%s failed: %s", task.get_name(), exc, exc_info=exc)
