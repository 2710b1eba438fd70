"""Tests for Executor job control"""
import asyncio
import gc
import logging

import pytest

from hostexec.config.schema import ExecutorConfig
from hostexec.errors import JobInFlightError, NoJobStartedError
from hostexec.execution.executor import Executor
from hostexec.execution.job import Job
from hostexec.execution.models import JobOptions


@pytest.fixture
def executor(fake_backend):
    return Executor("devbox", "-p 2222", backend=fake_backend)


def test_initial_state(executor):
    assert executor.host == "devbox"
    assert executor.conn_opts == "-p 2222"
    assert executor.last_job_id() is None
    assert executor.current_job is None
    assert executor.job_stdout() == [""]


def test_conn_opts_default_to_empty(fake_backend):
    assert Executor("devbox", backend=fake_backend).conn_opts == ""


def test_status_before_any_job_fails(executor):
    with pytest.raises(NoJobStartedError):
        executor.last_job_status()


def test_cancel_before_any_job_fails(executor):
    with pytest.raises(AssertionError):
        executor.cancel_running_job()


def test_run_command_needs_event_loop(executor, fake_backend):
    with pytest.raises(RuntimeError):
        executor.run_command("uname -a")

    assert fake_backend.started == []
    assert executor.last_job_id() is None


@pytest.mark.asyncio
async def test_run_command_returns_pending_job(executor, fake_backend):
    job = executor.run_command("uname -a")

    assert isinstance(job, Job)
    assert not job.done()
    assert executor.current_job is job
    assert executor.last_job_id() == job.id == 1
    assert executor.last_job_status() is None
    assert fake_backend.commands == ["uname -a"]
    assert fake_backend.started[0].pty is False


@pytest.mark.asyncio
async def test_awaiting_job_resumes_with_executor(executor, fake_backend):
    job = executor.run_command("true")
    asyncio.get_running_loop().call_soon(fake_backend.started[0].finish, 0)

    result = await job

    assert result is executor
    assert job.done()
    assert job.exit_code == 0
    assert executor.last_job_status() == 0


@pytest.mark.asyncio
async def test_fire_and_poll(executor, fake_backend):
    executor.run_command("make")
    handle = fake_backend.started[0]

    assert executor.last_job_status() is None
    handle.emit("building\n")
    assert executor.job_stdout() == ["building"]

    handle.finish(2)
    assert executor.last_job_status() == 2


@pytest.mark.asyncio
async def test_output_is_normalized_and_forwarded(executor, fake_backend):
    seen = []
    job = executor.run_command("progress", JobOptions(on_output=seen.append))
    handle = fake_backend.started[0]

    handle.emit("a\r", "b\n")
    handle.finish(0)
    await job

    assert seen == ["a\n", "b\n"]
    assert executor.job_stdout() == ["a", "b"]


@pytest.mark.asyncio
async def test_empty_output_is_single_empty_line(executor, fake_backend):
    job = executor.run_command("true")
    fake_backend.started[0].emit()
    fake_backend.started[0].finish(0)
    await job

    assert executor.job_stdout() == [""]


@pytest.mark.asyncio
async def test_exit_callback_runs_before_waiter_resumes(executor, fake_backend):
    events = []
    job = executor.run_command("true", JobOptions(on_exit=lambda code: events.append(("exit", code))))

    async def waiter():
        await job
        events.append(("resumed", executor.last_job_status()))

    task = asyncio.create_task(waiter())
    await asyncio.sleep(0)
    assert events == []

    fake_backend.started[0].finish(7)
    await task

    assert events == [("exit", 7), ("resumed", 7)]


@pytest.mark.asyncio
async def test_nonzero_exit_is_not_an_error(executor, fake_backend):
    job = executor.run_command("false")
    fake_backend.started[0].finish(1)

    assert await job is executor
    assert executor.last_job_status() == 1


@pytest.mark.asyncio
async def test_status_tracks_latest_job(executor, fake_backend):
    for code, command in enumerate(["first", "second", "third"], start=3):
        job = executor.run_command(command)
        handle = fake_backend.started[-1]
        handle.emit(f"{command}\n")
        handle.finish(code)
        await job

        assert executor.last_job_status() == code
        assert executor.job_stdout() == [command]
        assert executor.last_job_id() == handle.id


@pytest.mark.asyncio
async def test_new_job_discards_previous_state(executor, fake_backend):
    job = executor.run_command("first")
    fake_backend.started[0].emit("old output\n")
    fake_backend.started[0].finish(1)
    await job

    executor.run_command("second")

    assert executor.last_job_status() is None
    assert executor.job_stdout() == [""]
    assert executor.last_job_id() == 2


@pytest.mark.asyncio
async def test_overlapping_job_only_latest_is_tracked(executor, fake_backend, caplog):
    job_a = executor.run_command("sleep 10")
    with caplog.at_level(logging.WARNING, logger="hostexec"):
        job_b = executor.run_command("echo b")
    handle_a, handle_b = fake_backend.started

    assert "still running" in caplog.text

    handle_a.emit("from a\n")
    handle_b.emit("from b\n")
    handle_b.finish(0)
    handle_a.finish(9)
    await job_b
    await job_a

    assert executor.job_stdout() == ["from b"]
    assert executor.last_job_status() == 0
    assert executor.last_job_id() == handle_b.id
    # The superseded job still resolves and keeps its own output
    assert job_a.exit_code == 9
    assert job_a.stdout() == ["from a"]


@pytest.mark.asyncio
async def test_overlapping_job_rejected(fake_backend):
    executor = Executor("devbox", backend=fake_backend, config=ExecutorConfig(overlap_policy="reject"))
    job = executor.run_command("sleep 10")

    with pytest.raises(JobInFlightError):
        executor.run_command("echo b")

    assert executor.current_job is job
    assert fake_backend.commands == ["sleep 10"]


@pytest.mark.asyncio
async def test_overlapping_job_cancels_previous(fake_backend):
    executor = Executor("devbox", backend=fake_backend, config=ExecutorConfig(overlap_policy="cancel"))
    executor.run_command("sleep 10")
    executor.run_command("echo b")

    assert fake_backend.started[0].terminated is True
    assert fake_backend.started[1].terminated is False


@pytest.mark.asyncio
async def test_no_overlap_after_completion(fake_backend):
    executor = Executor("devbox", backend=fake_backend, config=ExecutorConfig(overlap_policy="reject"))
    job = executor.run_command("true")
    fake_backend.started[0].finish(0)
    await job

    executor.run_command("true")
    assert len(fake_backend.started) == 2


@pytest.mark.asyncio
async def test_cancel_running_job(executor, fake_backend):
    job = executor.run_command("sleep 10")

    assert executor.cancel_running_job() is True
    assert fake_backend.started[0].terminated is True
    # Cancelling only asks; completion still comes from the process exit
    assert not job.done()

    fake_backend.started[0].finish(143)
    await job
    assert executor.cancel_running_job() is False


@pytest.mark.asyncio
async def test_job_cancel_delegates_to_backend(executor, fake_backend):
    job = executor.run_command("sleep 10")

    assert job.cancel() is True
    assert fake_backend.started[0].terminated is True


@pytest.mark.asyncio
async def test_spawn_failure_propagates(executor, fake_backend):
    job = executor.run_command("missing")
    error = OSError("exec format error")
    fake_backend.started[0].fail(error)

    with pytest.raises(OSError):
        await job
    with pytest.raises(OSError):
        executor.last_job_status()
    assert job.done()


@pytest.mark.asyncio
async def test_wait_timeout_leaves_job_running(executor, fake_backend):
    job = executor.run_command("sleep 10")

    with pytest.raises(asyncio.TimeoutError):
        await job.wait(timeout=0.01)

    assert not job.done()
    assert fake_backend.started[0].terminated is False

    fake_backend.started[0].finish(0)
    assert await job.wait(timeout=1) is executor


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_job(executor, fake_backend):
    job = executor.run_command("sleep 10")
    task = asyncio.create_task(job.wait())
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    fake_backend.started[0].finish(0)
    assert await job is executor


@pytest.mark.asyncio
async def test_failing_exit_callback_still_resolves_job(executor, fake_backend):
    def on_exit(code):
        raise ValueError("boom")

    job = executor.run_command("true", JobOptions(on_exit=on_exit))

    with pytest.raises(ValueError):
        fake_backend.started[0].finish(0)

    assert job.done()
    assert executor.last_job_status() == 0


@pytest.mark.asyncio
async def test_unawaited_spawn_failure_is_not_logged_as_unretrieved(fake_backend, caplog):
    executor = Executor("devbox", backend=fake_backend)
    executor.run_command("missing")
    fake_backend.started[0].fail(OSError("no such file"))

    with pytest.raises(OSError):
        executor.last_job_status()

    with caplog.at_level(logging.ERROR, logger="asyncio"):
        del executor
        fake_backend.started.clear()
        gc.collect()

    assert "never retrieved" not in caplog.text
