"""Pytest configuration and fixtures."""

import logging
from dataclasses import dataclass

import pytest

from hostexec.config.manager import ConfigManager
from hostexec.execution.protocol import ProcessBackend, ProcessHandle
from hostexec.output import formatter


@dataclass
class FakeHandle(ProcessHandle):
    """Handle whose sinks the test fires by hand."""
    pty: bool = False
    on_output: object = None
    on_exit: object = None
    on_error: object = None
    exit_code: int | None = None
    terminated: bool = False

    def emit(self, *chunks: str) -> None:
        self.on_output(list(chunks))

    def finish(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self.on_exit(exit_code)

    def fail(self, exc: BaseException) -> None:
        self.on_error(exc)


class FakeBackend(ProcessBackend):
    """In-memory process primitive recording every start."""

    def __init__(self) -> None:
        self.started: list[FakeHandle] = []

    @property
    def commands(self) -> list[str]:
        return [handle.command for handle in self.started]

    def start(self, command, *, pty=False, on_output, on_exit, on_error=None):
        handle = FakeHandle(
            id=len(self.started) + 1,
            command=command,
            pty=pty,
            on_output=on_output,
            on_exit=on_exit,
            on_error=on_error,
        )
        self.started.append(handle)
        return handle

    def probe_status(self, handle):
        return handle.exit_code

    async def wait(self, handle, timeout=None):
        return handle.exit_code

    def terminate(self, handle):
        if handle.exit_code is not None:
            return False
        handle.terminated = True
        return True


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Keep tests away from the user's config and reset cached globals."""
    monkeypatch.setattr(
        "hostexec.config.manager.get_config_file", lambda: tmp_path / "user-config.toml"
    )
    monkeypatch.delenv("HOSTEXEC_CONFIG", raising=False)
    ConfigManager._config = None
    ConfigManager.sources = []
    formatter._formatter = None
    yield
    ConfigManager._config = None
    formatter._formatter = None


@pytest.fixture(autouse=True)
def reset_hostexec_logger():
    """Undo the CLI's logging setup so caplog sees hostexec records."""
    yield
    logger = logging.getLogger("hostexec")
    logger.handlers = []
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
