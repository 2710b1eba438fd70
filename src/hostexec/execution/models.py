"""Core data models for job execution."""
from dataclasses import dataclass, field
from typing import Callable

from hostexec.execution.protocol import ProcessHandle


@dataclass
class CompressionOptions:
    """Compression settings for upload and download"""
    enabled: bool = False
    extra_args: list[str] = field(default_factory=list)  # passed through to tar


@dataclass
class JobOptions:
    """Per-call options for commands and transfers"""
    additional_conn_opts: str = ""
    on_output: Callable[[str], None] | None = None
    on_exit: Callable[[int], None] | None = None
    compression: CompressionOptions = field(default_factory=CompressionOptions)


@dataclass
class JobState:
    """Bookkeeping for one job; replaced wholesale when the next job starts"""
    handle: ProcessHandle | None = None
    exit_code: int | None = None
    output: list[str] = field(default_factory=list)
    error: BaseException | None = None  # set if the process never started

    @property
    def job_id(self) -> int | None:
        return self.handle.id if self.handle is not None else None

    def lines(self) -> list[str]:
        """Output so far, joined, trimmed and split on newlines"""
        return "".join(self.output).strip().split("\n")
