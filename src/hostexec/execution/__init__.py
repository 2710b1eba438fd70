"""Job execution layer: executor, completion bridge and process primitive"""
from .protocol import ProcessBackend, ProcessHandle, TransferCapable, supports_transfer
from .models import CompressionOptions, JobOptions, JobState
from .job import Job
from .executor import Executor
from .subprocess_backend import SubprocessBackend

__all__ = [
    "ProcessBackend",
    "ProcessHandle",
    "TransferCapable",
    "supports_transfer",
    "CompressionOptions",
    "JobOptions",
    "JobState",
    "Job",
    "Executor",
    "SubprocessBackend",
]
