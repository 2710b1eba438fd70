"""Exceptions raised by hostexec."""


class HostexecError(Exception):
    """Base class for hostexec errors."""


class NoJobStartedError(HostexecError, AssertionError):
    """A job query or cancel was issued before any job was started."""


class JobInFlightError(HostexecError, RuntimeError):
    """A new job was requested while the current one is still running."""

    def __init__(self, host: str, job_id: int | None) -> None:
        super().__init__(f"Job {job_id} is still running on {host}")
        self.host = host
        self.job_id = job_id


class TransportError(HostexecError):
    """The transport cannot express the requested operation."""


class ConfigError(HostexecError):
    """A configuration file could not be read or is invalid."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
