"""Output formatting using Rich for terminal output."""

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from hostexec.execution.executor import Executor

HOSTEXEC_THEME = Theme(
    {
        "success": "green",
        "error": "red bold",
        "info": "blue",
        "metadata": "dim",
    }
)


class OutputFormatter:
    """Handles all output formatting for hostexec."""

    def __init__(self, color: bool = True, verbose: bool = False) -> None:
        self.console = Console(theme=HOSTEXEC_THEME, force_terminal=color)
        # Diagnostics go to stderr so they never mix with command output
        self.err_console = Console(theme=HOSTEXEC_THEME, stderr=True, force_terminal=color)
        self.verbose = verbose

    def _message(self, style: str, text: str) -> None:
        self.console.print(f"[{style}]{escape(text)}[/{style}]", highlight=False, soft_wrap=True)

    def print_error(self, message: str, host: str | None = None) -> None:
        """Print an error, prefixed with the host it concerns."""
        prefix = f"[{host}] " if host else ""
        self._message("error", f"{prefix}Error: {message}")

    def print_success(self, message: str) -> None:
        self._message("success", message)

    def print_info(self, message: str) -> None:
        self._message("info", message)

    def print_streaming(self, chunk: str) -> None:
        """Print a chunk of job output verbatim."""
        self.console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def print_lines(self, lines: list[str]) -> None:
        """Print captured job output."""
        for line in lines:
            self.console.print(line, markup=False, highlight=False, soft_wrap=True)

    def print_job_summary(self, executor: Executor) -> None:
        """Print a table describing the executor's last job."""
        table = Table(title="Job")
        table.add_column("Property", style="cyan")
        table.add_column("Value")

        try:
            status = executor.last_job_status()
            exit_code = "running" if status is None else str(status)
        except OSError as e:
            exit_code = f"failed to start ({e})"
        table.add_row("Host", executor.host)
        table.add_row("Executor", executor.__class__.__name__)
        table.add_row("Job ID", str(executor.last_job_id()))
        table.add_row("Exit code", exit_code)
        table.add_row("Output lines", str(len(executor.job_stdout())))

        self.console.print(table)


# Global formatter instance
_formatter: OutputFormatter | None = None


def get_formatter(color: bool = True, verbose: bool = False) -> OutputFormatter:
    """Get or create the global formatter instance."""
    global _formatter
    if _formatter is None:
        _formatter = OutputFormatter(color=color, verbose=verbose)
    return _formatter
