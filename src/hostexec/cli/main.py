"""Main CLI entry point for hostexec."""

import asyncio
import logging
import os
import shlex
import subprocess
from typing import Any, Callable

import click
from rich.logging import RichHandler

from hostexec.config.manager import ConfigManager, user_config_path
from hostexec.config.schema import HostexecConfig
from hostexec.errors import ConfigError, HostexecError
from hostexec.execution.executor import Executor
from hostexec.execution.models import CompressionOptions, JobOptions
from hostexec.execution.protocol import supports_transfer
from hostexec.hosts import DockerExecutor, LocalExecutor, SSHExecutor
from hostexec.output.formatter import OutputFormatter, get_formatter

TRANSPORTS = ["local", "ssh", "docker"]


def _setup_logging(formatter: OutputFormatter, verbose: bool) -> None:
    """Route hostexec logs through rich on stderr."""
    handler = RichHandler(console=formatter.err_console, show_path=False)
    logger = logging.getLogger("hostexec")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def transport_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options selecting the host an executor talks to."""
    for decorator in reversed([
        click.option(
            "-t", "--transport", type=click.Choice(TRANSPORTS), default=None,
            help="How to reach the host (default from config)",
        ),
        click.option("-H", "--host", help="SSH host or container name"),
        click.option("-o", "--conn-opts", default=None, help="Connection options, e.g. '-p 2222'"),
    ]):
        func = decorator(func)
    return func


def build_executor(
    config: HostexecConfig,
    transport: str | None,
    host: str | None,
    conn_opts: str | None,
) -> Executor:
    """Create the executor for a transport, filling gaps from config."""
    transport = transport or config.global_.default_transport
    if transport == "local":
        return LocalExecutor(conn_opts, config=config.executor)

    if not host:
        raise click.UsageError(f"--host is required for the {transport} transport")

    if transport == "ssh":
        return SSHExecutor(
            host,
            conn_opts if conn_opts is not None else config.ssh.conn_opts,
            config=config.executor,
            ssh_config=config.ssh,
        )
    return DockerExecutor(
        host,
        conn_opts if conn_opts is not None else config.docker.conn_opts,
        config=config.executor,
        docker_config=config.docker,
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--no-color", is_flag=True, help="Disable colors")
@click.version_option(package_name="hostexec")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    no_color: bool,
) -> None:
    """hostexec - run commands and move files on local, SSH and container hosts.

    \b
    Examples:
        hostexec run uname -a                          # Local machine
        hostexec run -t ssh -H devbox -- ls -la        # Over ssh
        hostexec run -t docker -H web cat /etc/hosts   # Inside a container
        hostexec upload -t ssh -H devbox --compress ./src /tmp/work
    """
    try:
        config = ConfigManager.get_config()
    except ConfigError as e:
        get_formatter(color=not no_color).print_error(f"Invalid configuration: {e}")
        raise SystemExit(1)
    verbose = verbose or config.global_.verbose

    ctx.ensure_object(dict)
    ctx.obj["config"] = config

    formatter = get_formatter(color=config.global_.color and not no_color, verbose=verbose)
    _setup_logging(formatter, verbose)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@transport_options
@click.option("-x", "--extra-opts", default="", help="Connection options for this call only")
@click.pass_context
def run(
    ctx: click.Context,
    command: tuple[str, ...],
    transport: str | None,
    host: str | None,
    conn_opts: str | None,
    extra_opts: str,
) -> None:
    """Run a command on a host, streaming its output.

    Exits with the command's exit code.
    """
    formatter = get_formatter()
    try:
        executor = build_executor(ctx.obj["config"], transport, host, conn_opts)
    except HostexecError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)

    job_opts = JobOptions(additional_conn_opts=extra_opts, on_output=formatter.print_streaming)
    exit_code = asyncio.run(_run_job(executor, lambda: executor.run_command(" ".join(command), job_opts)))

    if formatter.verbose:
        formatter.print_job_summary(executor)
    ctx.exit(exit_code)


async def _run_job(executor: Executor, start: Callable[[], Any]) -> int:
    """Start a job, wait for it and return its exit code."""
    formatter = get_formatter()
    try:
        await start()
    except (OSError, HostexecError) as e:
        formatter.print_error(f"Could not start job: {e}", executor.host)
        return 1
    except asyncio.CancelledError:
        # Interrupted; don't leave the process behind.
        if executor.last_job_id() is not None:
            executor.cancel_running_job()
        raise
    return executor.last_job_status() or 0


def _transfer(
    ctx: click.Context,
    direction: str,
    src: str,
    dest: str,
    transport: str | None,
    host: str | None,
    conn_opts: str | None,
    compress: bool | None,
    tar_args: tuple[str, ...],
) -> None:
    config: HostexecConfig = ctx.obj["config"]
    formatter = get_formatter()
    try:
        executor = build_executor(config, transport, host, conn_opts)
    except HostexecError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)

    if not supports_transfer(executor):
        formatter.print_error(f"{executor.__class__.__name__} cannot transfer files")
        raise SystemExit(1)

    compression = CompressionOptions(
        enabled=config.compression.enabled if compress is None else compress,
        extra_args=list(tar_args) or list(config.compression.extra_args),
    )
    job_opts = JobOptions(compression=compression)
    transfer = executor.upload if direction == "upload" else executor.download

    exit_code = asyncio.run(_run_job(executor, lambda: transfer(src, dest, job_opts)))
    if exit_code != 0:
        formatter.print_lines(executor.job_stdout())
        formatter.print_error(f"{direction.capitalize()} failed with exit code {exit_code}", executor.host)
        ctx.exit(exit_code)
    formatter.print_success(f"{direction.capitalize()} complete: {src} -> {dest}")


def transfer_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by upload and download."""
    for decorator in reversed([
        click.argument("src"),
        click.argument("dest"),
        transport_options,
        click.option("--compress/--no-compress", default=None, help="Stream through tar+gzip"),
        click.option("--tar-arg", "tar_args", multiple=True, help="Extra tar argument (repeatable)"),
    ]):
        func = decorator(func)
    return func


@cli.command()
@transfer_options
@click.pass_context
def upload(ctx: click.Context, src: str, dest: str, **kwargs: Any) -> None:
    """Upload a local file or directory SRC to DEST on the host."""
    _transfer(ctx, "upload", src, dest, **kwargs)


@cli.command()
@transfer_options
@click.pass_context
def download(ctx: click.Context, src: str, dest: str, **kwargs: Any) -> None:
    """Download SRC from the host to the local path DEST."""
    _transfer(ctx, "download", src, dest, **kwargs)


@cli.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration and the files it came from."""
    formatter = get_formatter()
    formatter.console.print_json(data=ctx.obj["config"].model_dump(by_alias=True))

    if ConfigManager.sources:
        for path in ConfigManager.sources:
            formatter.print_info(f"Loaded {path}")
    else:
        formatter.print_info("No config files found; using defaults")


@config.command("edit")
def config_edit() -> None:
    """Open the user config file in $EDITOR."""
    path = user_config_path()
    if not path.exists():
        ConfigManager.save_user_config(ConfigManager.get_config())

    editor = os.environ.get("EDITOR", "vi")
    subprocess.run([*shlex.split(editor), str(path)])


if __name__ == "__main__":
    cli()
