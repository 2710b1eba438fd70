"""Shell command builders shared by the transports."""

import re
import shlex
from pathlib import PurePosixPath

_TILDE_PREFIX = re.compile(r"^(~[A-Za-z0-9._-]*)(?:/(.*))?$", re.DOTALL)


def join_opts(*opts: str) -> str:
    """Join option strings, skipping empty ones"""
    return " ".join(opt.strip() for opt in opts if opt and opt.strip())


def join_command(*parts: str) -> str:
    """Join already-quoted command fragments, skipping empty ones"""
    return " ".join(part for part in parts if part)


def shell_path(path: str) -> str:
    """Quote a path for sh, leaving a leading ``~`` or ``~user`` to expand.

    >>> shell_path("~/my work")
    "~/'my work'"
    """
    match = _TILDE_PREFIX.match(path)
    if match is None:
        return shlex.quote(path)
    prefix, rest = match.groups()
    if rest is None:
        return prefix
    return f"{prefix}/{shlex.quote(rest)}" if rest else f"{prefix}/"


def archive_root(path: str) -> tuple[str, str]:
    """Split path into the directory tar runs in and the entry it archives.

    Paths without a usable last component (``dir/.``, ``..``, ``/``, ``~``)
    archive their contents as ``.``.
    """
    last = path.rstrip("/").rsplit("/", 1)[-1]
    if last in ("", ".", "..") or _TILDE_PREFIX.match(last) and last == path.rstrip("/"):
        return path, "."
    posix_path = PurePosixPath(path)
    return str(posix_path.parent), posix_path.name


def tar_pack(path: str, extra_args: list[str] | None = None) -> str:
    """tar command writing a gzipped archive of path to stdout"""
    parent, name = archive_root(path)
    return join_command(
        "tar czf -",
        shlex.join(extra_args or []),
        "-C",
        shell_path(parent),
        shlex.quote(name),
    )


def tar_unpack(dest: str, src: str) -> str:
    """Unpack a tar_pack(src) stream from stdin so it lands where ``cp -R src dest`` would.

    A missing dest becomes the copy; an existing directory receives it under
    its own name. The archive is extracted into a scratch directory beside
    dest first, so dest's parent must exist, as it must for ``cp``.
    Sources archived as contents are merged into dest, which is created.
    """
    _, name = archive_root(src)
    target = shell_path(dest)
    if name == ".":
        return f"mkdir -p {target} && tar xzf - -C {target}"

    scratch_parent = shell_path(str(PurePosixPath(dest).parent))
    return (
        f"stage=$(mktemp -d {scratch_parent}/.hostexec-XXXXXX) && "
        f'{{ tar xzf - -C "$stage" && cp -R "$stage"/{shlex.quote(name)} {target}; '
        f'rc=$?; rm -rf "$stage"; (exit $rc); }}'
    )
