"""I/O boundary for the native messaging host.

All external I/O (stdin, stdout, filesystem, subprocess) goes through
here. Tests mock these functions at this boundary. Functions that can
fail for environmental reasons return IOResult and never raise.
"""
from __future__ import annotations

import asyncio
import os
import shutil
import sys
from pathlib import Path
from typing import IO, Any
from urllib.parse import urlparse
from urllib.request import url2pathname

from returns.io import IOFailure, IOResult, IOSuccess

from exeditor.native_host.errors import (
    FILESYSTEM_ERROR,
    LAUNCH_ERROR,
    HostError,
)
from exeditor.native_host.protocol import encode_message
from exeditor.native_host.types import LaunchResult

_ENCODING = "utf-8"


def _get_stdin_buffer() -> IO[bytes]:
    """Return stdin binary buffer. Mockable seam."""
    return sys.stdin.buffer


def _get_stdout_buffer() -> IO[bytes]:
    """Return stdout binary buffer. Mockable seam."""
    return sys.stdout.buffer


async def open_stdin_reader() -> asyncio.StreamReader:
    """Attach an asyncio StreamReader to stdin."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, _get_stdin_buffer())
    return reader


def write_stdout_message(msg: dict[str, Any]) -> None:
    """Write a length-prefixed JSON message to stdout.

    Raises EncodingError if msg cannot be serialized.
    """
    frame = encode_message(msg)
    stdout_buf = _get_stdout_buffer()
    stdout_buf.write(frame)
    stdout_buf.flush()


def _fs_failure(
    operation: str, path: str | Path, exc: OSError,
) -> IOResult[Any, HostError]:
    return IOFailure(
        HostError(
            operation=f"io_ops.{operation}",
            error_type=FILESYSTEM_ERROR,
            message=f"{type(exc).__name__} on {path}: {exc}",
            context={"path": str(path), "errno": exc.errno},
        ),
    )


def is_file(path: str | Path) -> bool:
    """Check if path is an existing regular file. Mockable seam."""
    return os.path.isfile(path)  # noqa: PTH113


def is_executable(path: str | Path) -> bool:
    """Check if path is a file the current user may execute."""
    return is_file(path) and os.access(path, os.X_OK)


def makedirs(path: Path) -> IOResult[Path, HostError]:
    """Create directory and parents. Existing directories are fine."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return _fs_failure("makedirs", path, exc)
    return IOSuccess(path)


def remove_tree(path: Path) -> IOResult[None, HostError]:
    """Remove a directory tree. A missing tree is not an error."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return IOSuccess(None)
    except OSError as exc:
        return _fs_failure("remove_tree", path, exc)
    return IOSuccess(None)


def write_file(path: Path, content: str) -> IOResult[Path, HostError]:
    """Write string content to a file, UTF-8, newlines untouched."""
    try:
        with path.open("w", encoding=_ENCODING, newline="") as f:
            f.write(content)
    except OSError as exc:
        return _fs_failure("write_file", path, exc)
    return IOSuccess(path)


def read_file(path: Path) -> IOResult[str, HostError]:
    """Read file contents as UTF-8, newlines untouched."""
    try:
        with path.open(encoding=_ENCODING, newline="") as f:
            return IOSuccess(f.read())
    except UnicodeDecodeError as exc:
        return IOFailure(
            HostError(
                operation="io_ops.read_file",
                error_type=FILESYSTEM_ERROR,
                message=f"File is not valid UTF-8: {path}",
                context={"path": str(path), "reason": str(exc)},
            ),
        )
    except OSError as exc:
        return _fs_failure("read_file", path, exc)


def file_timestamp(path: Path) -> IOResult[int, HostError]:
    """Return the modification time of path in integer milliseconds."""
    try:
        mtime_ns = path.stat().st_mtime_ns
    except OSError as exc:
        return _fs_failure("file_timestamp", path, exc)
    return IOSuccess(mtime_ns // 1_000_000)


def uri_to_file_path(uri: object) -> str | None:
    """Convert a file: URI to a local path.

    Returns None for anything that is not a file: URI string.
    """
    if not isinstance(uri, str):
        return None
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return None
    return url2pathname(parsed.path)


async def spawn_process(
    executable: str,
    argv: list[str],
) -> IOResult[LaunchResult, HostError]:
    """Run executable with argv and wait for it to exit.

    No shell is involved. The child gets the host's environment and
    a null stdin; its stdout and stderr are captured because the
    host's own stdout carries protocol frames. Nonzero exit codes
    are valid results, not errors. The caller decides the policy.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            executable,
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(os.environ),
        )
    except OSError as exc:
        return IOFailure(
            HostError(
                operation="io_ops.spawn_process",
                error_type=LAUNCH_ERROR,
                message=f"Failed to start {executable}: {exc}",
                context={"executable": executable, "argv": argv},
            ),
        )
    stdout, stderr = await proc.communicate()
    return IOSuccess(
        LaunchResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(_ENCODING, errors="replace"),
            stderr=stderr.decode(_ENCODING, errors="replace"),
            argv=[executable, *argv],
        ),
    )
