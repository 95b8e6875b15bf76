"""Main entry point for the native messaging host.

The browser starts the host once per connection and keeps its stdin
open for the life of the connection. The host reads frames until EOF,
dispatching each decoded message as its own task, then waits for the
in-flight work, cleans up its temp files and exits.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from returns.io import IOFailure
from returns.unsafe import unsafe_perform_io

from exeditor.native_host import io_ops
from exeditor.native_host.constants import (
    EXIT_FAILURE,
    EXIT_OK,
    HOST_STATUS,
    MAX_MESSAGE_SIZE,
    STATUS_EXIT,
    STATUS_READY,
)
from exeditor.native_host.errors import FatalHostError
from exeditor.native_host.handler import MessageDispatcher
from exeditor.native_host.launcher import EditorLauncher
from exeditor.native_host.logs import setup_logging
from exeditor.native_host.protocol import FrameDecoder
from exeditor.native_host.temp_files import TempFileStore
from exeditor.native_host.types import EditorState, HostSettings

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGTERM", "SIGINT", "SIGHUP")
    if hasattr(signal, name)
)


class NativeHost:
    """One host process serving one browser connection."""

    def __init__(
        self,
        settings: HostSettings,
        reader: asyncio.StreamReader,
        emit: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.settings = settings
        self._reader = reader
        self._emit = emit or io_ops.write_stdout_message
        self._decoder = FrameDecoder(settings.max_message_size)
        self.state = EditorState()
        self.store = TempFileStore(settings.tmp_root)
        self.dispatcher = MessageDispatcher(
            self.store,
            EditorLauncher(self.state),
            self.state,
            self._emit,
        )
        self._tasks: set[asyncio.Task[Any]] = set()
        self._serving: asyncio.Task[Any] | None = None
        self._fatal: BaseException | None = None
        self._signal: int | None = None
        self._draining = False

    async def run(self) -> int:
        """Serve until EOF, signal or fatal error. Returns the exit code.

        Shutdown (temp cleanup, exit status) runs on every path.
        """
        self._serving = asyncio.current_task()
        exit_code = EXIT_FAILURE
        try:
            prepared = self.store.prepare()
            if isinstance(prepared, IOFailure):
                logger.error(
                    "Cannot create temp directories: %s",
                    unsafe_perform_io(prepared.failure()),
                )
                return exit_code
            self._send_status(STATUS_READY)
            await self._serve()
            exit_code = EXIT_OK
        except asyncio.CancelledError:
            if self._fatal is not None:
                logger.error(
                    "Dispatch failed fatally", exc_info=self._fatal,
                )
            elif self._signal is not None:
                logger.info("Received signal %d", self._signal)
                exit_code = 128 + self._signal
            else:
                raise
            if self._serving is not None:
                self._serving.uncancel()
        except FatalHostError:
            logger.exception("Fatal host error")
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error in host loop")
        finally:
            self.shutdown(exit_code)
        return exit_code

    def stop(self, signum: int) -> None:
        """Request shutdown on a signal."""
        self._signal = signum
        if self._serving is not None:
            self._serving.cancel()

    def shutdown(self, exit_code: int) -> None:
        """Cancel pending work, remove temp files, report exit."""
        for task in list(self._tasks):
            task.cancel()
        self.store.purge_all()
        try:
            self._send_status(STATUS_EXIT, exit=exit_code)
        except OSError as exc:
            logger.debug("Could not report exit status: %s", exc)
        logger.info("Host exiting with code %d", exit_code)

    async def _serve(self) -> None:
        while True:
            chunk = await self._reader.read(_CHUNK_SIZE)
            if not chunk:
                break
            # decode the whole chunk before dispatching any of it
            for message in self._decoder.decode(chunk):
                self._schedule(message)
        if self._decoder.pending:
            logger.warning(
                "Discarding %d bytes of an incomplete frame at EOF",
                self._decoder.pending,
            )
        self._draining = True
        while self._tasks and self._fatal is None:
            await asyncio.wait(
                set(self._tasks), return_when=asyncio.FIRST_EXCEPTION,
            )
        if self._fatal is not None:
            raise self._fatal

    def _schedule(self, message: object) -> None:
        task = asyncio.create_task(self.dispatcher.dispatch(message))
        self._tasks.add(task)
        task.add_done_callback(self._on_dispatched)

    def _on_dispatched(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None or self._fatal is not None:
            return
        self._fatal = exc
        # while draining, _serve picks the failure up itself
        if self._serving is not None and not self._draining:
            self._serving.cancel()

    def _send_status(self, status: str, **extra: Any) -> None:
        self._emit({
            HOST_STATUS: {
                "pid": str(self.settings.pid),
                "status": status,
                **extra,
            },
        })


async def run_host(settings: HostSettings) -> int:
    """Attach to stdin, install signal handlers and serve."""
    reader = await io_ops.open_stdin_reader()
    host = NativeHost(settings, reader)
    loop = asyncio.get_running_loop()
    for signum in _SIGNALS:
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, host.stop, signum)
    return await host.run()


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_extra_args": True,
    },
)
@click.option(
    "--tmp-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    envvar="EXEDITOR_TMP_DIR",
    help="Base directory for temp files (default: system temp dir)",
)
@click.option(
    "--max-message-size",
    type=click.IntRange(min=1),
    default=MAX_MESSAGE_SIZE,
    show_default=True,
    envvar="EXEDITOR_MAX_MESSAGE_SIZE",
    help="Largest inbound message body accepted, in bytes",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    envvar="EXEDITOR_LOG_FILE",
    help="Debug log location",
)
@click.option(
    "--debug",
    is_flag=True,
    envvar="EXEDITOR_DEBUG",
    help="Log at DEBUG level",
)
@click.argument("caller_args", nargs=-1, type=click.UNPROCESSED)
def main(
    tmp_dir: Path | None,
    max_message_size: int,
    log_file: Path | None,
    debug: bool,
    caller_args: tuple[str, ...],
) -> None:
    """Run the native messaging host on stdin/stdout.

    Browsers pass their own arguments (extension origin, manifest
    path, parent window); they are accepted and ignored.
    """
    overrides: dict[str, Any] = {
        "tmp_dir": tmp_dir,
        "max_message_size": max_message_size,
        "log_file": log_file,
        "debug": debug,
    }
    settings = HostSettings(
        **{k: v for k, v in overrides.items() if v is not None},
    )
    setup_logging(settings.log_file, debug=settings.debug)
    logger.debug("Started with caller arguments %s", caller_args)
    sys.exit(asyncio.run(run_host(settings)))


if __name__ == "__main__":
    main()
