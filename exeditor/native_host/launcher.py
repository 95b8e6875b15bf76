"""External editor launcher."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from returns.io import IOFailure, IOResult, IOSuccess
from returns.unsafe import unsafe_perform_io

from exeditor.native_host import io_ops
from exeditor.native_host.errors import LAUNCH_ERROR, HostError
from exeditor.native_host.tokenizer import concat_args

if TYPE_CHECKING:
    from exeditor.native_host.types import (
        EditorConfig,
        EditorState,
        LaunchResult,
    )

logger = logging.getLogger(__name__)


def escape_file_path(file_path: str) -> str:
    """Double every backslash so the path survives tokenization."""
    return file_path.replace("\\", "\\\\")


def build_editor_argv(config: EditorConfig, file_path: str) -> list[str]:
    """Build the editor argv (without the executable) for file_path.

    The file path is one argument; the configured extra arguments go
    before or after it as configured.
    """
    target = [escape_file_path(file_path)]
    if config.cmd_args_before_file:
        return concat_args(config.cmd_args, target)
    return concat_args(target, config.cmd_args)


class EditorLauncher:
    """Spawns the configured editor against a file."""

    def __init__(self, state: EditorState) -> None:
        self._state = state

    def spawn(
        self, file_path: str | None,
    ) -> asyncio.Task[IOResult[LaunchResult, HostError]] | None:
        """Start the editor on file_path.

        Returns None without spawning unless file_path is an existing
        file and the editor is executable. Otherwise returns a task
        that resolves when the editor exits. Must be called from
        within a running event loop.
        """
        config = self._state.config
        if not file_path or not io_ops.is_file(file_path):
            return None
        if not io_ops.is_executable(config.editor_path):
            logger.debug(
                "Editor %r is not executable, not opening %s",
                config.editor_path, file_path,
            )
            return None
        argv = build_editor_argv(config, file_path)
        logger.info("Launching %s %s", config.editor_path, argv)
        return asyncio.create_task(self._run(config.editor_path, argv))

    async def _run(
        self, editor_path: str, argv: list[str],
    ) -> IOResult[LaunchResult, HostError]:
        result = await io_ops.spawn_process(editor_path, argv)
        if isinstance(result, IOFailure):
            return result
        launch = unsafe_perform_io(result.unwrap())
        if launch.stdout:
            logger.debug("Editor stdout: %s", launch.stdout)
        if launch.stderr:
            logger.debug("Editor stderr: %s", launch.stderr)
        if launch.exit_code != 0:
            return IOFailure(
                HostError(
                    operation="launcher.spawn",
                    error_type=LAUNCH_ERROR,
                    message=(
                        f"Editor exited with code {launch.exit_code}"
                    ),
                    context={
                        "argv": launch.argv,
                        "stderr": launch.stderr,
                    },
                ),
            )
        return IOSuccess(launch)
