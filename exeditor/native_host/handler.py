"""Native messaging request handler.

Routes every command key of an inbound message to its action, runs
the actions concurrently, and returns one DispatchResult per key.

A failing command never affects the other keys of the same message:
each action turns its HostError into a failed DispatchResult. Only
fatal errors (an unserializable reply) propagate out of dispatch().

Two messages may have overlapping in-flight work. Their actions start
in arrival order, but nothing orders their side effects after that.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from returns.io import IOFailure, IOResult, IOSuccess
from returns.unsafe import unsafe_perform_io

from exeditor.native_host import io_ops
from exeditor.native_host.constants import (
    EDITOR_CONFIG_GET,
    EDITOR_CONFIG_RES,
    FILE_DATA,
    LOCAL_FILE_VIEW,
    SYNC_TEXT,
    TMP_FILE_CREATE,
    TMP_FILE_GET,
    TMP_FILES_PB_REMOVE,
)
from exeditor.native_host.errors import CONFIG_ERROR, HostError
from exeditor.native_host.types import DispatchResult, EditorConfig

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from exeditor.native_host.launcher import EditorLauncher
    from exeditor.native_host.temp_files import TempFileStore
    from exeditor.native_host.types import EditorState

    Emit = Callable[[dict[str, Any]], None]
    Action = Callable[[Any], Awaitable[DispatchResult]]

logger = logging.getLogger(__name__)


def parse_editor_config(
    raw: str,
    current: EditorConfig,
) -> IOResult[EditorConfig, HostError]:
    """Parse editor config file content on top of the current config.

    Keys present in raw replace the current values; absent keys keep
    them.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return IOFailure(
            HostError(
                operation="handler.parse_editor_config",
                error_type=CONFIG_ERROR,
                message=f"Editor config is not valid JSON: {exc}",
            ),
        )
    if not isinstance(data, dict):
        return IOFailure(
            HostError(
                operation="handler.parse_editor_config",
                error_type=CONFIG_ERROR,
                message="Editor config must be a JSON object",
                context={"type": type(data).__name__},
            ),
        )
    try:
        config = EditorConfig.model_validate(
            {**current.model_dump(by_alias=True), **data},
        )
    except ValidationError as exc:
        return IOFailure(
            HostError(
                operation="handler.parse_editor_config",
                error_type=CONFIG_ERROR,
                message=f"Invalid editor config: {exc}",
            ),
        )
    return IOSuccess(config)


def editor_name(editor_path: str) -> str:
    """File name stem of the editor, or "" if it is not a file."""
    if not editor_path or not io_ops.is_file(editor_path):
        return ""
    return Path(editor_path).stem


class MessageDispatcher:
    """Routes inbound messages to host actions."""

    def __init__(
        self,
        store: TempFileStore,
        launcher: EditorLauncher,
        state: EditorState,
        emit: Emit,
    ) -> None:
        self._store = store
        self._launcher = launcher
        self._state = state
        self._emit = emit
        self._actions: Mapping[str, Action] = MappingProxyType({
            EDITOR_CONFIG_GET: self._get_editor_config,
            LOCAL_FILE_VIEW: self._view_local_file,
            TMP_FILE_CREATE: self._create_temp_file,
            TMP_FILE_GET: self._get_temp_file,
            TMP_FILES_PB_REMOVE: self._remove_private_temp_files,
        })

    async def dispatch(self, message: object) -> list[DispatchResult]:
        """Handle one inbound message.

        Every recognized key is routed; unrecognized keys are ignored.
        Completes once every routed action has completed. Results are
        in the message's key order.
        """
        if not isinstance(message, dict):
            logger.warning(
                "Ignoring non-object message of type %s",
                type(message).__name__,
            )
            return []
        pending = []
        for key, payload in message.items():
            action = self._actions.get(key)
            if action is None:
                logger.debug("Ignoring unknown command %r", key)
                continue
            pending.append(self._guard(key, action(payload)))
        return list(await asyncio.gather(*pending))

    async def _guard(
        self, command: str, action: Awaitable[DispatchResult],
    ) -> DispatchResult:
        result = await action
        if result.error is not None:
            logger.warning("Command %s failed: %s", command, result.error)
        return result

    def _reply(self, msg: dict[str, Any]) -> dict[str, Any]:
        self._emit(msg)
        return msg

    async def _await_launch(
        self,
        command: str,
        handle: asyncio.Task[Any] | None,
        reply: dict[str, Any] | None = None,
    ) -> DispatchResult:
        if handle is None:
            return DispatchResult(command=command, success=True, reply=reply)
        result = await handle
        if isinstance(result, IOFailure):
            return DispatchResult(
                command=command,
                success=False,
                reply=reply,
                error=unsafe_perform_io(result.failure()),
            )
        return DispatchResult(command=command, success=True, reply=reply)

    async def _get_editor_config(self, payload: object) -> DispatchResult:
        """Load the editor config file named by payload and report it."""
        if not isinstance(payload, str) or not payload:
            return DispatchResult(
                command=EDITOR_CONFIG_GET,
                success=False,
                error=HostError(
                    operation="handler.editor_config_get",
                    error_type=CONFIG_ERROR,
                    message="Editor config path is missing",
                    context={"payload": payload},
                ),
            )
        read_result = io_ops.read_file(Path(payload))
        if isinstance(read_result, IOFailure):
            return DispatchResult(
                command=EDITOR_CONFIG_GET,
                success=False,
                error=unsafe_perform_io(read_result.failure()),
            )
        parsed = parse_editor_config(
            unsafe_perform_io(read_result.unwrap()), self._state.config,
        )
        if isinstance(parsed, IOFailure):
            return DispatchResult(
                command=EDITOR_CONFIG_GET,
                success=False,
                error=unsafe_perform_io(parsed.failure()),
            )
        config = unsafe_perform_io(parsed.unwrap())
        self._state.config = config
        reply = self._reply({
            EDITOR_CONFIG_RES: {
                "editorName": editor_name(config.editor_path),
                "editorPath": config.editor_path,
                "executable": io_ops.is_executable(config.editor_path),
            },
        })
        return DispatchResult(
            command=EDITOR_CONFIG_GET, success=True, reply=reply,
        )

    async def _view_local_file(self, payload: object) -> DispatchResult:
        """Open a file: URI in the editor."""
        uri = payload.get("uri") if isinstance(payload, dict) else None
        file_path = io_ops.uri_to_file_path(uri)
        handle = self._launcher.spawn(file_path)
        return await self._await_launch(LOCAL_FILE_VIEW, handle)

    async def _create_temp_file(self, payload: object) -> DispatchResult:
        """Write the field content to a temp file and open it."""
        if not isinstance(payload, dict) or not isinstance(
            payload.get("data"), dict,
        ):
            return DispatchResult(command=TMP_FILE_CREATE, success=True)
        data = payload["data"]
        value = payload.get("value")
        content = value if isinstance(value, str) else ""
        created = self._store.create(data, content)
        if isinstance(created, IOFailure):
            return DispatchResult(
                command=TMP_FILE_CREATE,
                success=False,
                error=unsafe_perform_io(created.failure()),
            )
        record = unsafe_perform_io(created.unwrap())
        if record is None:
            return DispatchResult(command=TMP_FILE_CREATE, success=True)
        handle = self._launcher.spawn(record.file_path)
        reply = self._reply({
            FILE_DATA: {"filePath": record.file_path, "data": data},
        })
        return await self._await_launch(TMP_FILE_CREATE, handle, reply)

    async def _get_temp_file(self, payload: object) -> DispatchResult:
        """Send the current temp file content back to the extension."""
        data = dict(payload) if isinstance(payload, dict) else {}
        fetched = self._store.fetch_with_timestamp(data.get("filePath"))
        if isinstance(fetched, IOFailure):
            return DispatchResult(
                command=TMP_FILE_GET,
                success=False,
                error=unsafe_perform_io(fetched.failure()),
            )
        record = unsafe_perform_io(fetched.unwrap())
        data["timestamp"] = record.timestamp
        if not record.content or not payload:
            return DispatchResult(command=TMP_FILE_GET, success=True)
        reply = self._reply({
            SYNC_TEXT: {
                "data": data,
                "dataId": data.get("dataId"),
                "tabId": data.get("tabId"),
                "value": record.content,
            },
        })
        return DispatchResult(command=TMP_FILE_GET, success=True, reply=reply)

    async def _remove_private_temp_files(
        self, payload: object,
    ) -> DispatchResult:
        """Purge the private-browsing subtree when payload is truthy."""
        if not payload:
            return DispatchResult(command=TMP_FILES_PB_REMOVE, success=True)
        purged = self._store.purge_private()
        if isinstance(purged, IOFailure):
            return DispatchResult(
                command=TMP_FILES_PB_REMOVE,
                success=False,
                error=unsafe_perform_io(purged.failure()),
            )
        return DispatchResult(command=TMP_FILES_PB_REMOVE, success=True)
