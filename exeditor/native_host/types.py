"""Shared type definitions for the native messaging host."""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from exeditor.native_host.constants import LABEL, MAX_MESSAGE_SIZE

if TYPE_CHECKING:
    from collections.abc import Mapping

    from exeditor.native_host.errors import HostError

_DEFAULT_LOG_FILE = (
    Path.home() / ".local" / "lib" / "exeditor-host" / "debug.log"
)


class HostSettings(BaseModel):
    """Process-level settings resolved from the command line."""

    model_config = ConfigDict(frozen=True)

    tmp_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
    )
    max_message_size: int = Field(default=MAX_MESSAGE_SIZE, gt=0)
    log_file: Path | None = _DEFAULT_LOG_FILE
    debug: bool = False
    pid: int = Field(default_factory=os.getpid)

    @property
    def tmp_root(self) -> Path:
        """Per-run temp root, unique to this host process."""
        return self.tmp_dir / LABEL / str(self.pid)


class EditorConfig(BaseModel):
    """How to invoke the external editor.

    Field aliases match the keys of the editor config file written
    by the extension.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    editor_path: str = Field(default="", alias="editorPath")
    cmd_args: str | list[str] = Field(
        default_factory=list, alias="cmdArgs",
    )
    cmd_args_before_file: bool = Field(
        default=False, alias="cmdArgsBeforeFile",
    )


@dataclass
class EditorState:
    """Mutable holder for the current EditorConfig.

    Owned by the dispatcher (the only writer) and shared with the
    launcher (reader).
    """

    config: EditorConfig = field(default_factory=EditorConfig)


_SEGMENT_FIELDS = ("dir", "windowId", "tabId", "host")


def _segment(value: object) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not value:
        return None
    if value in {".", ".."}:
        return None
    if any(sep in value for sep in ("/", "\\", "\x00")):
        return None
    return value


@dataclass(frozen=True)
class DirectoryKey:
    """Scope of a temp file: which subtree, window, tab and host."""

    dir: str
    window_id: str
    tab_id: str
    host: str

    @classmethod
    def from_descriptor(
        cls, data: Mapping[str, object],
    ) -> DirectoryKey | None:
        """Build a key from a temp-file descriptor.

        Returns None when a field is missing, empty, or not a single
        safe path segment.
        """
        parts = [_segment(data.get(name)) for name in _SEGMENT_FIELDS]
        if any(part is None for part in parts):
            return None
        dir_, window_id, tab_id, host = parts
        return cls(
            dir=dir_,  # type: ignore[arg-type]
            window_id=window_id,  # type: ignore[arg-type]
            tab_id=tab_id,  # type: ignore[arg-type]
            host=host,  # type: ignore[arg-type]
        )

    def segments(self) -> tuple[str, str, str, str]:
        """Path segments in on-disk order."""
        return (self.dir, self.window_id, self.tab_id, self.host)


def safe_file_name(value: object) -> str | None:
    """Return value when it is usable as a single file name."""
    return _segment(value)


@dataclass(frozen=True)
class TempFileRecord:
    """A temp file as seen by the store."""

    file_path: str
    content: str = ""
    timestamp: int = 0


@dataclass(frozen=True)
class LaunchResult:
    """Outcome of one external editor run."""

    exit_code: int
    stdout: str
    stderr: str
    argv: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one routed command key.

    reply is the outbound message emitted for the command, if any.
    error is set when the command failed.
    """

    command: str
    success: bool
    reply: dict[str, object] | None = None
    error: HostError | None = None
