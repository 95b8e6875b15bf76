"""Temp file store backing editable browser fields.

Files live under a per-run root:

    <root>/<dir>/<windowId>/<tabId>/<host>/<fileName>

where dir is either the normal subtree or the private-browsing
subtree. The root is removed when the host exits.

Requests for different keys never touch the same directory. Requests
for the same key and file name are last-write-wins; the extension
serializes its own requests per tab. A private purge and a create
under the private subtree are ordered only by arrival.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from returns.io import IOFailure, IOResult, IOSuccess
from returns.unsafe import unsafe_perform_io

from exeditor.native_host import io_ops
from exeditor.native_host.constants import TMP_FILES, TMP_FILES_PB
from exeditor.native_host.errors import FILESYSTEM_ERROR, HostError
from exeditor.native_host.types import (
    DirectoryKey,
    TempFileRecord,
    safe_file_name,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


def temp_file_path(root: Path, key: DirectoryKey, file_name: str) -> Path:
    """Map a key and file name to the file's location under root."""
    return root.joinpath(*key.segments(), file_name)


class TempFileStore:
    """Directory-keyed temp files with the filesystem as backend."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def files_dir(self) -> Path:
        return self.root / TMP_FILES

    @property
    def private_dir(self) -> Path:
        return self.root / TMP_FILES_PB

    def prepare(self) -> IOResult[None, HostError]:
        """Create the normal and private subtrees."""
        for path in (self.files_dir, self.private_dir):
            result = io_ops.makedirs(path)
            if isinstance(result, IOFailure):
                return result
        return IOSuccess(None)

    def create(
        self,
        data: Mapping[str, object],
        content: str,
    ) -> IOResult[TempFileRecord | None, HostError]:
        """Write content to the temp file described by data.

        Returns IOSuccess(None) when data lacks a usable key or file
        name: such a request is simply not temp-file backed.
        """
        key = DirectoryKey.from_descriptor(data)
        file_name = safe_file_name(data.get("fileName"))
        if key is None or file_name is None:
            return IOSuccess(None)
        path = temp_file_path(self.root, key, file_name)
        dir_result = io_ops.makedirs(path.parent)
        if isinstance(dir_result, IOFailure):
            return dir_result
        write_result = io_ops.write_file(path, content)
        if isinstance(write_result, IOFailure):
            return write_result
        logger.debug("Created temp file %s", path)
        return IOSuccess(
            TempFileRecord(
                file_path=str(path),
                content=content,
            ),
        )

    def fetch_with_timestamp(
        self, file_path: object,
    ) -> IOResult[TempFileRecord, HostError]:
        """Read a temp file and stamp it with its modification time.

        An absent path or a file that no longer exists yields an empty
        record with timestamp 0. A path outside the store root fails.
        """
        if not isinstance(file_path, str) or not file_path:
            return IOSuccess(TempFileRecord(file_path=""))
        path = Path(file_path)
        if not io_ops.is_file(path):
            return IOSuccess(TempFileRecord(file_path=file_path))
        if not self._contains(path):
            return IOFailure(
                HostError(
                    operation="temp_files.fetch_with_timestamp",
                    error_type=FILESYSTEM_ERROR,
                    message=f"Path is outside the temp root: {file_path}",
                    context={"path": file_path, "root": str(self.root)},
                ),
            )
        stamp_result = io_ops.file_timestamp(path)
        if isinstance(stamp_result, IOFailure):
            return stamp_result
        read_result = io_ops.read_file(path)
        if isinstance(read_result, IOFailure):
            return read_result
        return IOSuccess(
            TempFileRecord(
                file_path=file_path,
                content=unsafe_perform_io(read_result.unwrap()),
                timestamp=unsafe_perform_io(stamp_result.unwrap()),
            ),
        )

    def purge_private(self) -> IOResult[None, HostError]:
        """Empty the private subtree, leaving its root in place."""
        removed = io_ops.remove_tree(self.private_dir)
        if isinstance(removed, IOFailure):
            return removed
        created = io_ops.makedirs(self.private_dir)
        if isinstance(created, IOFailure):
            return created
        logger.info("Purged private temp files in %s", self.private_dir)
        return IOSuccess(None)

    def purge_all(self) -> None:
        """Remove the whole per-run root. Best effort, never fails."""
        result = io_ops.remove_tree(self.root)
        if isinstance(result, IOFailure):
            logger.debug(
                "Temp root cleanup failed: %s",
                unsafe_perform_io(result.failure()),
            )

    def _contains(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self.root.resolve())
        except ValueError:
            return False
        return True
