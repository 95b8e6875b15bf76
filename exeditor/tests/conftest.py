"""Shared test fixtures for the exeditor test suite."""
from __future__ import annotations

import logging
import os
import stat
from typing import TYPE_CHECKING

import pytest

from exeditor.native_host.logs import LOGGER_NAME
from exeditor.native_host.temp_files import TempFileStore
from exeditor.native_host.types import HostSettings

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def host_settings(tmp_path: Path) -> HostSettings:
    """Return HostSettings rooted in the test's tmp_path."""
    return HostSettings(tmp_dir=tmp_path, log_file=None, pid=4242)


@pytest.fixture
def store(host_settings: HostSettings) -> TempFileStore:
    """Return a TempFileStore with both subtrees created."""
    temp_store = TempFileStore(host_settings.tmp_root)
    temp_store.prepare()
    return temp_store


@pytest.fixture
def descriptor() -> dict[str, object]:
    """Return a temp-file descriptor as sent by the extension."""
    return {
        "dir": "tmpfiles",
        "fileName": "1.txt",
        "host": "example.com",
        "tabId": "1",
        "windowId": "1",
        "dataId": "field-1",
    }


@pytest.fixture
def editor_script(tmp_path: Path) -> Path:
    """Return an executable script that echoes its arguments."""
    if os.name == "nt":
        pytest.skip("shell script editor stub needs a POSIX shell")
    script = tmp_path / "fake-editor.sh"
    script.write_text('#!/bin/sh\nprintf "%s\\n" "$@"\n')
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo setup_logging() so tests stay independent."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
