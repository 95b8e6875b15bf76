"""Tests for the native host run loop and CLI entry point."""
from __future__ import annotations

import asyncio
import json
import os
import signal
import stat
import struct
from typing import TYPE_CHECKING, Any

import pytest
from click.testing import CliRunner
from returns.io import IOFailure

from exeditor.native_host.constants import (
    EDITOR_CONFIG_GET,
    EDITOR_CONFIG_RES,
    EXIT_FAILURE,
    EXIT_OK,
    FILE_DATA,
    HOST_STATUS,
    STATUS_EXIT,
    STATUS_READY,
    TMP_FILE_CREATE,
)
from exeditor.native_host.errors import (
    FILESYSTEM_ERROR,
    EncodingError,
    HostError,
)
from exeditor.native_host.handler import MessageDispatcher
from exeditor.native_host.main import NativeHost, main
from exeditor.native_host.protocol import FrameDecoder
from exeditor.native_host.types import EditorConfig, HostSettings

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from pytest_mock import MockerFixture


def _frame(msg: object) -> bytes:
    body = json.dumps(msg).encode("utf-8")
    return struct.pack("=I", len(body)) + body


def _statuses(sent: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [m[HOST_STATUS] for m in sent if HOST_STATUS in m]


def _run(
    settings: HostSettings,
    chunks: list[bytes],
    emit: Callable[[dict[str, Any]], None],
    *,
    configure: Callable[[NativeHost], None] | None = None,
) -> int:
    """Feed chunks then EOF to a host and run it to completion."""

    async def scenario() -> int:
        reader = asyncio.StreamReader()
        for chunk in chunks:
            reader.feed_data(chunk)
        reader.feed_eof()
        host = NativeHost(settings, reader, emit)
        if configure is not None:
            configure(host)
        return await host.run()

    return asyncio.run(scenario())


class TestNativeHostRun:
    """Tests for NativeHost.run."""

    def test_ready_then_exit_on_eof(
        self, host_settings: HostSettings,
    ) -> None:
        """An empty session reports ready, then exit with code 0."""
        sent: list[dict[str, Any]] = []
        assert _run(host_settings, [], sent.append) == EXIT_OK
        assert sent == [
            {HOST_STATUS: {"pid": "4242", "status": STATUS_READY}},
            {HOST_STATUS: {"pid": "4242", "status": STATUS_EXIT, "exit": 0}},
        ]

    def test_temp_file_created_then_cleaned_up(
        self,
        host_settings: HostSettings,
        descriptor: dict[str, object],
    ) -> None:
        """A created temp file exists while in use and is gone at exit."""
        sent: list[dict[str, Any]] = []
        seen_content: list[str] = []

        def emit(msg: dict[str, Any]) -> None:
            if FILE_DATA in msg:
                with open(  # noqa: PTH123
                    msg[FILE_DATA]["filePath"], encoding="utf-8", newline="",
                ) as f:
                    seen_content.append(f.read())
            sent.append(msg)

        message = {TMP_FILE_CREATE: {"data": descriptor, "value": "a\r\nb"}}
        assert _run(host_settings, [_frame(message)], emit) == EXIT_OK
        expected_path = (
            host_settings.tmp_root
            / "tmpfiles" / "1" / "1" / "example.com" / "1.txt"
        )
        assert sent[1] == {
            FILE_DATA: {"filePath": str(expected_path), "data": descriptor},
        }
        assert seen_content == ["a\r\nb"]
        assert not host_settings.tmp_root.exists()
        assert _statuses(sent)[-1]["exit"] == EXIT_OK

    def test_two_frames_in_one_chunk(
        self,
        host_settings: HostSettings,
        descriptor: dict[str, object],
    ) -> None:
        """Frames coalesced in a single read are all dispatched."""
        sent: list[dict[str, Any]] = []
        first = {TMP_FILE_CREATE: {"data": descriptor, "value": "one"}}
        second = {
            TMP_FILE_CREATE: {
                "data": {**descriptor, "fileName": "2.txt"},
                "value": "two",
            },
        }
        chunk = _frame(first) + _frame(second)
        assert _run(host_settings, [chunk], sent.append) == EXIT_OK
        names = sorted(
            os.path.basename(m[FILE_DATA]["filePath"])  # noqa: PTH119
            for m in sent
            if FILE_DATA in m
        )
        assert names == ["1.txt", "2.txt"]

    def test_config_and_create_in_one_chunk(
        self,
        host_settings: HostSettings,
        descriptor: dict[str, object],
        tmp_path: Path,
        mocker: MockerFixture,
    ) -> None:
        """Both messages are decoded first, then each is answered."""
        events: list[tuple[str, object]] = []
        real_decode = FrameDecoder.decode
        real_dispatch = MessageDispatcher.dispatch

        def decode(self: FrameDecoder, chunk: bytes) -> list[Any]:
            messages = real_decode(self, chunk)
            events.append(("decoded", len(messages)))
            return messages

        async def dispatch(
            self: MessageDispatcher, message: Any,
        ) -> list[Any]:
            events.append(("dispatch", next(iter(message))))
            return await real_dispatch(self, message)

        mocker.patch.object(FrameDecoder, "decode", decode)
        mocker.patch.object(MessageDispatcher, "dispatch", dispatch)

        config_path = tmp_path / "editor.json"
        config_path.write_text(
            json.dumps({"editorPath": str(tmp_path / "no-editor")}),
            encoding="utf-8",
        )
        sent: list[dict[str, Any]] = []
        seen_content: list[str] = []

        def emit(msg: dict[str, Any]) -> None:
            if FILE_DATA in msg:
                with open(  # noqa: PTH123
                    msg[FILE_DATA]["filePath"], encoding="utf-8",
                ) as f:
                    seen_content.append(f.read())
            sent.append(msg)

        chunk = _frame({EDITOR_CONFIG_GET: str(config_path)}) + _frame(
            {TMP_FILE_CREATE: {"data": descriptor, "value": "hello"}},
        )
        assert _run(host_settings, [chunk], emit) == EXIT_OK
        assert events == [
            ("decoded", 2),
            ("dispatch", EDITOR_CONFIG_GET),
            ("dispatch", TMP_FILE_CREATE),
        ]
        assert [next(iter(m)) for m in sent] == [
            HOST_STATUS, EDITOR_CONFIG_RES, FILE_DATA, HOST_STATUS,
        ]
        assert sent[1][EDITOR_CONFIG_RES]["editorPath"] == str(
            tmp_path / "no-editor",
        )
        assert sent[2][FILE_DATA]["data"] == descriptor
        assert seen_content == ["hello"]

    def test_frame_split_across_reads(
        self,
        host_settings: HostSettings,
        descriptor: dict[str, object],
    ) -> None:
        """A frame delivered in pieces is dispatched once complete."""
        sent: list[dict[str, Any]] = []
        frame = _frame({TMP_FILE_CREATE: {"data": descriptor, "value": "x"}})
        chunks = [frame[:3], frame[3:10], frame[10:]]
        assert _run(host_settings, chunks, sent.append) == EXIT_OK
        assert [next(iter(m)) for m in sent] == [
            HOST_STATUS, FILE_DATA, HOST_STATUS,
        ]

    def test_incomplete_frame_at_eof_is_discarded(
        self, host_settings: HostSettings,
    ) -> None:
        """A truncated trailing frame does not fail the session."""
        sent: list[dict[str, Any]] = []
        partial = _frame({"x": 1})[:-2]
        assert _run(host_settings, [partial], sent.append) == EXIT_OK
        assert len(sent) == 2

    def test_oversized_frame_is_fatal(
        self, tmp_path: Path,
    ) -> None:
        """A length prefix over the limit terminates with code 1."""
        settings = HostSettings(
            tmp_dir=tmp_path, log_file=None, pid=7, max_message_size=16,
        )
        sent: list[dict[str, Any]] = []
        chunk = struct.pack("=I", 17) + b"x" * 17
        assert _run(settings, [chunk], sent.append) == EXIT_FAILURE
        assert _statuses(sent)[-1] == {
            "pid": "7", "status": STATUS_EXIT, "exit": EXIT_FAILURE,
        }
        assert not settings.tmp_root.exists()

    def test_invalid_json_is_fatal(
        self, host_settings: HostSettings,
    ) -> None:
        """A frame body that is not JSON terminates with code 1."""
        sent: list[dict[str, Any]] = []
        body = b"{nope"
        chunk = struct.pack("=I", len(body)) + body
        assert _run(host_settings, [chunk], sent.append) == EXIT_FAILURE
        assert _statuses(sent)[-1]["exit"] == EXIT_FAILURE

    def test_unencodable_reply_is_fatal(
        self,
        host_settings: HostSettings,
        descriptor: dict[str, object],
    ) -> None:
        """An EncodingError raised while replying terminates the host."""
        sent: list[dict[str, Any]] = []

        def emit(msg: dict[str, Any]) -> None:
            if FILE_DATA in msg:
                raise EncodingError("Cannot encode native message: test")
            sent.append(msg)

        message = {TMP_FILE_CREATE: {"data": descriptor, "value": "x"}}
        assert _run(host_settings, [_frame(message)], emit) == EXIT_FAILURE
        assert _statuses(sent)[-1]["exit"] == EXIT_FAILURE

    def test_prepare_failure_exits_without_ready(
        self, host_settings: HostSettings, mocker: MockerFixture,
    ) -> None:
        """If the temp root cannot be created the host never gets ready."""
        mocker.patch(
            "exeditor.native_host.io_ops.makedirs",
            return_value=IOFailure(
                HostError(
                    operation="io_ops.makedirs",
                    error_type=FILESYSTEM_ERROR,
                    message="permission denied",
                ),
            ),
        )
        sent: list[dict[str, Any]] = []
        assert _run(host_settings, [], sent.append) == EXIT_FAILURE
        assert [s["status"] for s in _statuses(sent)] == [STATUS_EXIT]

    def test_eof_waits_for_running_editor(
        self,
        host_settings: HostSettings,
        descriptor: dict[str, object],
        tmp_path: Path,
    ) -> None:
        """Exit waits until a spawned editor has finished."""
        if os.name == "nt":
            pytest.skip("shell script editor stub needs a POSIX shell")
        marker = tmp_path / "editor-done"
        script = tmp_path / "slow-editor.sh"
        script.write_text(f'#!/bin/sh\nsleep 0.2\necho "$1" > "{marker}"\n')
        script.chmod(script.stat().st_mode | stat.S_IXUSR)

        def configure(host: NativeHost) -> None:
            host.state.config = EditorConfig(editorPath=str(script))

        sent: list[dict[str, Any]] = []
        message = {TMP_FILE_CREATE: {"data": descriptor, "value": "x"}}
        code = _run(
            host_settings, [_frame(message)], sent.append, configure=configure,
        )
        assert code == EXIT_OK
        assert marker.read_text().strip().endswith("1.txt")

    def test_stop_on_signal(self, host_settings: HostSettings) -> None:
        """A signal stops a waiting host with 128 + signum."""
        sent: list[dict[str, Any]] = []

        async def scenario() -> int:
            reader = asyncio.StreamReader()
            host = NativeHost(host_settings, reader, sent.append)
            asyncio.get_running_loop().call_later(
                0.05, host.stop, signal.SIGTERM,
            )
            return await host.run()

        code = asyncio.run(scenario())
        assert code == 128 + signal.SIGTERM
        assert _statuses(sent)[-1]["exit"] == 128 + signal.SIGTERM
        assert not host_settings.tmp_root.exists()


class TestMainCommand:
    """Tests for the click entry point."""

    def test_accepts_browser_arguments(
        self, tmp_path: Path, mocker: MockerFixture,
    ) -> None:
        """Extension origin and window arguments are ignored."""
        run_host = mocker.patch(
            "exeditor.native_host.main.run_host",
            new=mocker.AsyncMock(return_value=0),
        )
        log_file = tmp_path / "logs" / "host.log"
        result = CliRunner().invoke(main, [
            "--tmp-dir", str(tmp_path),
            "--log-file", str(log_file),
            "chrome-extension://abcdefghijklmnop/",
            "--parent-window=0",
        ])
        assert result.exit_code == 0, result.output
        (settings,) = run_host.call_args.args
        assert settings.tmp_dir == tmp_path
        assert settings.log_file == log_file
        assert settings.debug is False

    def test_exit_code_passed_through(
        self, tmp_path: Path, mocker: MockerFixture,
    ) -> None:
        """The host's exit code becomes the process exit code."""
        mocker.patch(
            "exeditor.native_host.main.run_host",
            new=mocker.AsyncMock(return_value=143),
        )
        result = CliRunner().invoke(
            main, ["--log-file", str(tmp_path / "host.log")],
        )
        assert result.exit_code == 143

    def test_settings_from_environment(
        self, tmp_path: Path, mocker: MockerFixture,
    ) -> None:
        """EXEDITOR_* variables configure the host."""
        run_host = mocker.patch(
            "exeditor.native_host.main.run_host",
            new=mocker.AsyncMock(return_value=0),
        )
        result = CliRunner().invoke(main, [], env={
            "EXEDITOR_TMP_DIR": str(tmp_path),
            "EXEDITOR_MAX_MESSAGE_SIZE": "2048",
            "EXEDITOR_LOG_FILE": str(tmp_path / "host.log"),
            "EXEDITOR_DEBUG": "1",
        })
        assert result.exit_code == 0, result.output
        (settings,) = run_host.call_args.args
        assert settings.tmp_dir == tmp_path
        assert settings.max_message_size == 2048
        assert settings.debug is True

    def test_rejects_non_positive_message_size(self) -> None:
        """--max-message-size must be at least 1."""
        result = CliRunner().invoke(main, ["--max-message-size", "0"])
        assert result.exit_code == 2
