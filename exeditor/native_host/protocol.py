"""Native messaging protocol framing.

Each frame is a 4-byte unsigned length in native byte order followed
by that many bytes of UTF-8 JSON. Browsers write frames to the host's
stdin in whatever chunks the pipe delivers, so decoding is incremental:
FrameDecoder keeps the trailing partial frame between calls.
"""
from __future__ import annotations

import json
import struct
from typing import Any

from exeditor.native_host.constants import MAX_MESSAGE_SIZE
from exeditor.native_host.errors import EncodingError, ProtocolError

_HEADER = struct.Struct("=I")
_HEADER_SIZE = _HEADER.size


def encode_message(value: Any) -> bytes:
    """Encode a value as a length-prefixed native message.

    Returns 4-byte length prefix + UTF-8 JSON body. Raises
    EncodingError if the value is not JSON serializable.
    """
    try:
        body = json.dumps(value).encode("utf-8")
    except (TypeError, ValueError) as exc:
        msg = f"Cannot encode native message: {exc}"
        raise EncodingError(msg) from exc
    return _HEADER.pack(len(body)) + body


class FrameDecoder:
    """Incremental decoder for the inbound byte stream.

    Owns the decode buffer for one connection. Not safe to share
    between streams.
    """

    def __init__(self, max_size: int = MAX_MESSAGE_SIZE) -> None:
        self.max_size = max_size
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet decoded."""
        return len(self._buffer)

    def reset(self) -> None:
        """Discard any buffered bytes."""
        self._buffer.clear()

    def decode(self, chunk: bytes) -> list[Any]:
        """Append a chunk and return every complete message.

        The returned list preserves arrival order. A partial trailing
        frame stays buffered for the next call. Raises ProtocolError
        (after resetting the buffer) on an oversized length prefix or
        a body that is not UTF-8 JSON.
        """
        self._buffer.extend(chunk)
        messages: list[Any] = []
        while len(self._buffer) >= _HEADER_SIZE:
            (length,) = _HEADER.unpack_from(self._buffer)
            if length > self.max_size:
                self.reset()
                msg = (
                    f"Native message length {length} exceeds"
                    f" maximum of {self.max_size} bytes"
                )
                raise ProtocolError(msg)
            end = _HEADER_SIZE + length
            if len(self._buffer) < end:
                break
            body = bytes(self._buffer[_HEADER_SIZE:end])
            del self._buffer[:end]
            messages.append(self._parse(body))
        return messages

    def _parse(self, body: bytes) -> Any:
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.reset()
            msg = f"Invalid JSON in native message: {exc}"
            raise ProtocolError(msg) from exc
