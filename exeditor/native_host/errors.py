"""Error types for the native messaging host.

Two families:

- HostError: a structured, recoverable failure of one command. Carried
  inside IOFailure by the I/O boundary and by every dispatch action.
  Logged and isolated to the command key that produced it.
- FatalHostError: an exception for conditions that cannot be repaired
  on a live connection (corrupt framing, unserializable output). The
  run loop terminates the host when one escapes.
"""
from __future__ import annotations

from dataclasses import dataclass, field

FILESYSTEM_ERROR = "FilesystemError"
LAUNCH_ERROR = "LaunchError"
CONFIG_ERROR = "ConfigError"

# editor stderr and argv can be long; keep log lines readable
_MAX_DETAIL_LEN = 200


def _shorten(value: object) -> str:
    text = value if isinstance(value, str) else repr(value)
    if len(text) > _MAX_DETAIL_LEN:
        return text[: _MAX_DETAIL_LEN - 3] + "..."
    return text


@dataclass(frozen=True)
class HostError:
    """Structured error for a failed host operation."""

    operation: str
    error_type: str
    message: str
    context: dict[str, object] = field(default_factory=dict)

    def __str__(self) -> str:
        """One log line: type, operation, message, then context."""
        text = f"{self.error_type} in {self.operation}: {self.message}"
        if not self.context:
            return text
        details = ", ".join(
            f"{key}={_shorten(value)}" for key, value in self.context.items()
        )
        return f"{text} ({details})"


class FatalHostError(Exception):
    """Base class for errors that terminate the host."""


class ProtocolError(FatalHostError):
    """Inbound frame is oversized or its payload is not valid JSON."""


class EncodingError(FatalHostError):
    """Outbound message cannot be serialized to JSON."""
