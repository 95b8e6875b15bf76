"""Editor argument tokenizer.

Turns the command-line arguments a user types into the extension's
editor settings into a list of discrete argv entries. Nothing here
ever reaches a shell: the result is passed straight to the process
primitive, so quoting only decides where arguments split.

Splitting is a character scanner with four states. Each raw token
keeps its quotes and backslashes; normalize_arg then strips them.
"""
from __future__ import annotations

import enum
from collections.abc import Sequence

_QUOTES = "\"'"


class _State(enum.Enum):
    BARE = enum.auto()
    SINGLE = enum.auto()
    DOUBLE = enum.auto()
    ESCAPE = enum.auto()


def split_raw(text: str) -> list[str]:
    """Split text on whitespace outside quotes and escapes.

    Tokens are returned verbatim, quotes and backslashes included.
    A backslash outside quotes escapes the next character, so an
    escaped space does not split. Inside either quote style a
    backslash escapes the next character too, which lets a quoted
    span contain its own quote character. An unterminated quote runs
    to the end of the text.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    state = _State.BARE
    # state to return to once an escaped character is consumed
    resume = _State.BARE
    for char in text:
        if state is _State.ESCAPE:
            current.append(char)
            state = resume
            continue
        if char == "\\":
            current.append(char)
            in_token = True
            resume = state
            state = _State.ESCAPE
            continue
        if state is _State.SINGLE:
            current.append(char)
            if char == "'":
                state = _State.BARE
            continue
        if state is _State.DOUBLE:
            current.append(char)
            if char == '"':
                state = _State.BARE
            continue
        if char.isspace():
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
            continue
        current.append(char)
        in_token = True
        if char == "'":
            state = _State.SINGLE
        elif char == '"':
            state = _State.DOUBLE
    if in_token:
        tokens.append("".join(current))
    return tokens


def _unescape_wrapped(body: str, quote: str) -> str:
    """Unescape the inside of a token wrapped in quote.

    Double quotes: backslash-quote and backslash-backslash collapse.
    Single quotes: only backslash-quote collapses.
    """
    escapable = '"\\' if quote == '"' else "'"
    out: list[str] = []
    i = 0
    while i < len(body):
        char = body[i]
        if (
            char == "\\"
            and i + 1 < len(body)
            and body[i + 1] in escapable
        ):
            out.append(body[i + 1])
            i += 2
            continue
        out.append(char)
        i += 1
    return "".join(out)


def _drop_lone_backslashes(arg: str) -> str:
    """Remove every backslash not followed by another backslash.

    A doubled backslash therefore survives as a single one.
    """
    out: list[str] = []
    for i, char in enumerate(arg):
        if char == "\\" and (i + 1 >= len(arg) or arg[i + 1] != "\\"):
            continue
        out.append(char)
    return "".join(out)


def _strip_quoted_spans(arg: str) -> str:
    """Replace each quoted sub-span with its content.

    Scans left to right; the first quote character seen opens a span
    that closes at the next occurrence of the same character. A quote
    with no partner is kept literally.
    """
    out: list[str] = []
    i = 0
    while i < len(arg):
        char = arg[i]
        if char in _QUOTES:
            end = arg.find(char, i + 1)
            if end != -1:
                out.append(arg[i + 1:end])
                i = end + 1
                continue
        out.append(char)
        i += 1
    return "".join(out)


def normalize_arg(arg: str) -> str:
    """Normalize one raw token into its final argv form.

    A token wholly wrapped in one quote style loses the outer quotes
    and has its escaped quotes unescaped. Any other token loses its
    lone backslashes, then the quotes of its embedded quoted spans.
    """
    stripped = arg.strip()
    if (
        len(stripped) >= 2  # noqa: PLR2004
        and stripped[0] in _QUOTES
        and stripped[-1] == stripped[0]
    ):
        return _unescape_wrapped(stripped[1:-1], stripped[0])
    return _strip_quoted_spans(_drop_lone_backslashes(arg))


def tokenize(raw: str | Sequence[str] | None) -> list[str]:
    """Tokenize an argument string or an already-split sequence.

    A string is split with split_raw. A sequence is taken as one
    argument per element and never split further. Every token is
    then passed through normalize_arg. Anything else yields [].
    """
    if isinstance(raw, str):
        return [normalize_arg(token) for token in split_raw(raw)]
    if isinstance(raw, Sequence):
        return [normalize_arg(item) for item in raw if isinstance(item, str)]
    return []


def concat_args(*args: str | Sequence[str] | None) -> list[str]:
    """Tokenize each argument group and concatenate the results."""
    return [token for arg in args for token in tokenize(arg)]
