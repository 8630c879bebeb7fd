"""Primitives of the set-style configuration language.

Junos renders its configuration as flat statements:

    set applications application-set "web" application junos-http
    delete security address-book "global" address h1

Values containing spaces are double-quoted; embedded double quotes are
backslash-escaped. The helpers below are shared by every codec so the
quoting rule is the same when generating and when parsing.
"""
import re
from typing import Callable, Iterator, Optional, TypeVar

from .errors import NotEnoughFieldsError, ParseError

SET_LS = "set "
DELETE_LS = "delete "

START_MARKER = "<configuration-output>"
END_MARKER = "</configuration-output>"

CMD_SHOW_CONFIG = "show configuration "
PIPE_DISPLAY_SET = " | display set"
PIPE_DISPLAY_SET_RELATIVE = " | display set relative"

EMPTY_OUTPUT = ""

_INT_RE = re.compile(r"^[+-]?[0-9]+$")

B = TypeVar("B")


def quote(value: str) -> str:
    """Wrap a value in double quotes, escaping embedded quotes."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def unquote(token: str) -> str:
    """Strip one surrounding pair of double quotes (inverse of quote())."""
    if len(token) >= 2 and token[0] == '"' and token[-1] == '"':
        inner = token[1:-1]
        out = []
        escaped = False
        for ch in inner:
            if escaped:
                out.append(ch)
                escaped = False
            elif ch == "\\":
                escaped = True
            else:
                out.append(ch)
        return "".join(out)
    return token


def split_fields(text: str) -> list[str]:
    """Split on spaces, keeping double-quoted runs (with escapes) together.

    Returned tokens keep their quotes; pass them through unquote().
    """
    tokens: list[str] = []
    current: list[str] = []
    in_quotes = False
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == "\\" and in_quotes:
            current.append(ch)
            escaped = True
            continue
        if ch == '"':
            in_quotes = not in_quotes
            current.append(ch)
            continue
        if ch == " " and not in_quotes:
            if current:
                tokens.append("".join(current))
                current = []
            continue
        current.append(ch)
    if current:
        tokens.append("".join(current))
    return tokens


def first_element(text: str) -> tuple[str, str]:
    """Return (unquoted first token, remainder of the line).

    Used for block disambiguation: the first token of a repeated block
    line is the block's identifier.
    """
    tokens = split_fields(text)
    if not tokens:
        return "", ""
    head = tokens[0]
    rest = text.lstrip(" ")[len(head):].lstrip(" ")
    return unquote(head), rest


def cut_prefix(text: str, prefix: str) -> tuple[str, bool]:
    if text.startswith(prefix):
        return text[len(prefix):], True
    return text, False


def cut_suffix(text: str, suffix: str) -> tuple[str, bool]:
    if text.endswith(suffix):
        return text[: -len(suffix)], True
    return text, False


def require_fields(text: str, count: int, attribute: str) -> list[str]:
    """Tokenize text and fail the read when fewer than `count` fields exist."""
    tokens = split_fields(text)
    if len(tokens) < count:
        raise NotEnoughFieldsError(attribute, text)
    return tokens


def conv_atoi(
    value: str,
    attribute: str,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """Parse a device integer; format and range errors are fatal to the read."""
    value = unquote(value)
    if not _INT_RE.match(value):
        raise ParseError(
            f"converting value {value!r} to integer for {attribute}: invalid syntax",
            attribute=attribute,
        )
    number = int(value)
    if (minimum is not None and number < minimum) or (maximum is not None and number > maximum):
        raise ParseError(
            f"converting value {value!r} to integer for {attribute}: value out of range",
            attribute=attribute,
        )
    return number


def iter_config_lines(dump: str) -> Iterator[str]:
    """Yield the interior lines of a set-style dump with `set ` stripped.

    When the dump carries the start marker everything up to and including
    it is ignored; the end marker stops the iteration. Blank lines are
    skipped.
    """
    lines = dump.split("\n")
    for index, line in enumerate(lines):
        if START_MARKER in line:
            lines = lines[index + 1:]
            break
    for line in lines:
        if END_MARKER in line:
            break
        line = line.rstrip()
        if not line:
            continue
        text, _ = cut_prefix(line, SET_LS)
        yield text


def show_config_command(path: str, relative: bool = False) -> str:
    pipe = PIPE_DISPLAY_SET_RELATIVE if relative else PIPE_DISPLAY_SET
    return CMD_SHOW_CONFIG + path + pipe


def merge_block(
    blocks: list[B],
    key_attr: str,
    key: str,
    factory: Callable[[str], B],
) -> B:
    """Return the block already accumulated for `key`, or append a new one.

    Attributes of one block may arrive on separate lines; they must merge
    into a single block instead of creating duplicates.
    """
    for block in blocks:
        if getattr(block, key_attr) == key:
            return block
    block = factory(key)
    blocks.append(block)
    return block
