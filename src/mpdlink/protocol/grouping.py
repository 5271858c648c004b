"""Groups decoded tokens into protocol-level response units."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Iterator

from .errors import FramingError
from .messages import (
    ACK_PREFIX,
    LIST_OK,
    OK,
    Failure,
    Greeting,
    ResponseUnit,
    Success,
    Token,
)

GREETING_RE = re.compile(r"^OK (\S+) ([0-9]+)\.([0-9]+)\.([0-9]+)")
FAILURE_RE = re.compile(r"^ACK \[([0-9]+)@([0-9]+)\] \{([^}]*)\} ?(.*)$")


class GrouperState(str, Enum):
    AWAITING_GREETING = "awaiting_greeting"
    ACTIVE = "active"


def parse_greeting(line: str) -> Greeting | None:
    """Parse ``OK <ident> <major>.<minor>.<patch>``."""
    match = GREETING_RE.match(line)
    if not match:
        return None
    major, minor, patch = (int(part) for part in match.group(2, 3, 4))
    return Greeting(ident=match.group(1), version=(major, minor, patch))


def parse_failure(line: str) -> Failure:
    """Parse ``ACK [<code>@<index>] {<command>} <message>``."""
    match = FAILURE_RE.match(line)
    if not match:
        return Failure(code=-1, message=f"Unknown error: {line}")
    return Failure(
        code=int(match.group(1)),
        index=int(match.group(2)),
        command=match.group(3),
        message=match.group(4),
    )


class ResponseGrouper:
    """Turns the token sequence of one connection into response units.

    A command list answered in ``command_list_ok_begin`` mode produces one
    ``Success`` per ``list_OK``; the closing ``OK`` of the list emits nothing.
    An ``ACK`` ends the unit (and any open list) with a ``Failure``.
    """

    def __init__(self) -> None:
        self.state = GrouperState.AWAITING_GREETING
        self._in_list = False
        self._lines: list[str] = []
        self._binary: bytes | None = None

    @property
    def in_list(self) -> bool:
        return self._in_list

    def feed(self, token: Token) -> ResponseUnit | None:
        """Consume one token, returning the unit it completes, if any."""
        if self.state is GrouperState.AWAITING_GREETING:
            return self._feed_greeting(token)

        if isinstance(token, bytes):
            if self._binary is not None:
                raise FramingError("More than one binary payload in a single response")
            self._binary = token
            return None

        if token == OK:
            if self._in_list:
                self._in_list = False
                self._reset()
                return None
            return self._complete()

        if token == LIST_OK:
            self._in_list = True
            return self._complete()

        if token.startswith(ACK_PREFIX):
            self._in_list = False
            self._reset()
            return parse_failure(token)

        self._lines.append(token)
        return None

    def _feed_greeting(self, token: Token) -> Greeting:
        greeting = parse_greeting(token) if isinstance(token, str) else None
        if greeting is None:
            raise FramingError(f"Unexpected initial message: {token!r}")
        self.state = GrouperState.ACTIVE
        return greeting

    def _complete(self) -> Success:
        unit = Success(lines=self._lines, binary=self._binary)
        self._reset()
        return unit

    def _reset(self) -> None:
        self._lines = []
        self._binary = None


def group_tokens(tokens: Iterable[Token]) -> Iterator[ResponseUnit]:
    """Group a whole token sequence with a fresh grouper."""
    grouper = ResponseGrouper()
    for token in tokens:
        unit = grouper.feed(token)
        if unit is not None:
            yield unit
