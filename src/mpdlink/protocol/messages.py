"""Protocol message definitions for the MPD text protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Union


# A decoded token is either a text line or a raw binary blob.
Token = Union[str, bytes]

DEFAULT_PORT = 6600

GREETING_PREFIX = "OK "
OK = "OK"
LIST_OK = "list_OK"
ACK_PREFIX = "ACK ["
BINARY_PREFIX = "binary: "
CHANGED_PREFIX = "changed: "

IDLE = "idle"
NOIDLE = "noidle"
COMMAND_LIST_OK_BEGIN = "command_list_ok_begin"
COMMAND_LIST_END = "command_list_end"


class AckCode(IntEnum):
    """Error codes carried by ``ACK`` lines."""

    NOT_LIST = 1
    ARG = 2
    PASSWORD = 3
    PERMISSION = 4
    UNKNOWN = 5

    NO_EXIST = 50
    PLAYLIST_MAX = 51
    SYSTEM = 52
    PLAYLIST_LOAD = 53
    UPDATE_ALREADY = 54
    PLAYER_SYNC = 55
    EXIST = 56


class EventType(str, Enum):
    """Notifications emitted by a protocol session."""

    READY = "ready"
    CHANGED = "changed"
    SUBSYSTEM_CHANGED = "subsystem_changed"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class Greeting:
    """First line sent by the daemon after the connection opens."""

    ident: str
    version: tuple[int, int, int]


@dataclass
class Success:
    """A completed response: content lines and an optional binary payload."""

    lines: list[str] = field(default_factory=list)
    binary: bytes | None = None

    def __repr__(self) -> str:
        binary = f"{len(self.binary)} bytes" if self.binary is not None else None
        return f"Success(lines={self.lines!r}, binary={binary})"


@dataclass(frozen=True)
class Failure:
    """A parsed ``ACK`` line."""

    code: int
    message: str
    index: int = 0
    command: str = ""

    @property
    def ack_code(self) -> AckCode | None:
        try:
            return AckCode(self.code)
        except ValueError:
            return None


ResponseUnit = Union[Greeting, Success, Failure]


@dataclass
class Event:
    """Notification delivered to registered handlers."""

    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            k: sorted(v) if isinstance(v, (set, frozenset)) else v
            for k, v in self.data.items()
        }
        if isinstance(data.get("reason"), BaseException):
            data["reason"] = str(data["reason"])
        return {"event": self.event.value, "data": data}
