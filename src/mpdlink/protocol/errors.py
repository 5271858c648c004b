"""Exceptions raised by the protocol engine."""

from __future__ import annotations

from .messages import AckCode, Failure


class MPDLinkError(Exception):
    """Base class for all mpdlink errors."""


class FramingError(MPDLinkError):
    """The byte stream or token sequence violates the wire format."""


class ProtocolSyncError(MPDLinkError):
    """A response arrived while no request was waiting for one."""


class NotConnectedError(MPDLinkError):
    """A command was submitted without a ready session."""


class ConnectionLostError(MPDLinkError, ConnectionError):
    """The session was torn down before the request was answered."""


class DaemonError(MPDLinkError):
    """The daemon rejected a command with an ``ACK`` line."""

    def __init__(self, code: int, message: str, index: int = 0, command: str = ""):
        super().__init__(f"[{code}@{index}] {{{command}}} {message}")
        self.code = code
        self.message = message
        self.index = index
        self.command = command

    @property
    def ack_code(self) -> AckCode | None:
        try:
            return AckCode(self.code)
        except ValueError:
            return None

    @classmethod
    def from_failure(cls, failure: Failure) -> DaemonError:
        return cls(failure.code, failure.message, failure.index, failure.command)
