"""mpdlink - asyncio client for the Music Player Daemon protocol."""

from .client import MPDClient, build_command, quote
from .protocol import (
    AckCode,
    ConnectionLostError,
    DaemonError,
    Event,
    EventType,
    FramingError,
    Greeting,
    MPDLinkError,
    MPDProtocol,
    NotConnectedError,
    ProtocolSyncError,
    SessionState,
    Success,
)

__version__ = "0.1.0"

__all__ = [
    "MPDClient",
    "MPDProtocol",
    "SessionState",
    "Greeting",
    "Success",
    "AckCode",
    "Event",
    "EventType",
    "MPDLinkError",
    "FramingError",
    "ProtocolSyncError",
    "NotConnectedError",
    "ConnectionLostError",
    "DaemonError",
    "build_command",
    "quote",
]
