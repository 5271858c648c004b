"""mpdlink protocol engine: framing, grouping and request scheduling."""

from .errors import (
    ConnectionLostError,
    DaemonError,
    FramingError,
    MPDLinkError,
    NotConnectedError,
    ProtocolSyncError,
)
from .framing import FrameDecoder, decode_chunks
from .grouping import ResponseGrouper, group_tokens
from .messages import (
    DEFAULT_PORT,
    AckCode,
    Event,
    EventType,
    Failure,
    Greeting,
    ResponseUnit,
    Success,
    Token,
)
from .scheduler import MPDProtocol, Request, Session, SessionState
from .transport import (
    StreamTransport,
    Transport,
    WebSocketTransport,
    open_tcp,
    open_unix,
    open_websocket,
)

__all__ = [
    "DEFAULT_PORT",
    "Token",
    "Greeting",
    "Success",
    "Failure",
    "ResponseUnit",
    "AckCode",
    "Event",
    "EventType",
    "MPDLinkError",
    "FramingError",
    "ProtocolSyncError",
    "NotConnectedError",
    "ConnectionLostError",
    "DaemonError",
    "FrameDecoder",
    "decode_chunks",
    "ResponseGrouper",
    "group_tokens",
    "MPDProtocol",
    "Request",
    "Session",
    "SessionState",
    "Transport",
    "StreamTransport",
    "WebSocketTransport",
    "open_tcp",
    "open_unix",
    "open_websocket",
]
