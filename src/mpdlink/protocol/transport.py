"""Byte-channel adapters injected into the protocol engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Protocol

import websockets
from websockets.exceptions import ConnectionClosed

from .messages import DEFAULT_PORT

_logger = logging.getLogger("mpdlink.transport")

CHUNK_SIZE = 64 * 1024


class Transport(Protocol):
    """Capability interface for one open, bidirectional byte channel."""

    def send(self, data: bytes) -> None:
        """Queue bytes for writing, preserving order."""

    def chunks(self) -> AsyncIterator[bytes]:
        """Yield incoming chunks; end on clean close, raise on error."""

    def close(self) -> None:
        """Close the channel. Calling it again has no effect."""


class StreamTransport:
    """Transport over an asyncio stream pair (TCP or Unix socket)."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        chunk_size: int = CHUNK_SIZE,
    ):
        self._reader = reader
        self._writer = writer
        self.chunk_size = chunk_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError("Transport is closed")
        self._writer.write(data)

    async def chunks(self) -> AsyncIterator[bytes]:
        while not self._closed:
            chunk = await self._reader.read(self.chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()


class WebSocketTransport:
    """Transport over a WebSocket carrying raw protocol bytes.

    Frames are written by a single writer task so that ``send`` stays
    synchronous and ordered.
    """

    def __init__(self, connection: Any):
        self._connection = connection
        self._outgoing: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False
        self._writer_task = asyncio.get_running_loop().create_task(self._write_loop())

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError("Transport is closed")
        self._outgoing.put_nowait(data)

    async def _write_loop(self) -> None:
        try:
            while True:
                data = await self._outgoing.get()
                if data is None:
                    break
                await self._connection.send(data)
        except ConnectionClosed as exc:
            _logger.warning(f"WebSocket closed while sending: {exc}")
        except Exception:
            _logger.exception("WebSocket writer failed")
        finally:
            # later sends must fail instead of filling a queue nobody reads
            self._closed = True
            await self._connection.close()

    async def chunks(self) -> AsyncIterator[bytes]:
        async for message in self._connection:
            yield message.encode("utf-8") if isinstance(message, str) else message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._outgoing.put_nowait(None)


async def open_tcp(host: str = "localhost", port: int = DEFAULT_PORT) -> StreamTransport:
    _logger.debug(f"Opening TCP connection to {host}:{port}")
    reader, writer = await asyncio.open_connection(host, port)
    return StreamTransport(reader, writer)


async def open_unix(path: str) -> StreamTransport:
    _logger.debug(f"Opening Unix socket {path}")
    reader, writer = await asyncio.open_unix_connection(path)
    return StreamTransport(reader, writer)


async def open_websocket(url: str, **kwargs: Any) -> WebSocketTransport:
    _logger.debug(f"Opening WebSocket {url}")
    connection = await websockets.connect(url, subprotocols=["binary"], **kwargs)
    return WebSocketTransport(connection)
