"""High-level client: connection helpers and a thin command layer."""

from __future__ import annotations

import asyncio
import logging

from .config import ConnectionConfig
from .parsing import parse_pairs, values
from .protocol.errors import MPDLinkError
from .protocol.messages import DEFAULT_PORT, Greeting, Success
from .protocol.scheduler import MPDProtocol
from .protocol.transport import open_tcp, open_unix, open_websocket

_logger = logging.getLogger("mpdlink.client")


def quote(arg: object) -> str:
    """Quote a command argument, escaping backslashes and double quotes."""
    text = str(arg).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def build_command(verb: str, *args: object) -> str:
    return " ".join([verb, *(quote(arg) for arg in args)])


class MPDClient(MPDProtocol):
    """Protocol engine plus convenience methods for common commands."""

    async def connect_tcp(
        self, host: str = "localhost", port: int = DEFAULT_PORT
    ) -> Greeting:
        return await self.connect(await open_tcp(host, port))

    async def connect_unix(self, path: str) -> Greeting:
        return await self.connect(await open_unix(path))

    async def connect_websocket(self, url: str) -> Greeting:
        return await self.connect(await open_websocket(url))

    async def connect_config(self, config: ConnectionConfig) -> Greeting:
        """Connect using a socket path, a WebSocket URL or host/port, in that order."""
        if config.socket:
            return await self.connect_unix(config.socket)
        if config.url:
            return await self.connect_websocket(config.url)
        return await self.connect_tcp(config.host, config.port)

    async def command(self, text: str, timeout: float | None = None) -> Success:
        """Send one command and wait for its response.

        On timeout the future is cancelled but the request stays queued; its
        late reply is consumed and discarded, which keeps later responses
        correlated.
        """
        future = self.submit(text)
        if timeout is None:
            return await future
        return await asyncio.wait_for(future, timeout)

    # -- Status --------------------------------------------------------------

    async def ping(self) -> None:
        await self.command("ping")

    async def status(self) -> dict[str, str]:
        """Player status and volume as raw key/value pairs."""
        response = await self.command("status")
        records = parse_pairs(response.lines)
        return records[0] if records else {}

    async def current_song(self) -> dict[str, str] | None:
        response = await self.command("currentsong")
        records = parse_pairs(response.lines, ["file"])
        return records[0] if records else None

    async def stats(self) -> dict[str, str]:
        response = await self.command("stats")
        records = parse_pairs(response.lines)
        return records[0] if records else {}

    async def clear_error(self) -> None:
        await self.command("clearerror")

    # -- Reflection ----------------------------------------------------------

    async def commands(self) -> list[str]:
        return values((await self.command("commands")).lines)

    async def not_commands(self) -> list[str]:
        return values((await self.command("notcommands")).lines)

    async def url_handlers(self) -> list[str]:
        return values((await self.command("urlhandlers")).lines)

    async def tag_types(self) -> list[str]:
        return values((await self.command("tagtypes")).lines)

    async def protocol_features(self) -> list[str]:
        return values((await self.command("protocol")).lines)

    async def set_binary_limit(self, size: int) -> None:
        await self.command(f"binarylimit {int(size)}")

    # -- Binary transfers ----------------------------------------------------

    async def album_art(self, uri: str) -> bytes | None:
        """Cover file stored next to the song ``uri``."""
        return await self._read_binary("albumart", uri)

    async def read_picture(self, uri: str) -> bytes | None:
        """Picture embedded in the tags of ``uri``; ``None`` if there is none."""
        return await self._read_binary("readpicture", uri)

    async def _read_binary(self, verb: str, uri: str) -> bytes | None:
        data = bytearray()
        while True:
            response = await self.command(f"{build_command(verb, uri)} {len(data)}")
            records = parse_pairs(response.lines)
            fields = records[0] if records else {}
            if response.binary is None or "size" not in fields:
                if not data:
                    return None
                raise MPDLinkError(f"{verb} ended after {len(data)} bytes")

            size = int(fields["size"])
            data += response.binary
            _logger.debug(f"{verb} {uri}: {len(data)}/{size} bytes")
            if len(data) >= size or not response.binary:
                return bytes(data)
