"""Pytest configuration and fixtures for mpdlink tests."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Generator

import pytest

from mpdlink.protocol.scheduler import MPDProtocol

GREETING = b"OK MPD 0.23.5\n"


class FakeTransport:
    """In-memory transport: records writes and replays pushed chunks."""

    def __init__(self):
        self.sent = bytearray()
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    @property
    def sent_lines(self) -> list[str]:
        return self.sent.decode("utf-8").splitlines()

    def clear_sent(self) -> None:
        self.sent.clear()

    def push(self, data: bytes) -> None:
        self._incoming.put_nowait(data)

    def finish(self) -> None:
        self._incoming.put_nowait(None)

    def fail(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    def send(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionError("Transport is closed")
        self.sent += data

    async def chunks(self):
        while True:
            item = await self._incoming.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def close(self) -> None:
        self.closed = True


class FakeDaemon(FakeTransport):
    """Scripted daemon answering commands from a reply table.

    Replies are the lines a command produces, without the trailing ``OK``;
    a reply starting with ``ACK`` is sent as the failure line. Unknown commands
    fail with an ``ACK [5@i]``.
    """

    def __init__(self, replies: dict[str, bytes | str] | None = None):
        super().__init__()
        self.replies = dict(replies or {})
        self.received: list[str] = []
        self.idling = False
        self.pending_changes: list[str] = []
        self._list: list[str] | None = None
        self.push(GREETING)

    def send(self, data: bytes) -> None:
        super().send(data)
        for line in data.decode("utf-8").splitlines():
            self._handle_line(line)

    def trigger(self, *subsystems: str) -> None:
        """Report subsystem changes, now if idling, otherwise at the next idle."""
        self.pending_changes.extend(subsystems)
        if self.idling:
            self._finish_idle()

    def _handle_line(self, line: str) -> None:
        if line == "noidle":
            if self.idling:
                self._finish_idle()
            return
        self.received.append(line)

        if line == "command_list_ok_begin":
            self._list = []
        elif line == "command_list_end":
            self._run_list(self._list or [])
            self._list = None
        elif self._list is not None:
            self._list.append(line)
        elif line == "idle":
            self.idling = True
            if self.pending_changes:
                self._finish_idle()
        else:
            reply = self._reply(line, 0)
            self.push(reply if reply.startswith(b"ACK") else reply + b"OK\n")

    def _run_list(self, commands: list[str]) -> None:
        out = b""
        for index, command in enumerate(commands):
            reply = self._reply(command, index)
            if reply.startswith(b"ACK"):
                self.push(out + reply)
                return
            out += reply + b"list_OK\n"
        self.push(out + b"OK\n")

    def _reply(self, command: str, index: int) -> bytes:
        if command not in self.replies:
            verb = command.split(" ")[0]
            return f'ACK [5@{index}] {{}} unknown command "{verb}"\n'.encode()
        reply = self.replies[command]
        if isinstance(reply, str):
            reply = reply.encode("utf-8")
        if reply.startswith(b"ACK"):
            reply = reply.replace(b"@0]", f"@{index}]".encode(), 1)
            return reply if reply.endswith(b"\n") else reply + b"\n"
        return reply

    def _finish_idle(self) -> None:
        self.idling = False
        body = "".join(f"changed: {name}\n" for name in self.pending_changes)
        self.pending_changes = []
        self.push(body.encode() + b"OK\n")


async def spin(times: int = 20) -> None:
    """Let queued callbacks and the reader task run."""
    for _ in range(times):
        await asyncio.sleep(0)


async def connect(
    protocol: MPDProtocol, transport: FakeTransport, greeting: bytes = GREETING
):
    """Connect ``protocol`` and feed the greeting directly."""
    task = asyncio.ensure_future(protocol.connect(transport))
    await asyncio.sleep(0)
    protocol.data_received(greeting)
    return await task


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def protocol() -> MPDProtocol:
    return MPDProtocol()


@pytest.fixture
def temp_config_home(tmp_path: Path) -> Generator[Path, None, None]:
    """Point XDG_CONFIG_HOME at a temporary directory."""
    config_dir = tmp_path / "mpdlink"
    config_dir.mkdir(parents=True)

    old_env = os.environ.get("XDG_CONFIG_HOME")
    os.environ["XDG_CONFIG_HOME"] = str(tmp_path)

    yield config_dir

    if old_env:
        os.environ["XDG_CONFIG_HOME"] = old_env
    else:
        os.environ.pop("XDG_CONFIG_HOME", None)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove MPD_HOST / MPD_PORT from the environment."""
    monkeypatch.delenv("MPD_HOST", raising=False)
    monkeypatch.delenv("MPD_PORT", raising=False)
