"""Request scheduling and response correlation for one daemon connection.

The daemon answers strictly in order and processes one logical unit at a time:
a single command, one command list, or an ``idle`` subscription. The scheduler
therefore keeps at most one unit on the wire. Work submitted while a unit is in
flight is queued and sent as a single command list once the wire is quiet. When
nothing is pending it subscribes to ``idle`` and cancels the subscription with
``noidle`` as soon as new work arrives.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Union

from .errors import (
    ConnectionLostError,
    DaemonError,
    FramingError,
    MPDLinkError,
    NotConnectedError,
    ProtocolSyncError,
)
from .framing import FrameDecoder
from .grouping import ResponseGrouper
from .messages import (
    CHANGED_PREFIX,
    COMMAND_LIST_END,
    COMMAND_LIST_OK_BEGIN,
    IDLE,
    NOIDLE,
    Event,
    EventType,
    Greeting,
    ResponseUnit,
    Success,
)
from .transport import Transport

_logger = logging.getLogger("mpdlink.protocol")

Outcome = Union[Success, BaseException]
EventHandler = Callable[[Event], None]
SubsystemHandler = Callable[[str], None]


class SessionState(str, Enum):
    NOT_CONNECTED = "not_connected"
    AWAITING_GREETING = "awaiting_greeting"
    READY = "ready"
    IDLE = "idle"
    DISPATCHED = "dispatched"


class Request:
    """A command owned by the scheduler until its single settlement."""

    __slots__ = ("command", "_settle")

    def __init__(self, command: str, settle: Callable[[Outcome], None]):
        self.command = command
        self._settle: Callable[[Outcome], None] | None = settle

    @property
    def settled(self) -> bool:
        return self._settle is None

    def settle(self, outcome: Outcome) -> None:
        settle, self._settle = self._settle, None
        if settle is None:
            raise RuntimeError(f"Request {self.command!r} already settled")
        settle(outcome)

    def __repr__(self) -> str:
        return f"Request({self.command!r}, settled={self.settled})"


def future_settler(future: asyncio.Future[Success]) -> Callable[[Outcome], None]:
    """Settle ``future`` with a response, ignoring it if the caller cancelled."""

    def settle(outcome: Outcome) -> None:
        if future.done():
            _logger.debug("Discarding reply for a cancelled request")
            return
        if isinstance(outcome, BaseException):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)

    return settle


def changed_subsystems(lines: Iterable[str]) -> list[str]:
    """Subsystem names from ``changed: <name>`` lines, in order, without repeats."""
    names = (
        line[len(CHANGED_PREFIX):] for line in lines if line.startswith(CHANGED_PREFIX)
    )
    return list(dict.fromkeys(names))


def encode_batch(commands: list[str]) -> bytes:
    """Wire form of a batch: a bare line for one command, a command list otherwise."""
    if len(commands) == 1:
        text = commands[0] + "\n"
    else:
        body = "".join(command + "\n" for command in commands)
        text = f"{COMMAND_LIST_OK_BEGIN}\n{body}{COMMAND_LIST_END}\n"
    return text.encode("utf-8")


@dataclass
class Session:
    """State of one connection. Never reused after teardown."""

    transport: Transport
    decoder: FrameDecoder = field(default_factory=FrameDecoder)
    grouper: ResponseGrouper = field(default_factory=ResponseGrouper)
    ready: bool = False
    idle: bool = False
    idle_suppressed: bool = False
    dispatch_scheduled: bool = False
    greeting: Greeting | None = None
    queued: deque[Request] = field(default_factory=deque)
    in_flight: deque[Request] = field(default_factory=deque)


class MPDProtocol:
    """Client side of the daemon's line protocol over a single transport."""

    def __init__(self) -> None:
        self._session: Session | None = None
        self._reader_task: asyncio.Task | None = None
        self._greeting_future: asyncio.Future[Greeting] | None = None
        self._event_handlers: list[tuple[EventType | None, EventHandler]] = []
        self._subsystem_handlers: dict[str, list[SubsystemHandler]] = {}

    # -- State -------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        session = self._session
        if session is None:
            return SessionState.NOT_CONNECTED
        if not session.ready:
            return SessionState.AWAITING_GREETING
        if session.idle:
            return SessionState.IDLE
        if session.in_flight:
            return SessionState.DISPATCHED
        return SessionState.READY

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def is_ready(self) -> bool:
        return self._session is not None and self._session.ready

    @property
    def greeting(self) -> Greeting | None:
        return self._session.greeting if self._session else None

    @property
    def version(self) -> tuple[int, int, int] | None:
        """Version triple of the connected daemon."""
        greeting = self.greeting
        return greeting.version if greeting else None

    # -- Notifications -----------------------------------------------------

    def add_event_handler(
        self, handler: EventHandler, event_type: EventType | None = None
    ) -> None:
        """Register a handler for one event type, or for all events."""
        self._event_handlers.append((event_type, handler))

    def remove_event_handler(self, handler: EventHandler) -> None:
        self._event_handlers = [
            entry for entry in self._event_handlers if entry[1] != handler
        ]

    def add_subsystem_handler(self, subsystem: str, handler: SubsystemHandler) -> None:
        """Register a handler called when ``subsystem`` reports a change."""
        self._subsystem_handlers.setdefault(subsystem, []).append(handler)

    def remove_subsystem_handler(
        self, subsystem: str, handler: SubsystemHandler
    ) -> None:
        handlers = self._subsystem_handlers.get(subsystem, [])
        if handler in handlers:
            handlers.remove(handler)

    def _emit(self, event: Event) -> None:
        for event_type, handler in list(self._event_handlers):
            if event_type is not None and event_type is not event.event:
                continue
            try:
                handler(event)
            except Exception:
                _logger.exception(f"Event handler failed for {event.event.value}")

        if event.event is EventType.SUBSYSTEM_CHANGED:
            subsystem = event.data["subsystem"]
            for handler in list(self._subsystem_handlers.get(subsystem, ())):
                try:
                    handler(subsystem)
                except Exception:
                    _logger.exception(f"Subsystem handler failed for {subsystem}")

    # -- Connection lifecycle ----------------------------------------------

    async def connect(self, transport: Transport) -> Greeting:
        """Start a session on ``transport`` and wait for the daemon's greeting."""
        if self._session is not None:
            raise MPDLinkError("Client is already connected")

        loop = asyncio.get_running_loop()
        session = Session(transport=transport)
        greeting: asyncio.Future[Greeting] = loop.create_future()
        self._session = session
        self._greeting_future = greeting
        self._reader_task = loop.create_task(self._read_loop(session))

        try:
            return await greeting
        except asyncio.CancelledError:
            self._teardown(session, ConnectionLostError("Connect cancelled"))
            raise

    def disconnect(self, message: str = "Disconnected") -> None:
        """Tear down the session, failing every outstanding request."""
        if self._session is not None:
            self._teardown(self._session, ConnectionLostError(message))

    async def _read_loop(self, session: Session) -> None:
        try:
            async for chunk in session.transport.chunks():
                if self._session is not session:
                    return
                self.data_received(chunk)
                if self._session is not session:
                    return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _logger.warning(f"Transport error: {exc}")
            error = ConnectionLostError(f"Transport error: {exc}")
            error.__cause__ = exc
            self._teardown(session, error)
            return

        _logger.info("Connection closed by the daemon")
        self._teardown(session, ConnectionLostError("Connection closed"))

    def data_received(self, chunk: bytes) -> None:
        """Decode, group and correlate one chunk of incoming bytes."""
        session = self._session
        if session is None:
            _logger.debug(f"Ignoring {len(chunk)} bytes received without a session")
            return

        try:
            for token in session.decoder.feed(chunk):
                unit = session.grouper.feed(token)
                if unit is not None:
                    self._handle_unit(session, unit)
                if self._session is not session:
                    return
        except (FramingError, ProtocolSyncError) as exc:
            _logger.error(f"Fatal protocol error: {exc}")
            error = ConnectionLostError(str(exc))
            error.__cause__ = exc
            self._teardown(session, error)

    def _teardown(self, session: Session, error: ConnectionLostError) -> None:
        if self._session is not session:
            return
        self._session = None

        pending = [*session.in_flight, *session.queued]
        session.in_flight.clear()
        session.queued.clear()
        session.ready = False
        session.idle = False
        for request in pending:
            request.settle(error)

        greeting = self._greeting_future
        self._greeting_future = None
        if greeting is not None and not greeting.done():
            greeting.set_exception(error)

        try:
            session.transport.close()
        except OSError as exc:
            _logger.debug(f"Error closing transport: {exc}")

        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not _current_task():
            task.cancel()

        _logger.info(f"Session closed: {error}")
        self._emit(Event(EventType.DISCONNECTED, {"reason": error}))

    # -- Requests ------------------------------------------------------------

    def submit(self, command: str) -> asyncio.Future[Success]:
        """Queue a command and return a future for its response.

        The future resolves to a ``Success`` or raises ``DaemonError`` for an
        ``ACK``, or ``ConnectionLostError`` if the session ends first.
        """
        session = self._session
        if session is None or not session.ready:
            raise NotConnectedError("Not connected")
        if "\n" in command:
            raise ValueError(f"Command must be a single line: {command!r}")

        future: asyncio.Future[Success] = asyncio.get_running_loop().create_future()
        session.queued.append(Request(command, future_settler(future)))
        session.idle_suppressed = False

        if session.idle:
            session.idle = False
            self._send(session, f"{NOIDLE}\n".encode("utf-8"))
        elif not session.in_flight:
            self._schedule_dispatch(session)
        return future

    def _schedule_dispatch(self, session: Session) -> None:
        if session.dispatch_scheduled:
            return
        session.dispatch_scheduled = True
        asyncio.get_running_loop().call_soon(self._deferred_dispatch, session)

    def _deferred_dispatch(self, session: Session) -> None:
        session.dispatch_scheduled = False
        if self._session is session and not session.in_flight:
            self._dispatch(session)

    def _dispatch(self, session: Session) -> None:
        if session.queued:
            batch = list(session.queued)
            session.queued.clear()
            session.in_flight.extend(batch)
            session.idle = False
            self._send(session, encode_batch([request.command for request in batch]))
        elif session.idle_suppressed:
            _logger.debug("Idle subscription suppressed until the next command")
        else:
            session.in_flight.append(Request(IDLE, self._idle_settler(session)))
            session.idle = True
            self._send(session, f"{IDLE}\n".encode("utf-8"))

    def _send(self, session: Session, data: bytes) -> None:
        _logger.debug(f">> {data!r}")
        try:
            session.transport.send(data)
        except OSError as exc:
            _logger.warning(f"Failed to write to transport: {exc}")
            error = ConnectionLostError(f"Transport error: {exc}")
            error.__cause__ = exc
            self._teardown(session, error)

    # -- Responses -----------------------------------------------------------

    def _handle_unit(self, session: Session, unit: ResponseUnit) -> None:
        if isinstance(unit, Greeting):
            self._on_greeting(session, unit)
            return

        if not session.in_flight:
            raise ProtocolSyncError(f"Received unexpected response: {unit!r}")

        request = session.in_flight.popleft()
        if isinstance(unit, Success):
            _logger.debug(f"<< {request.command!r}: {len(unit.lines)} lines")
            request.settle(unit)
        else:
            _logger.debug(f"<< {request.command!r}: ACK {unit.code} {unit.message}")
            request.settle(DaemonError.from_failure(unit))
            if session.in_flight:
                # the daemon abandoned the rest of the list; run it again
                _logger.debug(f"Requeueing {len(session.in_flight)} commands")
                session.queued.extendleft(reversed(session.in_flight))
                session.in_flight.clear()

        if self._session is session and not session.in_flight:
            self._dispatch(session)

    def _on_greeting(self, session: Session, greeting: Greeting) -> None:
        session.greeting = greeting
        session.ready = True
        version = ".".join(str(part) for part in greeting.version)
        _logger.info(f"Connected to {greeting.ident} {version}")

        future = self._greeting_future
        if future is not None and not future.done():
            future.set_result(greeting)
        self._emit(
            Event(
                EventType.READY,
                {"ident": greeting.ident, "version": greeting.version},
            )
        )
        if self._session is session and not session.in_flight:
            self._dispatch(session)

    def _idle_settler(self, session: Session) -> Callable[[Outcome], None]:
        def settle(outcome: Outcome) -> None:
            session.idle = False
            if isinstance(outcome, DaemonError):
                _logger.warning(f"Idle subscription rejected: {outcome}")
                session.idle_suppressed = True
            elif isinstance(outcome, Success):
                self._notify_changes(changed_subsystems(outcome.lines))

        return settle

    def _notify_changes(self, subsystems: list[str]) -> None:
        if not subsystems:
            return
        _logger.debug(f"Changed: {', '.join(subsystems)}")
        self._emit(Event(EventType.CHANGED, {"subsystems": frozenset(subsystems)}))
        for subsystem in subsystems:
            self._emit(Event(EventType.SUBSYSTEM_CHANGED, {"subsystem": subsystem}))


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
