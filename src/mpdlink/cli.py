"""mpdlink CLI: daemon connection, Click commands, output formatters."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import click

from . import __version__
from .client import MPDClient
from .config import ConnectionConfig, LoggingConfig, load_config
from .parsing import parse_pairs
from .protocol.errors import DaemonError, MPDLinkError
from .protocol.messages import Event, EventType, Success

_logger = logging.getLogger("mpdlink.cli")

NOTIFICATION_EVENTS = (EventType.SUBSYSTEM_CHANGED, EventType.DISCONNECTED)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(config: LoggingConfig, verbose: int = 0) -> None:
    """Set up logging to stderr and, if configured, to a file."""
    if verbose > 1:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = getattr(logging, config.level.upper(), logging.WARNING)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logger = logging.getLogger("mpdlink")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.file:
        log_file = Path(config.file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


# ---------------------------------------------------------------------------
# Daemon connection
# ---------------------------------------------------------------------------


async def connect_client(config: ConnectionConfig) -> MPDClient:
    client = MPDClient()
    await client.connect_config(config)
    return client


def fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def run_client(
    ctx: click.Context,
    action: Callable[[MPDClient], Awaitable[Any]],
    use_timeout: bool = True,
) -> Any:
    """Connect, run ``action`` with the client, then disconnect."""
    connection: ConnectionConfig = ctx.obj["config"].connection
    timeout = connection.timeout if use_timeout and connection.timeout > 0 else None

    async def runner() -> Any:
        client = await asyncio.wait_for(connect_client(connection), timeout)
        try:
            return await asyncio.wait_for(action(client), timeout)
        finally:
            client.disconnect()

    try:
        return asyncio.run(runner())
    except DaemonError as e:
        fail(f"ACK [{e.code}@{e.index}] {{{e.command}}} {e.message}")
    except asyncio.TimeoutError:
        fail("Timed out waiting for the daemon")
    except (MPDLinkError, OSError) as e:
        fail(str(e))


# ---------------------------------------------------------------------------
# Output formatters
# ---------------------------------------------------------------------------


def fmt_time(seconds: float) -> str:
    if seconds < 0:
        return "0:00"
    h, rem = divmod(int(seconds), 3600)
    m, s = divmod(rem, 60)
    return f"{h}:{m:02d}:{s:02d}" if h else f"{m}:{s:02d}"


def fmt_song(song: dict | None, duration: bool = True) -> str:
    if not song:
        return "(no song)"
    parts = []
    if song.get("Artist"):
        parts.append(song["Artist"])
    if song.get("Title"):
        parts.append(song["Title"])
    elif song.get("file"):
        parts.append(song["file"].split("/")[-1])
    text = " - ".join(parts) if parts else song.get("file", "(unknown)")
    length = song.get("duration") or song.get("Time")
    if duration and length:
        text += f" [{fmt_time(float(length))}]"
    return text


def fmt_status(data: dict) -> str:
    status = data.get("status", {})
    song = data.get("song")
    lines = []
    state = status.get("state", "stop")
    icon = {"play": "▶", "pause": "⏸", "stop": "⏹"}.get(state, "?")
    lines.append(f"{icon} {fmt_song(song, duration=False)}")

    if song:
        pos = float(status.get("elapsed", 0))
        dur = float(status.get("duration", 0))
        if dur > 0:
            filled = min(40, int(40 * pos / dur))
            bar = "▓" * filled + "░" * (40 - filled)
            lines.append(f"  {bar} {fmt_time(pos)} / {fmt_time(dur)}")

    modes = " ".join(
        f"{mode}: {'on' if status.get(mode) == '1' else 'off'}"
        for mode in ("repeat", "random", "single", "consume")
    )
    vol = status.get("volume", "n/a")
    lines.append(f"  Volume: {vol}%  {modes}")

    qlen = int(status.get("playlistlength", 0))
    if qlen and "song" in status:
        lines.append(f"  Queue: {int(status['song']) + 1}/{qlen}")
    if status.get("error"):
        lines.append(f"  Error: {status['error']}")
    return "\n".join(lines)


def fmt_stats(data: dict) -> str:
    lines = []
    for key in ("artists", "albums", "songs"):
        if key in data:
            lines.append(f"{key.capitalize()}: {data[key]}")
    for key in ("uptime", "playtime", "db_playtime"):
        if key in data:
            lines.append(f"{key.replace('_', ' ').capitalize()}: {fmt_time(float(data[key]))}")
    return "\n".join(lines) if lines else "(no statistics)"


def fmt_response(response: Success) -> str:
    lines = list(response.lines)
    if response.binary is not None:
        lines.append(f"(binary: {len(response.binary)} bytes)")
    return "\n".join(lines) if lines else "OK"


def fmt_event(evt: dict) -> str:
    etype = evt.get("event", "")
    data = evt.get("data", {})
    if etype == "subsystem_changed":
        return f"[changed] {data.get('subsystem', '')}"
    if etype == "changed":
        return f"[changed] {', '.join(data.get('subsystems', []))}"
    if etype == "disconnected":
        return f"[disconnected] {data.get('reason', '')}"
    return f"[{etype}]"


def print_data(data: Any, json_output: bool = False, formatter=None) -> None:
    if json_output:
        print(json.dumps(data, indent=2))
    elif formatter:
        print(formatter(data))
    elif isinstance(data, dict) and data:
        for k, v in data.items():
            print(f"{k}: {v}")
    else:
        print("OK")


# ---------------------------------------------------------------------------
# Click CLI
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option("--host", help="Daemon host name")
@click.option("--port", type=int, help="Daemon TCP port")
@click.option("--socket", "socket_path", help="Daemon Unix socket path")
@click.option("--url", help="WebSocket URL of the daemon")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file")
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.option("-v", "--verbose", count=True, help="More logging (-vv for wire traffic)")
@click.pass_context
def cli(ctx, host, port, socket_path, url, config_path, json_output, verbose):
    """mpdlink - Music Player Daemon protocol client."""
    try:
        config = load_config(Path(config_path) if config_path else None)
    except (ValueError, TypeError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    conn = config.connection
    if host:
        conn.host, conn.socket, conn.url = host, "", ""
    if port:
        conn.port = port
    if socket_path:
        conn.socket = socket_path
    if url:
        conn.socket, conn.url = "", url

    setup_logging(config.logging, verbose)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["json"] = json_output
    if ctx.invoked_subcommand is None:
        ctx.invoke(status)


# ── State ──────────────────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx):
    """Show player status and the current song."""

    async def action(client: MPDClient) -> dict:
        # one round trip: both commands travel in the same command list
        replies = await asyncio.gather(
            client.submit("status"), client.submit("currentsong")
        )
        status_records = parse_pairs(replies[0].lines)
        song_records = parse_pairs(replies[1].lines, ["file"])
        return {
            "status": status_records[0] if status_records else {},
            "song": song_records[0] if song_records else None,
        }

    print_data(run_client(ctx, action), ctx.obj["json"], fmt_status)


@cli.command()
@click.pass_context
def current(ctx):
    """Show the current song."""
    song = run_client(ctx, lambda client: client.current_song())
    print_data(song, ctx.obj["json"], fmt_song)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show database and uptime statistics."""
    print_data(run_client(ctx, lambda client: client.stats()), ctx.obj["json"], fmt_stats)


@cli.command()
@click.pass_context
def ping(ctx):
    """Ping the daemon."""
    run_client(ctx, lambda client: client.ping())
    print_data({"ping": "OK"} if ctx.obj["json"] else None, ctx.obj["json"])


@cli.command()
@click.pass_context
def version(ctx):
    """Show the daemon and client versions."""

    async def action(client: MPDClient) -> dict:
        greeting = client.greeting
        return {
            "daemon": greeting.ident,
            "protocol": ".".join(str(part) for part in greeting.version),
            "client": __version__,
        }

    data = run_client(ctx, action)
    print_data(
        data,
        ctx.obj["json"],
        lambda d: f"{d['daemon']} {d['protocol']} (mpdlink {d['client']})",
    )


# ── Raw commands ───────────────────────────────────────────────────────────


@cli.command()
@click.argument("commands", nargs=-1, required=True)
@click.pass_context
def send(ctx, commands):
    """Send raw protocol commands as one batch.

    Each argument is one command line, e.g. mpdlink send status "find artist Foo".
    """

    async def action(client: MPDClient) -> list:
        futures = [client.submit(command) for command in commands]
        return await asyncio.gather(*futures, return_exceptions=True)

    results = run_client(ctx, action)
    failed = False
    report = []

    for command, result in zip(commands, results):
        if isinstance(result, BaseException):
            failed = True
            prefix = "ACK " if isinstance(result, DaemonError) else "Error: "
            message = f"{prefix}{result}"
            if ctx.obj["json"]:
                report.append({"command": command, "ok": False, "error": message})
            else:
                print(f"{command}: {message}", file=sys.stderr)
            continue

        if ctx.obj["json"]:
            entry: dict[str, Any] = {"command": command, "ok": True, "lines": result.lines}
            if result.binary is not None:
                entry["binary_size"] = len(result.binary)
            report.append(entry)
        else:
            if len(commands) > 1:
                print(f"--- {command}")
            print(fmt_response(result))

    if ctx.obj["json"]:
        print(json.dumps(report, indent=2))
    if failed:
        sys.exit(1)


# ── Notifications ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("subsystems", nargs=-1)
@click.option("-n", "--count", type=int, default=0, help="Exit after N notifications")
@click.pass_context
def idle(ctx, subsystems, count):
    """Print subsystem change notifications until interrupted."""
    json_output = ctx.obj["json"]

    async def action(client: MPDClient) -> None:
        events: asyncio.Queue[Event] = asyncio.Queue()
        for event_type in NOTIFICATION_EVENTS:
            client.add_event_handler(events.put_nowait, event_type)
        _logger.debug(f"Watching {', '.join(subsystems) or 'all subsystems'}")

        seen = 0
        while not count or seen < count:
            event = await events.get()
            if event.event is EventType.DISCONNECTED:
                raise event.data["reason"]
            if subsystems and event.data["subsystem"] not in subsystems:
                continue
            evt = event.to_dict()
            print(json.dumps(evt) if json_output else fmt_event(evt))
            sys.stdout.flush()
            seen += 1

    try:
        run_client(ctx, action, use_timeout=False)
    except KeyboardInterrupt:
        pass


# ── Binary transfers ───────────────────────────────────────────────────────


@cli.command()
@click.argument("uri")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--embedded", is_flag=True, help="Read the picture embedded in the tags")
@click.pass_context
def albumart(ctx, uri, output, embedded):
    """Save the cover art of URI to OUTPUT."""

    async def action(client: MPDClient) -> bytes | None:
        if embedded:
            return await client.read_picture(uri)
        return await client.album_art(uri)

    data = run_client(ctx, action)
    if not data:
        fail(f"No picture for {uri}")
    Path(output).write_bytes(data)
    print_data({"file": output, "size": len(data)}, ctx.obj["json"])


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    cli()
