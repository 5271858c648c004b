"""Helpers for ``key: value`` response lines."""

from __future__ import annotations

from typing import Iterable


def split_pair(line: str) -> tuple[str, str] | None:
    """Split ``key: value``; ``None`` for lines without a key."""
    index = line.find(":")
    if index <= 0:
        return None
    return line[:index], line[index + 2:]


def parse_pairs(lines: Iterable[str], markers: Iterable[str] = ()) -> list[dict[str, str]]:
    """Group response lines into records.

    A new record starts whenever a marker key appears after the first pair.
    Repeated keys inside one record are joined with ``;``.
    """
    markers = set(markers)
    records: list[dict[str, str]] = []
    current: dict[str, str] = {}
    count = 0

    for line in lines:
        pair = split_pair(line)
        if pair is None:
            continue
        key, value = pair
        if count > 0 and key in markers:
            records.append(current)
            current = {}
        if key in current:
            current[key] = f"{current[key]};{value}"
        else:
            current[key] = value
        count += 1

    if count > 0:
        records.append(current)
    return records


def values(lines: Iterable[str]) -> list[str]:
    """The value of every ``key: value`` line."""
    return [pair[1] for pair in map(split_pair, lines) if pair is not None]
