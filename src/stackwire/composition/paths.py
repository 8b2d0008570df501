"""
Property paths into resource specifications.

A path addresses a value inside a nested property mapping:

    code.s3.bucket                  -> {"code": {"s3": {"bucket": ...}}}
    stages[2].actions[0].roleArn    -> list indices in brackets
    ("Tags", 0, "Key")              -> pre-split segments, for keys with dots
"""

from __future__ import annotations

import re
from typing import Any, Sequence, Union

from stackwire.core.errors import InvalidPathError

Segment = Union[str, int]
PathLike = Union[str, Sequence[Segment]]

_TOKEN = re.compile(r"([^.\[\]]+)|\[(-?\d+)\]")


def parse_path(path: PathLike) -> tuple[Segment, ...]:
    """Split a path into key (str) and index (int) segments."""
    if not isinstance(path, str):
        segments = tuple(path)
        if not segments:
            raise InvalidPathError("", "empty path")
        for seg in segments:
            if isinstance(seg, bool) or not isinstance(seg, (str, int)):
                raise InvalidPathError(format_path(segments), f"bad segment {seg!r}")
            if isinstance(seg, int) and seg < 0:
                raise InvalidPathError(format_path(segments), "negative list index")
        return segments

    if not path:
        raise InvalidPathError(path, "empty path")

    segments: list[Segment] = []
    pos = 0
    expect_key = True
    while pos < len(path):
        if path[pos] == "." and not expect_key and segments:
            pos += 1
            expect_key = True
            continue
        match = _TOKEN.match(path, pos)
        if match is None:
            raise InvalidPathError(path, f"unexpected character at offset {pos}")
        key, index = match.groups()
        if key is not None:
            if not expect_key:
                raise InvalidPathError(path, f"missing '.' before '{key}'")
            segments.append(key)
        else:
            if not segments:
                raise InvalidPathError(path, "path cannot start with an index")
            if expect_key:
                raise InvalidPathError(path, "'.' cannot precede an index")
            value = int(index)
            if value < 0:
                raise InvalidPathError(path, "negative list index")
            segments.append(value)
        expect_key = False
        pos = match.end()

    if expect_key:
        raise InvalidPathError(path, "trailing '.'")
    return tuple(segments)


def format_path(segments: Sequence[Segment]) -> str:
    """Render segments back to their canonical dotted form."""
    out = ""
    for seg in segments:
        if isinstance(seg, int):
            out += f"[{seg}]"
        else:
            out += f".{seg}" if out else str(seg)
    return out


def _empty_for(segment: Segment) -> Any:
    return [] if isinstance(segment, int) else {}


def _step(container: Any, segment: Segment, path: str) -> None:
    """Validate that ``segment`` can address into ``container``."""
    if isinstance(segment, int):
        if not isinstance(container, list):
            raise InvalidPathError(path, f"cannot index [{segment}] into {type(container).__name__}")
    elif not isinstance(container, dict):
        raise InvalidPathError(path, f"cannot read key '{segment}' from {type(container).__name__}")


def set_path(data: dict[str, Any], path: PathLike, value: Any) -> None:
    """Write ``value`` at ``path``, creating intermediate structure if absent.

    Missing (or ``None``) intermediates become a dict when the next segment
    is a key and a list when it is an index; lists are padded with ``None``.
    Existing values of the wrong shape raise InvalidPathError.
    """
    segments = parse_path(path)
    text = format_path(segments)
    current: Any = data

    for segment, following in zip(segments, segments[1:]):
        _step(current, segment, text)
        if isinstance(segment, int):
            while len(current) <= segment:
                current.append(None)
            if current[segment] is None:
                current[segment] = _empty_for(following)
        elif current.get(segment) is None:
            current[segment] = _empty_for(following)
        current = current[segment]

    last = segments[-1]
    _step(current, last, text)
    if isinstance(last, int):
        while len(current) <= last:
            current.append(None)
    current[last] = value


def get_path(data: Any, path: PathLike) -> Any:
    """Read the value at ``path``; raise InvalidPathError when absent."""
    segments = parse_path(path)
    text = format_path(segments)
    current = data
    for segment in segments:
        _step(current, segment, text)
        if isinstance(segment, int):
            if segment >= len(current):
                raise InvalidPathError(text, f"index [{segment}] out of range")
        elif segment not in current:
            raise InvalidPathError(text, f"no key '{segment}'")
        current = current[segment]
    return current
