"""Reads complete lines appended to a log file since a recorded byte offset.

Rotation and truncation are detected when the file is smaller than the
recorded offset; reading then restarts from the beginning of the file.
A trailing line without a newline is left for the next read. Each read is
capped at max_bytes so a large backlog is drained over several calls.
"""

import glob
import logging
import os
from dataclasses import dataclass, field

from logmonitor.errors import SourceUnavailable

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ReadResult:
    lines: list[str] = field(default_factory=list)
    new_offset: int = 0
    rotated: bool = False
    capped: bool = False


def _read_capped(f, max_bytes: int) -> tuple[bytes, bool]:
    data = f.read(max_bytes)
    if len(data) < max_bytes:
        return data, False
    if b"\n" in data:
        return data, True
    # A single line longer than the cap: read on until it ends.
    parts = [data]
    while True:
        chunk = f.read(CHUNK_SIZE)
        if not chunk:
            break
        parts.append(chunk)
        if b"\n" in chunk:
            break
    return b"".join(parts), True


def read_new_lines(path: str, last_offset: int, max_bytes: int = 0) -> ReadResult:
    """Return complete lines written after *last_offset* and the new offset.

    At most *max_bytes* are consumed per call (0 means no limit), except that
    a line longer than the limit is still returned whole once terminated.
    Raises SourceUnavailable if the file is missing or cannot be read.
    """
    try:
        current_size = os.stat(path).st_size
    except FileNotFoundError:
        raise SourceUnavailable(path, "not found") from None
    except OSError as e:
        raise SourceUnavailable(path, e.strerror or str(e)) from e

    start = last_offset
    rotated = False
    if current_size < last_offset:
        logger.debug("%s shrank from %d to %d bytes", path, last_offset, current_size)
        start = 0
        rotated = True

    try:
        with open(path, "rb") as f:
            f.seek(start)
            if max_bytes > 0:
                data, capped = _read_capped(f, max_bytes)
            else:
                data, capped = f.read(), False
    except OSError as e:
        raise SourceUnavailable(path, e.strerror or str(e)) from e

    end = data.rfind(b"\n")
    if end == -1:
        return ReadResult(lines=[], new_offset=start, rotated=rotated, capped=capped)

    complete = data[:end + 1]
    lines = []
    for raw in complete.split(b"\n")[:-1]:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        lines.append(raw.decode("utf-8", errors="replace"))

    return ReadResult(lines=lines, new_offset=start + len(complete), rotated=rotated,
                      capped=capped)


def expand_targets(pattern: str) -> list[str]:
    """Expand a path or simple glob into a sorted, de-duplicated target list.

    A plain path is returned even when missing so the caller can report it.
    """
    if not any(c in pattern for c in ("*", "?", "[")):
        return [pattern]

    targets = []
    seen = set()
    for match in sorted(glob.glob(pattern)):
        if os.path.isdir(match) or match in seen:
            continue
        seen.add(match)
        targets.append(match)
    return targets
