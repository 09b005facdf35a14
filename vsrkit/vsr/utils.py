"""Vsr utility functions for vsrkit."""

from __future__ import annotations

import asyncio
import codecs
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOT_DIR = ".versionr"

_DRIVE_LETTER_RE = re.compile(r"^([a-z]):\\", re.IGNORECASE)


def find_repository_root(start_path: Path | str) -> Optional[Path]:
    """Find the root of a vsr working copy.

    Walks up the directory tree from start_path looking for a .versionr directory.

    Args:
        start_path: Path to start searching from.

    Returns:
        Path to the repository root, or None if not in a working copy.
    """
    path = Path(start_path).resolve()

    for parent in [path] + list(path.parents):
        if (parent / DOT_DIR).is_dir():
            return parent

    return None


def is_repository(path: Path | str) -> bool:
    """Check if a path is inside a vsr working copy."""
    return find_repository_root(path) is not None


def sanitize_path(path: str) -> str:
    """Upper-case a Windows drive letter so the tool sees one canonical form."""
    return _DRIVE_LETTER_RE.sub(lambda m: f"{m.group(1).upper()}:\\", path)


def split_in_chunks(items: Iterable[str], max_chunk_length: int) -> Iterator[list[str]]:
    """Split strings into lists whose combined length stays under a bound.

    A single item longer than the bound still forms its own chunk.
    """
    current: list[str] = []
    length = 0

    for item in items:
        new_length = length + len(item)

        if new_length > max_chunk_length and current:
            yield current
            current = [item]
            length = len(item)
        else:
            current.append(item)
            length = new_length

    if current:
        yield current


def group_by(items: Iterable[T], key: Callable[[T], str]) -> dict[str, list[T]]:
    """Group items by key, preserving first-seen key order."""
    groups: dict[str, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


class Limiter:
    """Run at most ``max_degree`` coroutine factories at a time.

    Queued work starts in FIFO order as running work completes.
    """

    def __init__(self, max_degree: int):
        if max_degree < 1:
            raise ValueError("max_degree must be at least 1")
        self.max_degree = max_degree
        self._semaphore = asyncio.Semaphore(max_degree)
        self._running = 0

    @property
    def running(self) -> int:
        return self._running

    async def queue(self, factory: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            self._running += 1
            try:
                return await factory()
            finally:
                self._running -= 1


# Checked before the zero-byte heuristic
_BOMS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_BE, "utf-16be"),
    (codecs.BOM_UTF16_LE, "utf-16le"),
)


def detect_unicode_encoding(buffer: bytes) -> Optional[str]:
    """Detect a UTF-8/UTF-16 encoding from a BOM or NUL-byte layout.

    Returns:
        A codec name, or None when the buffer gives no unicode signal.
    """
    for bom, encoding in _BOMS:
        if buffer.startswith(bom):
            return encoding

    if len(buffer) < 2:
        return None

    # BOM-less UTF-16: ASCII text interleaved with zero bytes
    sample = buffer[:512]
    even_zeros = sum(1 for b in sample[0::2] if b == 0)
    odd_zeros = sum(1 for b in sample[1::2] if b == 0)
    half = len(sample) // 2

    if half and odd_zeros >= half * 0.9 and even_zeros == 0:
        return "utf-16le"
    if half and even_zeros >= half * 0.9 and odd_zeros == 0:
        return "utf-16be"

    return None


def encoding_exists(encoding: Optional[str]) -> bool:
    """Check whether Python knows a codec by this name."""
    if not encoding:
        return False
    try:
        codecs.lookup(encoding)
    except LookupError:
        return False
    return True


def decode(data: bytes, encoding: Optional[str] = None) -> str:
    """Decode bytes, falling back to UTF-8 for unknown encodings.

    A leading byte order mark is dropped.
    """
    if not encoding_exists(encoding):
        encoding = "utf-8"
    text = data.decode(encoding, errors="replace")
    return text[1:] if text.startswith("\ufeff") else text
