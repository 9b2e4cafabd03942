"""Range header processing and bounded reads over a byte window of a file."""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from config import WRITE_CHUNK_SIZE

_RANGE_SPEC = re.compile(r"^([0-9]*)-([0-9]*)$")


@dataclass(frozen=True, slots=True)
class ByteRange:
    """Inclusive byte offsets into a file."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid byte range {self.start}-{self.end}")

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, file_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{file_size}"


@dataclass(frozen=True, slots=True)
class NoRange:
    """Serve the whole file."""


@dataclass(frozen=True, slots=True)
class PartialRange:
    byte_range: ByteRange


@dataclass(frozen=True, slots=True)
class Unsatisfiable:
    file_size: int

    @property
    def content_range(self) -> str:
        return f"bytes */{self.file_size}"


RangeOutcome = NoRange | PartialRange | Unsatisfiable


def process(range_header: str | None, file_size: int) -> RangeOutcome:
    """Resolve a ``Range`` header against ``file_size``.

    Only ``bytes=<start>-[<end>]`` is honoured; with several comma-separated
    ranges only the first one is considered. A numeric start at or past the
    end of the file is unsatisfiable even if the rest of the header is
    malformed. Every other malformed form falls back to the whole file.
    """
    if range_header is None:
        return NoRange()

    unit, separator, ranges = range_header.strip().partition("=")
    if not separator or unit.strip().lower() != "bytes":
        return NoRange()

    first_spec = ranges.split(",", 1)[0].strip()
    raw_start, dash, raw_end = first_spec.partition("-")
    raw_start = raw_start.strip()
    if raw_start.isascii() and raw_start.isdigit() and int(raw_start) >= file_size:
        return Unsatisfiable(file_size=file_size)

    match = _RANGE_SPEC.match(f"{raw_start}{dash}{raw_end.strip()}")
    if match is None or not match.group(1):
        return NoRange()

    start = int(match.group(1))
    end = file_size - 1
    if match.group(2):
        parsed_end = int(match.group(2))
        if parsed_end < start:
            return NoRange()
        end = min(parsed_end, file_size - 1)
    return PartialRange(ByteRange(start=start, end=end))


class ByteWindowCursor:
    """Read cursor that never moves outside ``[start, end]`` of a file.

    The file is opened lazily and closed as soon as the window is exhausted,
    on :meth:`close`, or when used as a context manager.
    """

    def __init__(self, path: Path, byte_range: ByteRange) -> None:
        self.path = path
        self.byte_range = byte_range
        self.offset = byte_range.start
        self._file: BinaryIO | None = None
        self._closed = False

    @property
    def remaining(self) -> int:
        return self.byte_range.end + 1 - self.offset

    @property
    def closed(self) -> bool:
        return self._closed

    def file_object(self) -> BinaryIO:
        """Underlying file, positioned at :attr:`offset`."""
        return self._open()

    def read(self, max_bytes: int = WRITE_CHUNK_SIZE) -> bytes:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if self.remaining <= 0:
            self.close()
            return b""

        file_obj = self._open()
        chunk = file_obj.read(min(max_bytes, self.remaining))
        if not chunk:
            # File shrank underneath us; stop rather than pad.
            self.close()
            return b""
        self.offset += len(chunk)
        if self.remaining <= 0:
            self.close()
        return chunk

    def advance(self, count: int) -> None:
        """Record ``count`` bytes sent out of band (``os.sendfile``)."""
        if count < 0 or count > self.remaining:
            raise ValueError("advance would leave the byte window")
        self.offset += count
        if self._file is not None:
            self._file.seek(self.offset)
        if self.remaining <= 0:
            self.close()

    def iter_chunks(self, chunk_size: int = WRITE_CHUNK_SIZE) -> Iterator[bytes]:
        try:
            while chunk := self.read(chunk_size):
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        self._closed = True
        if self._file is not None:
            self._file.close()
            self._file = None

    def _open(self) -> BinaryIO:
        if self._closed:
            raise ValueError("cursor is closed")
        if self._file is None:
            file_obj = self.path.open("rb")
            file_obj.seek(self.offset)
            self._file = file_obj
        return self._file

    def __enter__(self) -> "ByteWindowCursor":
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()


@dataclass(frozen=True, slots=True)
class FileWindow:
    """A response body bound to an inclusive byte window of a file."""

    path: Path
    byte_range: ByteRange

    @classmethod
    def whole(cls, path: Path, file_size: int) -> "FileWindow | None":
        if file_size <= 0:
            return None
        return cls(path=path, byte_range=ByteRange(0, file_size - 1))

    @property
    def length(self) -> int:
        return self.byte_range.length

    def open_cursor(self) -> ByteWindowCursor:
        return ByteWindowCursor(self.path, self.byte_range)
