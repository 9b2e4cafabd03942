"""Confine untrusted request paths to the content root."""

from __future__ import annotations

import errno
import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path

from errors import InternalFailureError, NotFoundError, PathRejectedError

_SEPARATORS = re.compile(r"[/\\]")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def normalize_segments(requested_path: str) -> list[str]:
    """Collapse ``.``, ``..`` and empty segments of a relative request path.

    Both ``/`` and ``\\`` count as separators regardless of the host. A ``..``
    that would climb above the starting point raises PathRejectedError.
    """
    segments: list[str] = []
    for segment in _SEPARATORS.split(requested_path):
        if segment in {"", "."}:
            continue
        if segment == "..":
            if not segments:
                raise PathRejectedError("Path traversal not allowed")
            segments.pop()
            continue
        segments.append(segment)
    return segments


def resolve(content_root: Path, requested_path: str) -> Path:
    """Join ``requested_path`` onto ``content_root`` without touching the filesystem.

    ``requested_path`` is the URL path with its leading ``/`` already removed.
    The result is either ``content_root`` itself or a path strictly below it.
    """
    if "\x00" in requested_path:
        raise PathRejectedError("Path contains a NUL byte")
    if _SEPARATORS.match(requested_path) or _DRIVE_PREFIX.match(requested_path):
        raise PathRejectedError("Absolute paths are not allowed")

    candidate = content_root.joinpath(*normalize_segments(requested_path))

    root_text = str(content_root)
    candidate_text = str(candidate)
    prefix = root_text if root_text.endswith(os.sep) else root_text + os.sep
    if candidate_text != root_text and not candidate_text.startswith(prefix):
        raise PathRejectedError("Path traversal not allowed")
    return candidate


@dataclass(frozen=True, slots=True)
class ResolvedFile:
    absolute_path: Path
    size_bytes: int
    modified_ns: int
    extension: str

    @property
    def modified_at(self) -> float:
        return self.modified_ns / 1_000_000_000


def stat_file(path: Path) -> ResolvedFile:
    """Stat ``path`` and describe it, raising NotFoundError unless it is a regular file."""
    try:
        file_stat = path.stat()
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise NotFoundError("File not found") from exc
    except OSError as exc:
        if exc.errno in {errno.ENAMETOOLONG, errno.ELOOP}:
            raise NotFoundError("File not found") from exc
        raise InternalFailureError(f"Unable to stat file: {exc.strerror}") from exc

    if not stat.S_ISREG(file_stat.st_mode):
        raise NotFoundError("File not found")

    return ResolvedFile(
        absolute_path=path,
        size_bytes=file_stat.st_size,
        modified_ns=file_stat.st_mtime_ns,
        extension=path.suffix.lower(),
    )
