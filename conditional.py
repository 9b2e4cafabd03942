"""Validators (ETag, Last-Modified) and conditional request evaluation."""

from __future__ import annotations

from datetime import timezone
from email.utils import formatdate, parsedate_to_datetime
from enum import Enum

from path_resolver import ResolvedFile


class ConditionalOutcome(Enum):
    NOT_MODIFIED = "not-modified"
    MUST_SEND = "must-send"


def compute_etag(resolved: ResolvedFile) -> str:
    """Quoted validator built from the modification time (ms) and size, in hex."""
    mtime_ms = resolved.modified_ns // 1_000_000
    return f'"{mtime_ms:x}-{resolved.size_bytes:x}"'


def format_last_modified(resolved: ResolvedFile) -> str:
    return formatdate(resolved.modified_at, usegmt=True)


def parse_http_date(value: str | None) -> float | None:
    """Return a POSIX timestamp for an HTTP date, or None when unparseable."""
    if value is None or not value.strip():
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.timestamp()
    except (OverflowError, OSError, ValueError):
        return None


def evaluate(
    resolved: ResolvedFile,
    etag: str,
    if_none_match: str | None,
    if_modified_since: str | None,
) -> ConditionalOutcome:
    if if_none_match is not None and if_none_match == etag:
        return ConditionalOutcome.NOT_MODIFIED

    since = parse_http_date(if_modified_since)
    if since is not None and int(resolved.modified_at) <= int(since):
        return ConditionalOutcome.NOT_MODIFIED

    return ConditionalOutcome.MUST_SEND
