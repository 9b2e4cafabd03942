"""HTTP response model and serializer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Any

from byte_range import ByteWindowCursor, FileWindow
from config import SERVER_NAME

REASON_PHRASES: dict[int, str] = {
    200: "OK",
    206: "Partial Content",
    304: "Not Modified",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    408: "Request Timeout",
    413: "Payload Too Large",
    414: "URI Too Long",
    416: "Range Not Satisfiable",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}

# Statuses whose responses never carry a body or body metadata.
BODYLESS_STATUSES = {204, 304}


@dataclass(slots=True)
class PreparedResponse:
    head: bytes
    body: bytes | None = None
    cursor: ByteWindowCursor | None = None


@dataclass(slots=True)
class HTTPResponse:
    status_code: int
    reason_phrase: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | str = b""
    file_window: FileWindow | None = None
    content_length_override: int | None = None
    # Opened by the handler so open errors surface before the head is sent.
    file_cursor: ByteWindowCursor | None = None

    def __post_init__(self) -> None:
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")
        if self.file_window is not None and self.body:
            raise ValueError("Response cannot set both body and file_window")

    @classmethod
    def json(
        cls,
        status_code: int,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> "HTTPResponse":
        merged = {"Content-Type": "application/json; charset=utf-8"}
        merged.update(headers or {})
        return cls(
            status_code=status_code,
            headers=merged,
            body=json.dumps(payload, separators=(",", ":")),
        )

    @property
    def content_length(self) -> int:
        if self.content_length_override is not None:
            return self.content_length_override
        if self.file_window is not None:
            return self.file_window.length
        return len(self.body)

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def to_bytes(self) -> bytes:
        """Serialize the response into HTTP/1.1 wire format bytes."""
        prepared = prepare_response(self)
        payload = bytearray(prepared.head)
        if prepared.body is not None:
            payload.extend(prepared.body)
        elif prepared.cursor is not None:
            with prepared.cursor as cursor:
                for chunk in cursor.iter_chunks():
                    payload.extend(chunk)
        return bytes(payload)


def prepare_response(response: HTTPResponse) -> PreparedResponse:
    reason = response.reason_phrase or REASON_PHRASES.get(response.status_code, "Unknown")
    normalized_headers = dict(response.headers)
    normalized_headers.setdefault(
        "Date",
        formatdate(timeval=None, localtime=False, usegmt=True),
    )
    normalized_headers.setdefault("Server", SERVER_NAME)

    body: bytes | None = None
    cursor: ByteWindowCursor | None = None
    if response.status_code in BODYLESS_STATUSES:
        normalized_headers.pop("Content-Length", None)
        normalized_headers.pop("Content-Type", None)
        body = b""
    else:
        if response.content_length:
            normalized_headers.setdefault("Content-Type", "text/plain; charset=utf-8")
        normalized_headers["Content-Length"] = str(response.content_length)
        if response.file_window is not None:
            cursor = response.file_cursor or response.file_window.open_cursor()
        else:
            body = response.body  # type: ignore[assignment]

    header_lines = [f"HTTP/1.1 {response.status_code} {reason}"]
    header_lines.extend(f"{key}: {value}" for key, value in normalized_headers.items())
    head = "\r\n".join(header_lines).encode("iso-8859-1") + b"\r\n\r\n"
    return PreparedResponse(head=head, body=body, cursor=cursor)
