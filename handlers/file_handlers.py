"""File serving handlers: resolve, validate, and assemble cacheable responses."""

from __future__ import annotations

import mimetypes
from pathlib import Path

import conditional
import path_resolver
from access_policy import AccessPolicy
from byte_range import ByteWindowCursor, FileWindow, PartialRange, Unsatisfiable, process
from cache_policy import NO_CACHE_DIRECTIVE, CachePolicy, CacheRule
from config import ServerConfig
from errors import (
    ExtensionNotAllowedError,
    FileServingError,
    FileTooLargeError,
    InternalFailureError,
    NotFoundError,
    RangeUnsatisfiableError,
)
from path_resolver import ResolvedFile
from request import HTTPRequest
from response import HTTPResponse

CACHE_STATUS_HEADER = "Cloudflare-Cache-Status"


def get_content_type(file_path: Path) -> str:
    content_type, _encoding = mimetypes.guess_type(file_path.name)
    return content_type or "application/octet-stream"


def no_cache_headers() -> dict[str, str]:
    return {"Cache-Control": NO_CACHE_DIRECTIVE}


def error_response(error: FileServingError) -> HTTPResponse:
    """Render a request-level failure; never cacheable."""
    headers = no_cache_headers()
    if isinstance(error, RangeUnsatisfiableError):
        headers["Content-Range"] = f"bytes */{error.file_size}"
        return HTTPResponse(status_code=error.status_code, headers=headers, body=b"")
    return HTTPResponse.json(
        error.status_code,
        {"error": error.error, "message": error.message},
        headers=headers,
    )


def open_window(window: FileWindow) -> ByteWindowCursor:
    """Open the file behind ``window`` now, while an error can still become a 404/500."""
    cursor = window.open_cursor()
    try:
        cursor.file_object()
    except FileNotFoundError as exc:
        cursor.close()
        raise NotFoundError("File not found") from exc
    except OSError as exc:
        cursor.close()
        raise InternalFailureError(f"Unable to open file: {exc.strerror}") from exc
    return cursor


class FileHandler:
    """Serves files below a single content root."""

    def __init__(self, config: ServerConfig, content_root: Path) -> None:
        self.content_root = content_root
        self.cache_policy = CachePolicy(config.cache)
        self.access_policy = AccessPolicy(config.access)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        if request.method == "HEAD":
            return self.head(request)
        return self.get(request)

    def locate(self, request: HTTPRequest) -> ResolvedFile:
        """Resolve and stat the requested file and apply the access policy."""
        requested_path = request.decoded_path.removeprefix("/")
        candidate = path_resolver.resolve(self.content_root, requested_path)
        resolved = path_resolver.stat_file(candidate)

        if not self.access_policy.is_allowed_extension(resolved.absolute_path):
            raise ExtensionNotAllowedError("File type not allowed")
        if not self.access_policy.is_allowed_size(resolved.size_bytes):
            raise FileTooLargeError(
                f"File exceeds maximum size limit of {self.access_policy.max_file_size} bytes"
            )
        return resolved

    def get(self, request: HTTPRequest) -> HTTPResponse:
        resolved = self.locate(request)
        rule = self.cache_policy.classify(resolved.absolute_path.name)
        etag = conditional.compute_etag(resolved)
        headers = self._validator_headers(resolved, rule, etag)

        outcome = conditional.evaluate(
            resolved,
            etag,
            request.header("if-none-match"),
            request.header("if-modified-since"),
        )
        if outcome is conditional.ConditionalOutcome.NOT_MODIFIED:
            return HTTPResponse(status_code=304, headers=headers, body=b"")

        range_outcome = process(request.header("range"), resolved.size_bytes)
        if isinstance(range_outcome, Unsatisfiable):
            raise RangeUnsatisfiableError(
                "Requested range not satisfiable", file_size=range_outcome.file_size
            )

        headers.update(self._content_headers(resolved))
        headers[CACHE_STATUS_HEADER] = "HIT"

        if isinstance(range_outcome, PartialRange):
            byte_range = range_outcome.byte_range
            headers["Content-Range"] = byte_range.content_range(resolved.size_bytes)
            window = FileWindow(resolved.absolute_path, byte_range)
            return HTTPResponse(
                status_code=206,
                headers=headers,
                file_window=window,
                file_cursor=open_window(window),
            )

        window = FileWindow.whole(resolved.absolute_path, resolved.size_bytes)
        return HTTPResponse(
            status_code=200,
            headers=headers,
            file_window=window,
            file_cursor=open_window(window) if window is not None else None,
        )

    def head(self, request: HTTPRequest) -> HTTPResponse:
        """Full-file metadata only; Range and conditional headers are ignored."""
        resolved = self.locate(request)
        rule = self.cache_policy.classify(resolved.absolute_path.name)
        headers = self._validator_headers(resolved, rule, conditional.compute_etag(resolved))
        headers.update(self._content_headers(resolved))
        headers[CACHE_STATUS_HEADER] = "BYPASS"
        return HTTPResponse(
            status_code=200,
            headers=headers,
            body=b"",
            content_length_override=resolved.size_bytes,
        )

    def _validator_headers(
        self, resolved: ResolvedFile, rule: CacheRule, etag: str
    ) -> dict[str, str]:
        return {
            "ETag": etag,
            "Last-Modified": conditional.format_last_modified(resolved),
            "Cache-Control": rule.cache_control,
            "CDN-Cache-Control": rule.cdn_cache_control,
        }

    def _content_headers(self, resolved: ResolvedFile) -> dict[str, str]:
        return {
            "Content-Type": get_content_type(resolved.absolute_path),
            "Accept-Ranges": "bytes",
        }
