"""Handler-level tests for file responses, validators and error rendering."""

import errno
import json
import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from cache_policy import NO_CACHE_DIRECTIVE
from config import AccessConfig, ServerConfig
from errors import (
    ExtensionNotAllowedError,
    FileTooLargeError,
    InternalFailureError,
    NotFoundError,
    PathRejectedError,
    RangeUnsatisfiableError,
)
from handlers.file_handlers import FileHandler, error_response, get_content_type
from request import HTTPRequest
from response import HTTPResponse

Serve = Callable[[HTTPRequest], HTTPResponse]

SONG_SIZE = 2_000_000
# 2024-01-02T03:04:05Z
MTIME = 1_704_164_645


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    media = tmp_path / "media"
    media.mkdir()
    song = media / "song.mp3"
    with song.open("wb") as handle:
        handle.truncate(SONG_SIZE)
    os.utime(song, (MTIME, MTIME))
    (tmp_path / "app.css").write_text("body { color: red; }")
    (tmp_path / "index.php").write_text("<?php echo 1;")
    (tmp_path / "empty.txt").write_bytes(b"")
    return tmp_path


@pytest.fixture
def handler(content_root: Path) -> Iterator[Serve]:
    file_handler = FileHandler(ServerConfig(content_root=content_root), content_root)
    responses: list[HTTPResponse] = []

    def serve(request: HTTPRequest) -> HTTPResponse:
        response = file_handler(request)
        responses.append(response)
        return response

    yield serve
    for response in responses:
        if response.file_cursor is not None:
            response.file_cursor.close()


def _request(path: str, method: str = "GET", **headers: str) -> HTTPRequest:
    return HTTPRequest(
        method=method,
        path=path,
        raw_target=path,
        headers={name.replace("_", "-").lower(): value for name, value in headers.items()},
    )


def test_full_get_carries_cache_and_validator_headers(handler: Serve) -> None:
    response = handler(_request("/media/song.mp3"))

    assert response.status_code == 200
    assert response.content_length == SONG_SIZE
    assert response.header("Content-Type") == "audio/mpeg"
    assert response.header("Accept-Ranges") == "bytes"
    assert response.header("Cache-Control") == (
        "public, max-age=2592000, immutable, stale-while-revalidate=259200"
    )
    assert response.header("CDN-Cache-Control") == (
        "public, max-age=2592000, s-maxage=2592000, stale-while-revalidate=259200"
    )
    assert response.header("ETag") == f'"{MTIME * 1000:x}-{SONG_SIZE:x}"'
    assert response.header("Last-Modified") == "Tue, 02 Jan 2024 03:04:05 GMT"
    assert response.header("Cloudflare-Cache-Status") == "HIT"
    assert response.header("Content-Range") is None


def test_range_request_returns_partial_content(handler: Serve) -> None:
    response = handler(_request("/media/song.mp3", range="bytes=0-1023"))

    assert response.status_code == 206
    assert response.content_length == 1024
    assert response.header("Content-Range") == "bytes 0-1023/2000000"
    assert response.header("ETag") is not None
    assert response.file_window is not None
    assert response.file_window.byte_range.start == 0


def test_range_end_is_clamped_to_file_size(handler: Serve) -> None:
    response = handler(_request("/media/song.mp3", range="bytes=1999000-1999999999"))

    assert response.status_code == 206
    assert response.content_length == 1000
    assert response.header("Content-Range") == "bytes 1999000-1999999/2000000"


def test_range_past_end_is_unsatisfiable(handler: Serve) -> None:
    with pytest.raises(RangeUnsatisfiableError) as exc_info:
        handler(_request("/media/song.mp3", range="bytes=2000000-2000100"))

    response = error_response(exc_info.value)

    assert response.status_code == 416
    assert response.header("Content-Range") == "bytes */2000000"
    assert response.header("Cache-Control") == NO_CACHE_DIRECTIVE
    assert response.body == b""


def test_malformed_range_serves_whole_file(handler: Serve) -> None:
    response = handler(_request("/media/song.mp3", range="bytes=-500"))

    assert response.status_code == 200
    assert response.content_length == SONG_SIZE


def test_matching_etag_returns_not_modified(handler: Serve) -> None:
    first = handler(_request("/media/song.mp3"))
    etag = first.header("ETag")
    assert etag is not None

    response = handler(_request("/media/song.mp3", if_none_match=etag, range="bytes=0-9"))

    assert response.status_code == 304
    assert response.body == b""
    assert response.file_window is None
    assert response.header("ETag") == etag
    assert response.header("Cache-Control") == first.header("Cache-Control")
    assert response.header("CDN-Cache-Control") == first.header("CDN-Cache-Control")


def test_if_modified_since_at_last_modified_returns_not_modified(handler: Serve) -> None:
    response = handler(
        _request("/media/song.mp3", if_modified_since="Tue, 02 Jan 2024 03:04:05 GMT")
    )

    assert response.status_code == 304


def test_stale_validators_send_the_file(handler: Serve) -> None:
    response = handler(
        _request(
            "/media/song.mp3",
            if_none_match='"0-0"',
            if_modified_since="Mon, 01 Jan 2024 00:00:00 GMT",
        )
    )

    assert response.status_code == 200


def test_head_reports_full_length_without_body(handler: Serve) -> None:
    get_response = handler(_request("/media/song.mp3"))
    response = handler(_request("/media/song.mp3", method="HEAD", range="bytes=0-9"))

    assert response.status_code == 200
    assert response.body == b""
    assert response.file_window is None
    assert response.content_length == SONG_SIZE
    assert response.header("Cloudflare-Cache-Status") == "BYPASS"
    assert response.header("Content-Range") is None
    for name in ("ETag", "Last-Modified", "Cache-Control", "CDN-Cache-Control", "Content-Type"):
        assert response.header(name) == get_response.header(name)


def test_empty_file_is_served_with_zero_length(handler: Serve) -> None:
    response = handler(_request("/empty.txt"))

    assert response.status_code == 200
    assert response.content_length == 0
    assert response.file_window is None


@pytest.mark.parametrize(
    "path",
    ["/../etc/passwd", "/media/../../secret", "/%2e%2e/%2e%2e/etc/passwd", "/..%5c..%5cwin.ini"],
)
def test_traversal_is_forbidden(handler: Serve, path: str) -> None:
    with pytest.raises(PathRejectedError):
        handler(_request(path))


@pytest.mark.parametrize("path", ["/missing.mp3", "/media", "/media/"])
def test_missing_files_and_directories_are_not_found(handler: Serve, path: str) -> None:
    with pytest.raises(NotFoundError):
        handler(_request(path))


def test_blocked_extension_is_forbidden_even_for_head(handler: Serve) -> None:
    with pytest.raises(ExtensionNotAllowedError):
        handler(_request("/index.php"))
    with pytest.raises(ExtensionNotAllowedError):
        handler(_request("/index.php", method="HEAD"))


def test_oversized_file_is_rejected(content_root: Path) -> None:
    config = ServerConfig(content_root=content_root, access=AccessConfig(max_file_size=1024))
    handler = FileHandler(config, content_root)

    with pytest.raises(FileTooLargeError) as exc_info:
        handler(_request("/media/song.mp3"))
    assert "1024" in exc_info.value.message

    response = handler(_request("/app.css"))
    assert response.status_code == 200
    assert response.file_cursor is not None
    response.file_cursor.close()


def test_error_response_is_uncacheable_json(handler: Serve) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        handler(_request("/missing.mp3"))

    response = error_response(exc_info.value)

    assert response.status_code == 404
    assert response.header("Cache-Control") == NO_CACHE_DIRECTIVE
    assert response.header("CDN-Cache-Control") is None
    assert response.header("ETag") is None
    assert json.loads(response.body) == {"error": "Not Found", "message": "File not found"}


def test_content_type_falls_back_to_octet_stream() -> None:
    assert get_content_type(Path("blob.unknownext")) == "application/octet-stream"
    assert get_content_type(Path("app.css")) == "text/css"


def _failing_path_call(
    monkeypatch: pytest.MonkeyPatch, attribute: str, filename: str, error: OSError
) -> None:
    original = getattr(Path, attribute)

    def fake(self: Path, *args: object, **kwargs: object) -> object:
        if self.name == filename:
            raise error
        return original(self, *args, **kwargs)

    monkeypatch.setattr(Path, attribute, fake)


def test_unreadable_file_is_internal_failure(
    handler: Serve, monkeypatch: pytest.MonkeyPatch
) -> None:
    _failing_path_call(
        monkeypatch, "open", "app.css", PermissionError(errno.EACCES, "Permission denied")
    )

    with pytest.raises(InternalFailureError) as exc_info:
        handler(_request("/app.css"))

    response = error_response(exc_info.value)

    assert response.status_code == 500
    assert response.header("Cache-Control") == NO_CACHE_DIRECTIVE
    assert response.header("ETag") is None
    assert response.header("Last-Modified") is None
    assert json.loads(response.body) == {
        "error": "Internal Server Error",
        "message": "Unable to open file: Permission denied",
    }


def test_unreadable_range_is_internal_failure(
    handler: Serve, monkeypatch: pytest.MonkeyPatch
) -> None:
    _failing_path_call(
        monkeypatch, "open", "song.mp3", PermissionError(errno.EACCES, "Permission denied")
    )

    with pytest.raises(InternalFailureError):
        handler(_request("/media/song.mp3", range="bytes=0-9"))


def test_file_removed_before_open_is_not_found(
    handler: Serve, monkeypatch: pytest.MonkeyPatch
) -> None:
    _failing_path_call(
        monkeypatch, "open", "app.css", FileNotFoundError(errno.ENOENT, "No such file")
    )

    with pytest.raises(NotFoundError):
        handler(_request("/app.css"))


def test_head_does_not_open_the_file(handler: Serve, monkeypatch: pytest.MonkeyPatch) -> None:
    _failing_path_call(
        monkeypatch, "open", "app.css", PermissionError(errno.EACCES, "Permission denied")
    )

    response = handler(_request("/app.css", method="HEAD"))

    assert response.status_code == 200
    assert response.file_cursor is None


def test_stat_failure_is_internal_failure(
    handler: Serve, monkeypatch: pytest.MonkeyPatch
) -> None:
    _failing_path_call(
        monkeypatch, "stat", "app.css", PermissionError(errno.EACCES, "Permission denied")
    )

    with pytest.raises(InternalFailureError) as exc_info:
        handler(_request("/app.css"))

    response = error_response(exc_info.value)

    assert response.status_code == 500
    assert response.header("Cache-Control") == NO_CACHE_DIRECTIVE
    assert json.loads(response.body)["error"] == "Internal Server Error"
